"""
Field schema decoding: geometry resolution, feature order, schema identity.
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import pytest

from pc2_display.errors import MissingGeometryFields
from pc2_display.schema import (FLAT_COLOR_NAME, decode_schema, feature_names,
                                field_dtype, schema_signature)
from record_factory import make_fields


class TestDecodeSchema:

    def test_geometry_and_features_resolved(self):
        plan = decode_schema(make_fields([
            ('x', 0, 7), ('y', 4, 7), ('z', 8, 7),
            ('intensity', 12, 7), ('ring', 16, 4),
        ]))
        assert plan.x.byte_offset == 0
        assert plan.y.byte_offset == 4
        assert plan.z.byte_offset == 8
        assert plan.feature_names == ['intensity', 'ring']
        assert plan.num_features == 2

    def test_features_keep_record_order(self):
        plan = decode_schema(make_fields([
            ('t', 16, 6), ('x', 0, 7), ('reflectivity', 20, 4),
            ('y', 4, 7), ('z', 8, 7), ('intensity', 12, 7),
        ]))
        assert plan.feature_names == ['t', 'reflectivity', 'intensity']
        assert plan.feature_index('intensity') == 2
        assert plan.feature_index('missing') is None

    @pytest.mark.parametrize("dropped", ['x', 'y', 'z'])
    def test_missing_geometry_raises(self, dropped):
        layout = [f for f in [('x', 0, 7), ('y', 4, 7), ('z', 8, 7),
                            ('intensity', 12, 7)] if f[0] != dropped]
        with pytest.raises(MissingGeometryFields) as info:
            decode_schema(make_fields(layout))
        assert info.value.missing == (dropped,)

    def test_duplicate_feature_first_wins(self):
        plan = decode_schema(make_fields([
            ('x', 0, 7), ('y', 4, 7), ('z', 8, 7),
            ('intensity', 12, 7), ('intensity', 16, 2),
        ]))
        assert plan.feature_names == ['intensity']
        assert plan.features[0].byte_offset == 12

    def test_xyz_only_has_no_features(self):
        plan = decode_schema(make_fields([('x', 0, 7), ('y', 4, 7),
                                          ('z', 8, 7)]))
        assert plan.num_features == 0


class TestSchemaIdentity:

    def test_signature_tracks_offsets_and_types(self):
        a = make_fields([('x', 0, 7), ('y', 4, 7), ('z', 8, 7)])
        b = make_fields([('x', 0, 7), ('y', 4, 7), ('z', 12, 7)])
        c = make_fields([('x', 0, 7), ('y', 4, 7), ('z', 8, 8)])
        assert schema_signature(a) == schema_signature(list(a))
        assert schema_signature(a) != schema_signature(b)
        assert schema_signature(a) != schema_signature(c)

    def test_plan_carries_signature(self):
        fields = make_fields([('x', 0, 7), ('y', 4, 7), ('z', 8, 7)])
        assert decode_schema(fields).signature == schema_signature(fields)


class TestFeatureNames:

    def test_flat_color_first(self):
        plan = decode_schema(make_fields([
            ('x', 0, 7), ('y', 4, 7), ('z', 8, 7), ('intensity', 12, 7),
        ]))
        assert feature_names(plan) == [FLAT_COLOR_NAME, 'intensity']

    def test_no_plan(self):
        assert feature_names(None) == [FLAT_COLOR_NAME]


class TestFieldDtype:

    @pytest.mark.parametrize("code,itemsize", [
        (1, 1), (2, 1), (3, 2), (4, 2), (5, 4), (6, 4), (7, 4), (8, 8),
    ])
    def test_known_codes(self, code, itemsize):
        assert field_dtype(code).itemsize == itemsize

    @pytest.mark.parametrize("code", [0, 9, 42, -1])
    def test_unknown_codes(self, code):
        assert field_dtype(code) is None
