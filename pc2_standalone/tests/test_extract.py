"""
Point extraction: point counts, type widening, unknown types and the bounds
checks that keep untrusted offsets from reading past a point.
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest
from numpy.testing import assert_allclose

from pc2_display.errors import MalformedRecord, UnknownFieldType
from pc2_display.extract import check_bounds, extract_points
from pc2_display.schema import decode_schema
from record_factory import make_record

ALL_TYPES = [
    ('x', 0, 7), ('y', 4, 7), ('z', 8, 7),
    ('i8', 12, 1), ('u8', 13, 2), ('i16', 14, 3), ('u16', 16, 4),
    ('i32', 20, 5), ('u32', 24, 6), ('f64', 28, 8),
]


def _extract(record):
    return extract_points(record, decode_schema(record.field_descriptors))


class TestPointCount:

    @pytest.mark.parametrize("n", [0, 1, 2, 7, 100])
    def test_count_is_bytes_over_step(self, n):
        rows = [(float(i), 2.0 * i, -float(i), 10.0 * i) for i in range(n)]
        points, features, unknown = _extract(make_record(rows))
        assert len(points) == n
        assert features.shape == (n, 1)
        assert unknown == []

    def test_trailing_partial_point_ignored(self):
        record = make_record([(1.0, 2.0, 3.0, 4.0)] * 3)
        record.raw_bytes = record.raw_bytes + b'\x00' * 9
        points, _, _ = _extract(record)
        assert len(points) == 3


class TestValues:

    def test_geometry_and_intensity(self):
        record = make_record([(1.5, -2.0, 3.25, 10.0), (4.0, 5.0, 6.0, 30.0)])
        points, features, _ = _extract(record)
        assert points.dtype == np.float32
        assert features.dtype == np.float32
        assert_allclose(points, [[1.5, -2.0, 3.25], [4.0, 5.0, 6.0]])
        assert_allclose(features[:, 0], [10.0, 30.0])

    def test_every_type_widened_to_float32(self):
        row = (1.0, 2.0, 3.0, -5, 200, -300, 60000, -70000, 4000000000, 1.5)
        record = make_record([row], fields=ALL_TYPES, point_step=36)
        _, features, unknown = _extract(record)
        assert unknown == []
        assert_allclose(features[0],
                        [-5, 200, -300, 60000, -70000, 4000000000, 1.5])

    def test_big_endian(self):
        row = (1.0, 2.0, 3.0, -5, 200, -300, 60000, -70000, 123456, -2.5)
        record = make_record([row], fields=ALL_TYPES, point_step=36,
                             bigendian=True)
        points, features, _ = _extract(record)
        assert_allclose(points[0], [1.0, 2.0, 3.0])
        assert_allclose(features[0], [-5, 200, -300, 60000, -70000, 123456,
                                      -2.5])

    def test_writes_into_given_arrays(self):
        record = make_record([(1.0, 2.0, 3.0, 4.0)] * 2)
        plan = decode_schema(record.field_descriptors)
        points = np.zeros((2, 3), dtype=np.float32)
        features = np.zeros((2, 1), dtype=np.float32)
        out_points, out_features, _ = extract_points(record, plan, points,
                                                     features)
        assert out_points is points
        assert out_features is features
        assert_allclose(features[:, 0], [4.0, 4.0])


class TestUnknownType:

    def test_unknown_type_yields_zero_and_diagnostic(self):
        fields = [('x', 0, 7), ('y', 4, 7), ('z', 8, 7),
                  ('mystery', 12, 42), ('intensity', 12, 7)]
        record = make_record([(1.0, 2.0, 3.0, None, 7.0)], fields=fields)
        points, features, unknown = _extract(record)
        assert len(points) == 1
        assert_allclose(features[0], [0.0, 7.0])
        assert len(unknown) == 1
        assert isinstance(unknown[0], UnknownFieldType)
        assert unknown[0].name == 'mystery'
        assert unknown[0].type_code == 42


class TestBounds:

    def test_zero_stride_rejected(self):
        record = make_record([(1.0, 2.0, 3.0, 4.0)])
        record.point_step = 0
        with pytest.raises(MalformedRecord):
            _extract(record)

    def test_geometry_offset_past_stride_rejected(self):
        fields = [('x', 0, 7), ('y', 4, 7), ('z', 14, 7)]
        record = make_record([], fields=fields, point_step=16)
        record.raw_bytes = b'\x00' * 32
        with pytest.raises(MalformedRecord):
            _extract(record)

    def test_feature_width_past_stride_rejected(self):
        fields = [('x', 0, 7), ('y', 4, 7), ('z', 8, 7), ('t', 12, 8)]
        record = make_record([], fields=fields, point_step=16)
        record.raw_bytes = b'\x00' * 32
        with pytest.raises(MalformedRecord):
            _extract(record)

    def test_check_bounds_accepts_exact_fit(self):
        record = make_record([(1.0, 2.0, 3.0, 4.0)])
        check_bounds(record, decode_schema(record.field_descriptors))

    def test_buffer_shorter_than_one_point_rejected(self):
        record = make_record([(1.0, 2.0, 3.0, 4.0)])
        record.raw_bytes = record.raw_bytes[:10]
        with pytest.raises(MalformedRecord):
            check_bounds(record, decode_schema(record.field_descriptors))

    def test_checked_record_skips_bounds_pass(self):
        record = make_record([(1.0, 2.0, 3.0, 4.0)])
        plan = decode_schema(record.field_descriptors)
        check_bounds(record, plan)
        points, _, _ = extract_points(record, plan, checked=True)
        assert_allclose(points, [[1.0, 2.0, 3.0]])
