"""
Display settings: defaults, YAML loading, legacy keys and saving.
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import pytest
import yaml

from pc2_display.config import (DisplayConfig, config_from_dict, load_config,
                                save_config)


class TestDefaults:

    def test_defaults(self):
        dc = DisplayConfig()
        assert dc.target_frame == 'map'
        assert dc.buffer_size == 1
        assert dc.point_size == 3
        assert dc.color_mode == 'Flat Color'
        assert dc.min_color == '#ffffff'
        assert dc.max_color == '#000000'
        assert (dc.value_min, dc.value_max) == (0.0, 100.0)
        assert not (dc.use_rainbow or dc.use_automaxmin or dc.unpack_rgb)

    def test_empty_document(self, tmp_path):
        path = tmp_path / 'empty.yaml'
        path.write_text('')
        assert load_config(str(path)) == DisplayConfig()


class TestLoad:

    def test_yaml_values(self, tmp_path):
        path = tmp_path / 'display.yaml'
        path.write_text(
            "topic: /livox/lidar\n"
            "buffer_size: 10\n"
            "color_mode: intensity\n"
            "use_rainbow: true\n"
            "value_max: 250\n"
        )
        dc = load_config(str(path))
        assert dc.topic == '/livox/lidar'
        assert dc.buffer_size == 10
        assert dc.color_mode == 'intensity'
        assert dc.use_rainbow is True
        assert dc.value_max == 250.0
        assert dc.target_frame == 'map'

    def test_legacy_keys(self):
        dc = config_from_dict({'size': 5, 'color_transformer': 'ring'})
        assert dc.point_size == 5
        assert dc.color_mode == 'ring'

    def test_current_key_wins_over_legacy(self):
        dc = config_from_dict({'size': 5, 'point_size': 2})
        assert dc.point_size == 2

    def test_unknown_keys_ignored(self):
        assert config_from_dict({'bogus': 1}) == DisplayConfig()

    @pytest.mark.parametrize("value", [0, -4])
    def test_buffer_size_clamped(self, value):
        assert config_from_dict({'buffer_size': value}).buffer_size == 1

    @pytest.mark.parametrize("text,expected", [
        ('false', False), ('False', False), ('no', False), ('0', False),
        ('true', True), ('Yes', True), ('on', True), ('1', True),
    ])
    def test_string_booleans(self, text, expected):
        dc = config_from_dict({'use_rainbow': text, 'unpack_rgb': text,
                               'use_automaxmin': text})
        assert dc.use_rainbow is expected
        assert dc.unpack_rgb is expected
        assert dc.use_automaxmin is expected

    def test_unrecognized_boolean_string(self):
        with pytest.raises(ValueError):
            config_from_dict({'use_rainbow': 'maybe'})

    def test_quoted_yaml_boolean(self, tmp_path):
        path = tmp_path / 'display.yaml'
        path.write_text('use_rainbow: "false"\nunpack_rgb: "true"\n')
        dc = load_config(str(path))
        assert dc.use_rainbow is False
        assert dc.unpack_rgb is True

    def test_overlay_on_base(self):
        base = DisplayConfig(topic='/points', alpha=0.5)
        dc = config_from_dict({'alpha': 0.25}, base=base)
        assert dc.topic == '/points'
        assert dc.alpha == 0.25
        assert base.alpha == 0.5


class TestSave:

    def test_round_trip(self, tmp_path):
        path = tmp_path / 'out.yaml'
        dc = DisplayConfig(topic='/cloud', color_mode='intensity',
                           use_automaxmin=True, value_min=-2.5)
        save_config(dc, str(path))
        assert load_config(str(path)) == dc

    def test_every_key_written(self, tmp_path):
        path = tmp_path / 'out.yaml'
        save_config(DisplayConfig(), str(path))
        with open(path) as f:
            written = yaml.safe_load(f)
        assert set(written) == set(DisplayConfig().to_dict())
