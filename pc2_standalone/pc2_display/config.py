"""Configuration loader for the point cloud display.

Reads and writes the flat key-value document persisted between sessions.
Keys written by older versions of the display (``size``,
``color_transformer``) are still accepted on load.
"""
import yaml
from dataclasses import asdict, dataclass

from .schema import FLAT_COLOR_NAME

_LEGACY_KEYS = {
    'size': 'point_size',
    'color_transformer': 'color_mode',
}

_TRUE_STRINGS = {"true", "yes", "on", "1"}
_FALSE_STRINGS = {"false", "no", "off", "0", ""}


def _as_bool(value) -> bool:
    """YAML booleans, numbers, or strings like "true" / "off"."""
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        raise ValueError(f"Not a boolean setting value: {value!r}")
    return bool(value)


@dataclass
class DisplayConfig:
    """User-facing display settings."""
    # Source
    topic: str = ""
    target_frame: str = "map"

    # Drawing
    point_size: int = 3
    buffer_size: int = 1
    alpha: float = 1.0

    # Color mapping
    color_mode: str = FLAT_COLOR_NAME
    min_color: str = "#ffffff"
    max_color: str = "#000000"
    value_min: float = 0.0
    value_max: float = 100.0
    use_rainbow: bool = False
    use_automaxmin: bool = False
    unpack_rgb: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def config_from_dict(values: dict, base: DisplayConfig = None) -> DisplayConfig:
    """Overlay the keys present in ``values`` onto ``base`` (or defaults).

    Unknown keys are ignored; every key is optional. Boolean keys also
    accept strings such as "true", "no" or "0".

    Raises:
        ValueError: if a value cannot be converted to its setting type.
    """
    dc = DisplayConfig(**asdict(base)) if base is not None else DisplayConfig()
    values = values or {}

    for legacy, key in _LEGACY_KEYS.items():
        if legacy in values and key not in values:
            values = dict(values)
            values[key] = values[legacy]

    dc.topic = str(values.get('topic', dc.topic)).strip()
    dc.target_frame = str(values.get('target_frame', dc.target_frame)).strip()
    dc.point_size = int(values.get('point_size', dc.point_size))
    dc.buffer_size = max(1, int(values.get('buffer_size', dc.buffer_size)))
    dc.alpha = float(values.get('alpha', dc.alpha))
    dc.color_mode = str(values.get('color_mode', dc.color_mode))
    dc.min_color = str(values.get('min_color', dc.min_color))
    dc.max_color = str(values.get('max_color', dc.max_color))
    dc.value_min = float(values.get('value_min', dc.value_min))
    dc.value_max = float(values.get('value_max', dc.value_max))
    dc.use_rainbow = _as_bool(values.get('use_rainbow', dc.use_rainbow))
    dc.use_automaxmin = _as_bool(
        values.get('use_automaxmin', dc.use_automaxmin))
    dc.unpack_rgb = _as_bool(values.get('unpack_rgb', dc.unpack_rgb))
    return dc


def load_config(yaml_path: str) -> DisplayConfig:
    """Load display settings from a YAML file."""
    with open(yaml_path, 'r') as f:
        cfg = yaml.safe_load(f) or {}
    return config_from_dict(cfg)


def save_config(config: DisplayConfig, yaml_path: str):
    """Write every display setting to a YAML file."""
    with open(yaml_path, 'w') as f:
        yaml.safe_dump(config.to_dict(), f, sort_keys=False)
