"""Point colorization: feature value (or flat setting) -> RGBA.

Colors are RGBA tuples / arrays of floats in [0, 1].

Auto-ranging folds the values being colored into the running extrema
*before* normalizing (update-then-normalize), so the first sample of a new
range is mapped against bounds that already include it.
"""
import enum
from dataclasses import dataclass

import numpy as np
from matplotlib.colors import hsv_to_rgb, to_hex, to_rgba

from .types import RunningExtrema

# rainbow: HSL hue sweep at full saturation, lightness 127/255
_RAINBOW_SATURATION = 1.0
_RAINBOW_LIGHTNESS = 127.0 / 255.0


class ColorMode(enum.Enum):
    FLAT = "flat"
    UNPACK_RGB = "unpack_rgb"
    HUE_RAINBOW = "hue_rainbow"
    MINMAX_GRADIENT = "minmax_gradient"


def parse_color(value) -> tuple:
    """Hex string (or any matplotlib color spec) -> RGBA float tuple."""
    return tuple(float(c) for c in to_rgba(value))


def color_to_hex(color) -> str:
    """RGBA float tuple -> '#rrggbb'."""
    return to_hex(color, keep_alpha=False)


@dataclass
class ColorMapConfig:
    """Live color mapping state.

    ``feature_index`` is 1-based; 0 selects the flat color.
    """
    feature_index: int = 0
    min_value: float = 0.0
    max_value: float = 100.0
    auto_range: bool = False
    use_rainbow: bool = False
    unpack_rgb_bytes: bool = False
    flat_color: tuple = (1.0, 1.0, 1.0, 1.0)
    gradient_min_color: tuple = (1.0, 1.0, 1.0, 1.0)
    gradient_max_color: tuple = (0.0, 0.0, 0.0, 1.0)

    @property
    def mode(self) -> ColorMode:
        if self.feature_index <= 0:
            return ColorMode.FLAT
        if self.unpack_rgb_bytes:
            return ColorMode.UNPACK_RGB
        if self.use_rainbow:
            return ColorMode.HUE_RAINBOW
        return ColorMode.MINMAX_GRADIENT

    @property
    def column(self):
        """0-based feature column, or None in flat mode."""
        if self.feature_index <= 0:
            return None
        return self.feature_index - 1


def visible_fields(config: ColorMapConfig) -> frozenset:
    """Which tunables a configuration UI should show for ``config``."""
    if config.mode is ColorMode.FLAT:
        return frozenset({"color_mode", "min_color"})
    shown = {"color_mode", "use_rainbow", "use_automaxmin", "unpack_rgb"}
    if not config.use_rainbow:
        shown.update({"min_color", "max_color"})
    if not config.auto_range:
        shown.add("value_range")
    return frozenset(shown)


def normalize(values: np.ndarray, min_value: float,
              max_value: float) -> np.ndarray:
    """Map values into [0, 1]; degenerate ranges clamp the raw values."""
    values = np.asarray(values, dtype=np.float64)
    if max_value > min_value:
        values = (values - min_value) / (max_value - min_value)
    return np.clip(np.nan_to_num(values, nan=0.0), 0.0, 1.0)


def rainbow(t: np.ndarray) -> np.ndarray:
    """Hue interpolation: t in [0, 1] -> (N, 4) opaque RGBA."""
    hue_deg = np.floor(np.asarray(t, dtype=np.float64) * 255.0)
    # HSL -> HSV so matplotlib can do the sector math
    light = _RAINBOW_LIGHTNESS
    value = light + _RAINBOW_SATURATION * min(light, 1.0 - light)
    sat_v = 0.0 if value == 0 else 2.0 * (1.0 - light / value)
    hsv = np.empty((len(hue_deg), 3))
    hsv[:, 0] = (hue_deg / 360.0) % 1.0
    hsv[:, 1] = sat_v
    hsv[:, 2] = value
    rgba = np.ones((len(hue_deg), 4))
    rgba[:, :3] = hsv_to_rgb(hsv)
    return rgba


def gradient(t: np.ndarray, min_color, max_color) -> np.ndarray:
    """RGB interpolation between two colors, fully opaque."""
    t = np.asarray(t, dtype=np.float64)[:, None]
    lo = np.asarray(min_color[:3], dtype=np.float64)
    hi = np.asarray(max_color[:3], dtype=np.float64)
    rgba = np.ones((len(t), 4))
    rgba[:, :3] = (1.0 - t) * lo + t * hi
    return rgba


def unpack_rgb(values: np.ndarray) -> np.ndarray:
    """Reinterpret float32 bits as packed B, G, R, A bytes."""
    packed = np.ascontiguousarray(values, dtype=np.float32)
    raw = packed.view(np.uint8).reshape(-1, 4)
    rgba = np.ones((len(raw), 4))
    rgba[:, 0] = raw[:, 2] / 255.0
    rgba[:, 1] = raw[:, 1] / 255.0
    rgba[:, 2] = raw[:, 0] / 255.0
    return rgba


def compute_colors(features: np.ndarray, config: ColorMapConfig,
                   extrema: RunningExtrema = None, column: int = None,
                   extrema_index: int = None, out: np.ndarray = None):
    """Colorize every row of ``features``.

    Args:
        features: (N, F) feature matrix of one scan.
        config: Color mapping state. In auto-range mode its
            ``min_value``/``max_value`` are overwritten from ``extrema``.
        extrema: Running extrema, updated in auto-range mode. Callers must
            serialize calls that share it.
        column: Feature column to read; defaults to ``config.column``.
            Pass -1 to force the flat color (feature absent from the scan).
        extrema_index: Extrema slot for the column; defaults to ``column``.
        out: Optional (N, 4) array to write into.

    Returns:
        (N, 4) float64 RGBA array.
    """
    n = len(features)
    if out is None:
        out = np.empty((n, 4))

    if column is None:
        column = config.column
    if (config.mode is ColorMode.FLAT or column is None or column < 0
            or features.ndim != 2 or column >= features.shape[1]):
        out[:] = config.flat_color
        return out

    values = features[:, column]

    if config.unpack_rgb_bytes:
        out[:] = unpack_rgb(values)
        return out

    if extrema_index is None:
        extrema_index = column
    if config.auto_range and extrema is not None and extrema_index < len(extrema):
        extrema.update(extrema_index, values)
        if extrema.observed(extrema_index):
            config.min_value, config.max_value = extrema.bounds(extrema_index)

    t = normalize(values, config.min_value, config.max_value)
    if config.use_rainbow:
        out[:] = rainbow(t)
    else:
        out[:] = gradient(t, config.gradient_min_color,
                          config.gradient_max_color)
    return out


def compute_color(features, config: ColorMapConfig,
                  extrema: RunningExtrema = None) -> tuple:
    """Color of a single sample given its feature values."""
    row = np.asarray(features, dtype=np.float32).reshape(1, -1)
    rgba = compute_colors(row, config, extrema)
    return tuple(float(c) for c in rgba[0])
