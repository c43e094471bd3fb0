"""Data structures used throughout the display pipeline.

Records arrive as raw bytes plus a field schema; scans are the decoded,
buffered form. Scans keep their points column-wise in numpy arrays so the
storage can be recycled when the buffer evicts them.
"""
import enum
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np


class FieldType(enum.IntEnum):
    """PointField datatype codes."""
    INT8 = 1
    UINT8 = 2
    INT16 = 3
    UINT16 = 4
    INT32 = 5
    UINT32 = 6
    FLOAT32 = 7
    FLOAT64 = 8


@dataclass(frozen=True)
class FieldDescriptor:
    """One named field of a point: where it sits and how it is encoded."""
    name: str
    byte_offset: int
    type_code: int


@dataclass
class Record:
    """One ingested point cloud message."""
    timestamp: float = 0.0
    source_frame: str = ""
    field_descriptors: List[FieldDescriptor] = field(default_factory=list)
    point_step: int = 0
    raw_bytes: bytes = b""
    is_bigendian: bool = False


@dataclass(frozen=True)
class ExtractionPlan:
    """Resolved geometry fields plus the ordered feature fields."""
    x: FieldDescriptor
    y: FieldDescriptor
    z: FieldDescriptor
    features: Tuple[FieldDescriptor, ...] = ()
    signature: Tuple[Tuple[str, int, int], ...] = ()

    @property
    def feature_names(self) -> List[str]:
        return [f.name for f in self.features]

    @property
    def num_features(self) -> int:
        return len(self.features)

    def feature_index(self, name: str) -> Optional[int]:
        """0-based column of the feature called ``name``, or None."""
        for i, f in enumerate(self.features):
            if f.name == name:
                return i
        return None


@dataclass
class Sample:
    """A single decoded point, as seen by callers that want per-point access."""
    geometry: Tuple[float, float, float]
    features: Tuple[float, ...]
    transformed_geometry: Optional[Tuple[float, float]]
    color: Tuple[float, float, float, float]


def _reuse(base: Optional[np.ndarray], rows: int, cols: int,
           dtype) -> np.ndarray:
    if (base is not None and base.shape[0] >= rows
            and base.shape[1] == cols and base.dtype == dtype):
        return base
    return np.empty((rows, cols), dtype=dtype)


@dataclass(eq=False)
class Scan:
    """Decoded point cloud with per-point color and display coordinates.

    ``points`` is (N, 3) float32, ``features`` (N, F) float32,
    ``transformed_points`` (N, 2) float64 and ``colors`` (N, 4) float64.
    The public arrays are row views over backing storage that survives
    ``allocate`` calls whenever the old storage is large enough.
    """
    stamp: float = 0.0
    source_frame: str = ""
    transformed: bool = False
    schema: Optional[ExtractionPlan] = None
    points: np.ndarray = field(
        default_factory=lambda: np.zeros((0, 3), dtype=np.float32))
    features: np.ndarray = field(
        default_factory=lambda: np.zeros((0, 0), dtype=np.float32))
    transformed_points: np.ndarray = field(
        default_factory=lambda: np.zeros((0, 2)))
    colors: np.ndarray = field(default_factory=lambda: np.zeros((0, 4)))
    generation: int = 0

    _points_base: Optional[np.ndarray] = field(default=None, repr=False)
    _features_base: Optional[np.ndarray] = field(default=None, repr=False)
    _transformed_base: Optional[np.ndarray] = field(default=None, repr=False)
    _colors_base: Optional[np.ndarray] = field(default=None, repr=False)

    def __len__(self):
        return len(self.points)

    def allocate(self, num_points: int, num_features: int):
        """Size the per-point arrays, recycling existing storage if it fits."""
        self._points_base = _reuse(self._points_base, num_points, 3,
                                   np.float32)
        self._features_base = _reuse(self._features_base, num_points,
                                     num_features, np.float32)
        self._transformed_base = _reuse(self._transformed_base, num_points,
                                        2, np.float64)
        self._colors_base = _reuse(self._colors_base, num_points, 4,
                                   np.float64)
        self.points = self._points_base[:num_points]
        self.features = self._features_base[:num_points]
        self.transformed_points = self._transformed_base[:num_points]
        self.colors = self._colors_base[:num_points]
        self.transformed = False

    def sample(self, i: int) -> Sample:
        tp = None
        if self.transformed:
            tp = (float(self.transformed_points[i, 0]),
                  float(self.transformed_points[i, 1]))
        return Sample(
            geometry=tuple(float(v) for v in self.points[i]),
            features=tuple(float(v) for v in self.features[i]),
            transformed_geometry=tp,
            color=tuple(float(v) for v in self.colors[i]),
        )

    def samples(self):
        for i in range(len(self)):
            yield self.sample(i)


class RunningExtrema:
    """Observed min/max per feature column for auto-ranging."""

    def __init__(self, num_features: int = 0):
        self.min = np.zeros(0, dtype=np.float32)
        self.max = np.zeros(0, dtype=np.float32)
        self.reset(num_features)

    def __len__(self):
        return len(self.min)

    def reset(self, num_features: int = 0):
        self.min = np.full(num_features, np.inf, dtype=np.float32)
        self.max = np.full(num_features, -np.inf, dtype=np.float32)

    def update(self, index: int, values: np.ndarray):
        """Fold ``values`` into the extrema of column ``index``."""
        values = np.asarray(values, dtype=np.float32)
        finite = values[np.isfinite(values)]
        if finite.size == 0:
            return
        self.min[index] = min(self.min[index], finite.min())
        self.max[index] = max(self.max[index], finite.max())

    def bounds(self, index: int) -> Tuple[float, float]:
        return float(self.min[index]), float(self.max[index])

    def observed(self, index: int) -> bool:
        return bool(self.min[index] <= self.max[index])

