"""Point extraction: walk a record's byte buffer using an extraction plan.

Every field offset comes from the record itself, so each one is checked
against the point stride before any bytes are reinterpreted.
"""
import numpy as np

from .errors import MalformedRecord, UnknownFieldType
from .schema import field_dtype
from .types import ExtractionPlan, FieldType, Record

_GEOMETRY_WIDTH = 4  # x, y, z are always read as float32


def _column(buf: np.ndarray, offset: int, dtype) -> np.ndarray:
    """Reinterpret ``dtype.itemsize`` bytes at ``offset`` of every row."""
    raw = buf[:, offset:offset + dtype.itemsize].copy()
    return raw.view(dtype).reshape(-1)


def check_bounds(record: Record, plan: ExtractionPlan):
    """Reject records whose stride cannot hold the planned fields.

    Raises:
        MalformedRecord: on a zero stride, a non-empty buffer shorter than
            one point, or any field overrunning the stride.
    """
    step = int(record.point_step)
    if step <= 0:
        raise MalformedRecord("PointCloud2 point_step is zero")
    size = len(record.raw_bytes)
    if 0 < size < step:
        raise MalformedRecord(
            f"PointCloud2 data of {size} bytes is shorter than "
            f"point_step {step}")

    for f in (plan.x, plan.y, plan.z):
        if f.byte_offset < 0 or f.byte_offset + _GEOMETRY_WIDTH > step:
            raise MalformedRecord(
                f"Field '{f.name}' at offset {f.byte_offset} overruns "
                f"point_step {step}")

    for f in plan.features:
        dt = field_dtype(f.type_code)
        if dt is None:
            continue
        if f.byte_offset < 0 or f.byte_offset + dt.itemsize > step:
            raise MalformedRecord(
                f"Field '{f.name}' at offset {f.byte_offset} overruns "
                f"point_step {step}")


def extract_points(record: Record, plan: ExtractionPlan,
                   points: np.ndarray = None, features: np.ndarray = None,
                   checked: bool = False):
    """Decode every point of ``record``.

    Args:
        record: Raw record (bytes + stride).
        plan: Extraction plan for the record's schema.
        points: Optional (N, 3) float32 output array to fill.
        features: Optional (N, F) float32 output array to fill.
        checked: The caller already ran ``check_bounds`` on this record.

    Returns:
        Tuple of (points (N, 3) float32, features (N, F) float32,
        unknown) where ``unknown`` lists an ``UnknownFieldType`` for every
        feature whose type code is not recognized (those columns are 0.0).

    Raises:
        MalformedRecord: if the record cannot be read safely.
    """
    if not checked:
        check_bounds(record, plan)

    step = int(record.point_step)
    data = record.raw_bytes
    n_points = len(data) // step
    n_features = plan.num_features

    if points is None:
        points = np.empty((n_points, 3), dtype=np.float32)
    if features is None:
        features = np.empty((n_points, n_features), dtype=np.float32)

    unknown = []
    if n_points == 0:
        for f in plan.features:
            if field_dtype(f.type_code) is None:
                unknown.append(UnknownFieldType(f.name, f.type_code))
        return points, features, unknown

    buf = np.frombuffer(data, dtype=np.uint8,
                        count=n_points * step).reshape(n_points, step)

    geometry_dt = field_dtype(FieldType.FLOAT32, record.is_bigendian)
    for dim, f in enumerate((plan.x, plan.y, plan.z)):
        points[:, dim] = _column(buf, f.byte_offset, geometry_dt)

    for col, f in enumerate(plan.features):
        dt = field_dtype(f.type_code, record.is_bigendian)
        if dt is None:
            unknown.append(UnknownFieldType(f.name, f.type_code))
            features[:, col] = 0.0
            continue
        features[:, col] = _column(buf, f.byte_offset, dt).astype(np.float32)

    return points, features, unknown
