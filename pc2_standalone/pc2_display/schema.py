"""Field schema decoding: PointField descriptors -> extraction plan."""
from typing import Iterable, List

import numpy as np

from .errors import MissingGeometryFields
from .types import ExtractionPlan, FieldDescriptor, FieldType

FLAT_COLOR_NAME = "Flat Color"

GEOMETRY_FIELDS = ("x", "y", "z")

# PointField datatype code -> numpy dtype
FIELD_DTYPES = {
    FieldType.INT8: np.dtype(np.int8),
    FieldType.UINT8: np.dtype(np.uint8),
    FieldType.INT16: np.dtype(np.int16),
    FieldType.UINT16: np.dtype(np.uint16),
    FieldType.INT32: np.dtype(np.int32),
    FieldType.UINT32: np.dtype(np.uint32),
    FieldType.FLOAT32: np.dtype(np.float32),
    FieldType.FLOAT64: np.dtype(np.float64),
}


def field_dtype(type_code: int, bigendian: bool = False):
    """Numpy dtype for a PointField type code, or None if unknown."""
    dt = FIELD_DTYPES.get(type_code)
    if dt is None:
        return None
    return dt.newbyteorder('>' if bigendian else '<')


def _find_field(fields, name):
    """Find a field by name in a descriptor list."""
    for f in fields:
        if f.name == name:
            return f
    return None


def schema_signature(fields: Iterable[FieldDescriptor]):
    """Hashable identity of a field set, used to spot schema changes."""
    return tuple((f.name, int(f.byte_offset), int(f.type_code))
                 for f in fields)


def decode_schema(fields: List[FieldDescriptor]) -> ExtractionPlan:
    """Build the extraction plan for a record's field descriptors.

    Raises:
        MissingGeometryFields: if any of x, y, z is absent.
    """
    geometry = {name: _find_field(fields, name) for name in GEOMETRY_FIELDS}
    missing = [name for name, f in geometry.items() if f is None]
    if missing:
        raise MissingGeometryFields(missing)

    features = []
    seen = set(GEOMETRY_FIELDS)
    for f in fields:
        if f.name in seen:
            continue
        seen.add(f.name)
        features.append(f)

    return ExtractionPlan(
        x=geometry["x"],
        y=geometry["y"],
        z=geometry["z"],
        features=tuple(features),
        signature=schema_signature(fields),
    )


def feature_names(plan: ExtractionPlan = None) -> List[str]:
    """Selectable color sources: flat color followed by the plan's features.

    Position in this list is the 1-based feature index used by the color
    mapper; position 0 is always the flat color.
    """
    names = [FLAT_COLOR_NAME]
    if plan is not None:
        names.extend(plan.feature_names)
    return names
