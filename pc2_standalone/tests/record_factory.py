"""Helpers that build PointCloud2-style records for the test suites."""
import struct

from pc2_display.types import FieldDescriptor, Record

_STRUCT_CODES = {1: 'b', 2: 'B', 3: 'h', 4: 'H', 5: 'i', 6: 'I', 7: 'f', 8: 'd'}

XYZI_FIELDS = [
    ('x', 0, 7),
    ('y', 4, 7),
    ('z', 8, 7),
    ('intensity', 12, 7),
]


def make_fields(layout):
    return [FieldDescriptor(name, offset, code) for name, offset, code in layout]


def make_record(rows, fields=XYZI_FIELDS, point_step=16, frame='base_link',
                stamp=0.0, bigendian=False):
    """Pack ``rows`` (one tuple of values per point, in ``fields`` order).

    Fields with a type code outside the PointField table are skipped when
    packing, so their bytes stay zero.
    """
    order = '>' if bigendian else '<'
    data = bytearray(len(rows) * point_step)
    for i, row in enumerate(rows):
        base = i * point_step
        for (name, offset, code), value in zip(fields, row):
            fmt = _STRUCT_CODES.get(code)
            if fmt is None:
                continue
            struct.pack_into(order + fmt, data, base + offset, value)
    return Record(
        timestamp=stamp,
        source_frame=frame,
        field_descriptors=make_fields(fields),
        point_step=point_step,
        raw_bytes=bytes(data),
        is_bigendian=bigendian,
    )
