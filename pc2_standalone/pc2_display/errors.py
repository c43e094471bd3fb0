"""Error conditions raised while decoding and displaying point clouds.

None of these are fatal to the pipeline: the coordinator catches them,
reports a status message and drops (or defers) the affected record.
"""


class PointCloudError(Exception):
    """Base class for every point cloud decode/display condition."""


class MissingGeometryFields(PointCloudError):
    """The record schema lacks one of the x, y, z fields."""

    def __init__(self, missing):
        self.missing = tuple(missing)
        super().__init__(
            "PointCloud2 missing geometry fields: " + ", ".join(self.missing))


class MalformedRecord(PointCloudError):
    """Stride or buffer length cannot hold the advertised field offsets."""


class UnknownFieldType(PointCloudError):
    """A field carries a type code outside the PointField table."""

    def __init__(self, name, type_code):
        self.name = name
        self.type_code = type_code
        super().__init__(f"Unknown data type in point: {type_code} "
                         f"(field '{name}')")


class NoTransformAvailable(PointCloudError):
    """No transform between a scan's frame and the target frame."""

    def __init__(self, source_frame, target_frame, stamp=None):
        self.source_frame = source_frame
        self.target_frame = target_frame
        self.stamp = stamp
        super().__init__(
            f"No transform between {source_frame} and {target_frame}")
