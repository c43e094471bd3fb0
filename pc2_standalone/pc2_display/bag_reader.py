"""ROS1 bag record source using the rosbags library (no ROS install needed).

Replays sensor_msgs/PointCloud2 messages from a .bag file as ``Record``
objects and feeds tf2_msgs/TFMessage messages (``/tf``, ``/tf_static``) into
a ``TransformStore`` in bag order, so the display sees transforms arrive
alongside the clouds.
"""
import threading
import time
from pathlib import Path

from rosbags.rosbag1 import Reader
from rosbags.typesys import Stores, get_typestore
from tqdm import tqdm

from .transforms import RigidTransform, TransformStore
from .types import FieldDescriptor, Record

TF_TOPICS = ('/tf', '/tf_static')


def _stamp_to_sec(stamp) -> float:
    return stamp.sec + stamp.nanosec * 1e-9


def pointcloud2_to_record(msg) -> Record:
    """Convert a deserialized PointCloud2 message into a ``Record``."""
    fields = [FieldDescriptor(name=f.name, byte_offset=int(f.offset),
                              type_code=int(f.datatype))
              for f in msg.fields]
    return Record(
        timestamp=_stamp_to_sec(msg.header.stamp),
        source_frame=msg.header.frame_id,
        field_descriptors=fields,
        point_step=int(msg.point_step),
        raw_bytes=bytes(msg.data),
        is_bigendian=bool(msg.is_bigendian),
    )


def apply_tf_message(msg, store: TransformStore, static: bool = False) -> int:
    """Feed every TransformStamped of a TFMessage into ``store``."""
    for ts in msg.transforms:
        t = ts.transform.translation
        q = ts.transform.rotation
        store.set_transform(
            ts.header.frame_id, ts.child_frame_id,
            RigidTransform.from_quaternion((t.x, t.y, t.z),
                                           (q.x, q.y, q.z, q.w)),
            stamp=_stamp_to_sec(ts.header.stamp),
            static=static,
        )
    return len(msg.transforms)


def list_pointcloud_topics(bag_path: str):
    """Topics in the bag that carry PointCloud2 messages."""
    with Reader(Path(bag_path)) as reader:
        return sorted({c.topic for c in reader.connections
                       if c.msgtype.endswith('PointCloud2')})


def read_records(bag_path: str, topic: str, transforms: TransformStore = None,
                 stop_event: threading.Event = None, rate: float = 0.0,
                 progress: bool = True):
    """Read a ROS1 bag and yield point cloud records in bag order.

    Args:
        bag_path: Path to the .bag file.
        topic: PointCloud2 topic to replay.
        transforms: If given, /tf and /tf_static are fed into it.
        stop_event: Replay stops as soon as this is set.
        rate: Playback speed relative to bag time (0 = as fast as possible).
        progress: Show a tqdm progress bar.

    Yields:
        ``Record`` objects for ``topic``.
    """
    typestore = get_typestore(Stores.ROS1_NOETIC)
    bag = Path(bag_path)
    wall_start = None
    bag_start = None

    with Reader(bag) as reader:
        wanted = [c for c in reader.connections
                  if c.topic == topic
                  or (transforms is not None and c.topic in TF_TOPICS)]
        if not any(c.topic == topic for c in wanted):
            tqdm.write(f"[BagReader] Topic {topic} not found in {bag.name}")
            return

        messages = reader.messages(connections=wanted)
        if progress:
            messages = tqdm(messages, desc="Replaying bag", unit="msg",
                            dynamic_ncols=True)
        for connection, timestamp, rawdata in messages:
            if stop_event is not None and stop_event.is_set():
                break

            if rate > 0:
                t = timestamp * 1e-9
                if wall_start is None:
                    wall_start, bag_start = time.monotonic(), t
                delay = (t - bag_start) / rate - (time.monotonic() - wall_start)
                if delay > 0 and stop_event is not None:
                    if stop_event.wait(delay):
                        break
                elif delay > 0:
                    time.sleep(delay)

            msg = typestore.deserialize_ros1(rawdata, connection.msgtype)
            if connection.topic in TF_TOPICS and connection.topic != topic:
                apply_tf_message(msg, transforms,
                                 static=connection.topic == '/tf_static')
                continue
            if not connection.msgtype.endswith('PointCloud2'):
                tqdm.write(f"[BagReader] Skipping {connection.msgtype} "
                           f"on {connection.topic}")
                continue
            yield pointcloud2_to_record(msg)


class BagSubscription:
    """A running replay thread; ``shutdown`` stops it."""

    def __init__(self, thread: threading.Thread, stop_event: threading.Event):
        self._thread = thread
        self._stop = stop_event

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def join(self, timeout: float = None):
        self._thread.join(timeout)

    def shutdown(self):
        self._stop.set()
        if threading.current_thread() is not self._thread:
            self._thread.join()


class BagRecordSource:
    """Transport collaborator that replays a bag on a background thread.

    ``subscribe(topic, callback)`` starts delivering every record of
    ``topic`` to ``callback`` from the replay thread.
    """

    def __init__(self, bag_path: str, transforms: TransformStore = None,
                 rate: float = 0.0, progress: bool = True):
        self.bag_path = bag_path
        self.transforms = transforms
        self.rate = rate
        self.progress = progress

    def subscribe(self, topic: str, callback) -> BagSubscription:
        stop_event = threading.Event()

        def _replay():
            for record in read_records(self.bag_path, topic,
                                       transforms=self.transforms,
                                       stop_event=stop_event,
                                       rate=self.rate,
                                       progress=self.progress):
                callback(record)

        thread = threading.Thread(target=_replay, name=f"replay:{topic}",
                                  daemon=True)
        thread.start()
        return BagSubscription(thread, stop_event)
