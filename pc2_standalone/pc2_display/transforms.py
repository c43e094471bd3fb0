"""Rigid transforms, an in-memory frame tree, and the per-scan transform cache.

``TransformStore`` is a stand-in for a tf buffer: it is fed stamped
parent->child transforms and answers ``lookup(target, source, stamp)``.
``TransformCache`` resolves a transform for each scan and fills its
display-frame coordinates, deferring scans whose transform is not yet known.
"""
import bisect
import threading
from collections import deque

import numpy as np
from scipy.spatial.transform import Rotation

from .errors import NoTransformAvailable


def normalize_frame(frame: str) -> str:
    """Strip whitespace and the leading '/' some publishers prepend."""
    return (frame or "").strip().lstrip("/")


class RigidTransform:
    """Rotation + translation mapping points from a child into a parent frame."""

    __slots__ = ("rotation", "translation")

    def __init__(self, rotation: Rotation = None, translation=None):
        self.rotation = rotation if rotation is not None else Rotation.identity()
        if translation is None:
            translation = np.zeros(3)
        self.translation = np.asarray(translation, dtype=np.float64).reshape(3)

    @classmethod
    def identity(cls) -> "RigidTransform":
        return cls()

    @classmethod
    def from_quaternion(cls, translation, quat_xyzw) -> "RigidTransform":
        """Build from a translation and an [x, y, z, w] quaternion."""
        return cls(Rotation.from_quat(quat_xyzw), translation)

    @classmethod
    def from_yaw(cls, x: float, y: float, yaw: float,
                 z: float = 0.0) -> "RigidTransform":
        return cls(Rotation.from_euler("z", yaw), (x, y, z))

    def __mul__(self, other: "RigidTransform") -> "RigidTransform":
        """self * other: apply ``other`` first, then ``self``."""
        return RigidTransform(
            self.rotation * other.rotation,
            self.rotation.apply(other.translation) + self.translation,
        )

    def inverse(self) -> "RigidTransform":
        inv = self.rotation.inv()
        return RigidTransform(inv, -inv.apply(self.translation))

    def apply3(self, points: np.ndarray) -> np.ndarray:
        """Transform (N, 3) points, returning (N, 3) float64."""
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        if len(pts) == 0:
            return np.zeros((0, 3))
        return self.rotation.apply(pts) + self.translation

    def apply(self, x: float, y: float, z: float):
        """Transform one point; returns the display-plane (x, y)."""
        p = self.apply3(np.array([[x, y, z]]))[0]
        return float(p[0]), float(p[1])

    def apply_points(self, points: np.ndarray) -> np.ndarray:
        """Transform (N, 3) points into (N, 2) display-plane coordinates."""
        return self.apply3(points)[:, :2]


class _Edge:
    """Stamped samples of one parent->child transform."""

    __slots__ = ("parent", "static", "stamps", "transforms")

    def __init__(self, parent: str, static: bool):
        self.parent = parent
        self.static = static
        self.stamps = deque()
        self.transforms = deque()


class TransformStore:
    """Frame tree of stamped transforms with a bounded time horizon.

    Args:
        cache_time: Seconds of history kept per dynamic edge.
        extrapolation_limit: How far past the newest sample of a dynamic
            edge a lookup may still use that sample.
    """

    def __init__(self, cache_time: float = 10.0,
                 extrapolation_limit: float = 0.5):
        self.cache_time = cache_time
        self.extrapolation_limit = extrapolation_limit
        self._edges = {}  # child -> _Edge
        self._lock = threading.Lock()

    def set_transform(self, parent: str, child: str,
                      transform: RigidTransform, stamp: float = 0.0,
                      static: bool = False):
        """Record ``transform`` mapping ``child`` coordinates into ``parent``."""
        parent = normalize_frame(parent)
        child = normalize_frame(child)
        with self._lock:
            edge = self._edges.get(child)
            if edge is None or edge.parent != parent or edge.static != static:
                edge = _Edge(parent, static)
                self._edges[child] = edge
            if static:
                edge.stamps.clear()
                edge.transforms.clear()
                edge.stamps.append(stamp)
                edge.transforms.append(transform)
                return
            if edge.stamps and stamp < edge.stamps[-1]:
                # out of order: insert, keeping stamps sorted
                i = bisect.bisect_right(edge.stamps, stamp)
                edge.stamps.insert(i, stamp)
                edge.transforms.insert(i, transform)
            else:
                edge.stamps.append(stamp)
                edge.transforms.append(transform)
            horizon = edge.stamps[-1] - self.cache_time
            while len(edge.stamps) > 1 and edge.stamps[0] < horizon:
                edge.stamps.popleft()
                edge.transforms.popleft()

    def frames(self):
        with self._lock:
            names = set(self._edges)
            names.update(e.parent for e in self._edges.values())
        return sorted(names)

    def clear(self):
        with self._lock:
            self._edges.clear()

    def _edge_at(self, edge: _Edge, stamp: float):
        if edge.static:
            return edge.transforms[-1]
        i = bisect.bisect_right(edge.stamps, stamp) - 1
        if i < 0:
            return None
        if (i == len(edge.stamps) - 1
                and stamp - edge.stamps[i] > self.extrapolation_limit):
            return None
        return edge.transforms[i]

    def _chain(self, frame: str):
        """Frames from ``frame`` up to its root."""
        chain = [frame]
        seen = {frame}
        while frame in self._edges:
            frame = self._edges[frame].parent
            if frame in seen:
                break
            seen.add(frame)
            chain.append(frame)
        return chain

    def _to_ancestor(self, chain, ancestor: str, stamp: float):
        """Compose edges from chain[0] up to ``ancestor`` (T_ancestor_frame)."""
        total = RigidTransform.identity()
        for frame in chain:
            if frame == ancestor:
                return total
            step = self._edge_at(self._edges[frame], stamp)
            if step is None:
                return None
            total = step * total
        return None

    def lookup(self, target_frame: str, source_frame: str, stamp: float):
        """Transform mapping ``source_frame`` points into ``target_frame``.

        Returns None when either frame is unknown, the frames are not
        connected, or ``stamp`` falls outside the cached history.
        """
        target = normalize_frame(target_frame)
        source = normalize_frame(source_frame)
        if target == source:
            return RigidTransform.identity()
        with self._lock:
            source_chain = self._chain(source)
            target_chain = self._chain(target)
            target_set = set(target_chain)
            common = next((f for f in source_chain if f in target_set), None)
            if common is None:
                return None
            t_common_source = self._to_ancestor(source_chain, common, stamp)
            t_common_target = self._to_ancestor(target_chain, common, stamp)
        if t_common_source is None or t_common_target is None:
            return None
        return t_common_target.inverse() * t_common_source


class TransformCache:
    """Resolves and applies display-frame transforms for scans.

    ``source`` is any object with ``lookup(target_frame, source_frame,
    stamp) -> Optional[transform]``.
    """

    def __init__(self, source, target_frame: str = "map"):
        self.source = source
        self.target_frame = target_frame

    def resolve(self, source_frame: str, stamp: float,
                target_frame: str = None):
        """Transform for (frame, stamp) into ``target_frame``.

        ``target_frame`` defaults to the cache's current target frame.

        Raises:
            NoTransformAvailable: if the collaborator has none (yet).
        """
        if target_frame is None:
            target_frame = self.target_frame
        transform = None
        if self.source is not None:
            transform = self.source.lookup(target_frame, source_frame, stamp)
        if transform is None:
            raise NoTransformAvailable(source_frame, target_frame, stamp)
        return transform

    @staticmethod
    def apply_transform(scan, transform):
        """Fill ``scan.transformed_points`` from ``transform``."""
        scan.transformed_points[:] = transform.apply_points(scan.points)
        scan.transformed = True

    def apply(self, scan) -> bool:
        """Transform ``scan`` if it is not transformed yet.

        Returns:
            True if the scan holds valid display coordinates afterwards.
        """
        if scan.transformed:
            return True
        try:
            transform = self.resolve(scan.source_frame, scan.stamp)
        except NoTransformAvailable:
            scan.transformed = False
            return False
        self.apply_transform(scan, transform)
        return True

    @staticmethod
    def invalidate(scans):
        """Force re-resolution of every scan on the next pass."""
        for scan in scans:
            scan.transformed = False
