"""Point cloud display pipeline orchestration.

Records come in on the ingestion thread through ``deliver``; the render
thread calls ``transform`` and ``snapshot`` once per draw cycle; the
configuration surface calls the ``set_*`` methods from wherever it lives.
Byte decoding runs outside the buffer lock. Everything that touches
buffered scans, the running extrema or the color state runs under it.
"""
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

import numpy as np

from .colormap import (ColorMapConfig, color_to_hex, compute_colors,
                       parse_color, visible_fields)
from .config import DisplayConfig, config_from_dict
from .errors import NoTransformAvailable, PointCloudError
from .extract import check_bounds, extract_points
from .scan_buffer import ScanBuffer
from .schema import (FLAT_COLOR_NAME, decode_schema, feature_names,
                     schema_signature)
from .transforms import TransformCache
from .types import ExtractionPlan, Record, RunningExtrema, Scan

TAG = "[PointCloud2]"


@dataclass
class Status:
    """Most recent condition worth showing to the user."""
    level: str = "info"
    message: str = ""


class PointCloudPipeline:
    """Decode, colorize, transform and buffer incoming point cloud records.

    Args:
        config: Initial display settings.
        transforms: Transform collaborator with ``lookup(target_frame,
            source_frame, stamp)``; None means nothing ever transforms.
        subscriber: Transport with ``subscribe(topic, callback)`` returning
            a handle that has ``shutdown()``.
        on_change: Called with no arguments whenever the buffered output
            changes (new scan, recolor, eviction).
    """

    def __init__(self, config: DisplayConfig = None, transforms=None,
                 subscriber=None, on_change: Callable[[], None] = None):
        self.config = config_from_dict({}, base=config)
        self.buffer = ScanBuffer(self.config.buffer_size)
        self.lock = self.buffer.lock
        self.transform_cache = TransformCache(transforms,
                                              self.config.target_frame)
        self.subscriber = subscriber
        self.on_change = on_change

        self.color = ColorMapConfig(
            min_value=self.config.value_min,
            max_value=self.config.value_max,
            auto_range=self.config.use_automaxmin,
            use_rainbow=self.config.use_rainbow,
            unpack_rgb_bytes=self.config.unpack_rgb,
            flat_color=parse_color(self.config.min_color),
            gradient_min_color=parse_color(self.config.min_color),
            gradient_max_color=parse_color(self.config.max_color),
        )
        self.extrema = RunningExtrema()
        self.plan: Optional[ExtractionPlan] = None
        self._features = feature_names(None)
        self._pending_color_mode = None
        if self.config.color_mode != FLAT_COLOR_NAME:
            self._pending_color_mode = self.config.color_mode

        self._ingest_lock = threading.Lock()
        self._subscription = None
        self._reported_unknown = set()
        self.has_message = False
        self.status = Status()

        self._print_info("Constructed PointCloudPipeline")
        topic, self.config.topic = self.config.topic, ""
        if topic:
            self.set_topic(topic)

    # ------------------------------------------------------------------
    # Status reporting
    # ------------------------------------------------------------------
    def _report(self, level: str, message: str):
        repeated = (self.status.level == level
                    and self.status.message == message)
        self.status = Status(level, message)
        if not repeated:
            print(f"{TAG} {level.upper()}: {message}")

    def _print_info(self, message: str):
        self.status = Status("info", message)

    def _print_warning(self, message: str):
        self._report("warning", message)

    def _print_error(self, message: str):
        self._report("error", message)

    def _notify(self):
        if self.on_change is not None:
            self.on_change()

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------
    def deliver(self, record: Record) -> bool:
        """Process one record to completion.

        Returns:
            True if a scan was buffered, False if the record was dropped.
            Decode problems never raise; they end up in ``status``.
        """
        with self._ingest_lock:
            self.has_message = True
            try:
                buffered = self._process(record)
            except PointCloudError as e:
                self._print_error(str(e))
                return False
        if buffered:
            self._notify()
        return buffered

    def _process(self, record: Record) -> bool:
        # a clear (topic switch) after this point drops the record
        generation = self.buffer.generation
        signature = schema_signature(record.field_descriptors)
        plan = self.plan
        if plan is None or plan.signature != signature:
            plan = decode_schema(record.field_descriptors)
            with self.lock:
                if generation != self.buffer.generation:
                    return False
                self._install_schema(plan)

        check_bounds(record, plan)

        target_frame = self.transform_cache.target_frame
        transform = None
        try:
            transform = self.transform_cache.resolve(
                record.source_frame, record.timestamp, target_frame)
        except NoTransformAvailable as e:
            self._print_error(str(e))

        scan = self.buffer.acquire_slot()
        n_points = len(record.raw_bytes) // int(record.point_step)
        scan.allocate(n_points, plan.num_features)
        _, _, unknown = extract_points(record, plan, scan.points,
                                       scan.features, checked=True)
        for cond in unknown:
            key = (plan.signature, cond.name)
            if key not in self._reported_unknown:
                self._reported_unknown.add(key)
                self._print_warning(str(cond))

        scan.stamp = record.timestamp
        scan.source_frame = record.source_frame
        scan.schema = plan
        if transform is not None:
            TransformCache.apply_transform(scan, transform)
        else:
            scan.transformed = False

        with self.lock:
            if (generation != self.buffer.generation
                    or scan.generation != self.buffer.generation):
                return False
            if target_frame != self.transform_cache.target_frame:
                # target frame changed while decoding; re-resolve on render
                scan.transformed = False
            self._colorize(scan)
            return self.buffer.push(scan)

    def _install_schema(self, plan: ExtractionPlan):
        """Switch to a new schema generation. Caller holds the lock."""
        current = self.color_mode
        self.plan = plan
        self.extrema.reset(plan.num_features)
        self._features = feature_names(plan)

        index = 0
        if self._pending_color_mode in self._features:
            index = self._features.index(self._pending_color_mode)
            self._pending_color_mode = None
        elif current in self._features:
            index = self._features.index(current)
        self.color.feature_index = index

    # ------------------------------------------------------------------
    # Color
    # ------------------------------------------------------------------
    def _color_columns(self, scan: Scan):
        """(feature column in ``scan``, extrema slot) for the current mode."""
        column = self.color.column
        if column is None:
            return None, None
        if scan.schema is self.plan or (
                scan.schema is not None and self.plan is not None
                and scan.schema.signature == self.plan.signature):
            return column, column
        found = None
        if scan.schema is not None:
            found = scan.schema.feature_index(self.color_mode)
        return (found if found is not None else -1), column

    def _colorize(self, scan: Scan):
        column, slot = self._color_columns(scan)
        compute_colors(scan.features, self.color, self.extrema,
                       column=column, extrema_index=slot, out=scan.colors)

    def recolor(self):
        """Recompute the color of every buffered point in place."""
        with self.lock:
            for scan in self.buffer:
                self._colorize(scan)
        self._notify()

    # ------------------------------------------------------------------
    # Render side
    # ------------------------------------------------------------------
    def transform(self) -> int:
        """Retry the display transform of every untransformed scan.

        Returns:
            Number of scans still waiting for a transform.
        """
        pending = 0
        with self.lock:
            for scan in self.buffer:
                if not self.transform_cache.apply(scan):
                    pending += 1
        if pending:
            self._print_warning("Unable to get transform.")
        return pending

    def snapshot(self) -> np.ndarray:
        """Colored display points, oldest scan first.

        Returns:
            (N, 6) float64 array of rows (x, y, r, g, b, a). Scans without a
            display transform are left out.
        """
        with self.lock:
            parts = []
            for scan in self.buffer:
                if not scan.transformed or len(scan) == 0:
                    continue
                rows = np.empty((len(scan), 6))
                rows[:, 0:2] = scan.transformed_points
                rows[:, 2:5] = scan.colors[:, :3]
                rows[:, 5] = self.config.alpha
                parts.append(rows)
        if not parts:
            return np.zeros((0, 6))
        return np.concatenate(parts, axis=0)

    # ------------------------------------------------------------------
    # Configuration surface
    # ------------------------------------------------------------------
    @property
    def feature_names(self) -> List[str]:
        with self.lock:
            return list(self._features)

    @property
    def color_mode(self) -> str:
        index = self.color.feature_index
        if 0 <= index < len(self._features):
            return self._features[index]
        return FLAT_COLOR_NAME

    def visible_fields(self) -> frozenset:
        return visible_fields(self.color)

    def set_topic(self, topic: str):
        """Switch source: drop every scan and forget the schema."""
        topic = (topic or "").strip()
        if topic == self.config.topic:
            return
        self.shutdown()
        with self.lock:
            if self.color.feature_index > 0 and self._pending_color_mode is None:
                self._pending_color_mode = self.color_mode
            self.buffer.clear()
            self.plan = None
            self.extrema.reset(0)
            self._features = feature_names(None)
            self.color.feature_index = 0
            self._reported_unknown.clear()
        self.has_message = False
        self._print_warning("No messages received.")

        self.config.topic = topic
        if topic and self.subscriber is not None:
            self._subscription = self.subscriber.subscribe(topic, self.deliver)
            print(f"{TAG} Subscribing to {topic}")
        self._notify()

    def set_target_frame(self, frame: str):
        """Change the display frame; every scan is re-resolved lazily."""
        with self.lock:
            self.config.target_frame = frame
            self.transform_cache.target_frame = frame
            TransformCache.invalidate(self.buffer)
        self._notify()

    def set_buffer_size(self, size: int):
        size = max(1, int(size))
        with self.lock:
            self.config.buffer_size = size
            self.buffer.resize(size)
        self._notify()

    def set_point_size(self, size: int):
        self.config.point_size = max(1, int(size))
        self._notify()

    def set_alpha(self, alpha: float):
        """Coerce alpha to [0.0, 1.0]."""
        with self.lock:
            self.config.alpha = max(0.0, min(float(alpha), 1.0))
        self._notify()

    def set_color_mode(self, name: str):
        """Select the color source by name ("Flat Color" or a field name).

        A name the current schema does not have is remembered and applied
        when a schema carrying it arrives.
        """
        with self.lock:
            if name in self._features:
                self.color.feature_index = self._features.index(name)
                self._pending_color_mode = None
            else:
                self._pending_color_mode = name
        self.recolor()

    def set_min_color(self, color: str):
        rgba = parse_color(color)
        with self.lock:
            self.config.min_color = color_to_hex(rgba)
            self.color.flat_color = rgba
            self.color.gradient_min_color = rgba
        self.recolor()

    def set_max_color(self, color: str):
        rgba = parse_color(color)
        with self.lock:
            self.config.max_color = color_to_hex(rgba)
            self.color.gradient_max_color = rgba
        self.recolor()

    def set_value_min(self, value: float):
        with self.lock:
            self.config.value_min = float(value)
            if not self.color.auto_range:
                self.color.min_value = float(value)
        self.recolor()

    def set_value_max(self, value: float):
        with self.lock:
            self.config.value_max = float(value)
            if not self.color.auto_range:
                self.color.max_value = float(value)
        self.recolor()

    def set_use_rainbow(self, enabled: bool):
        with self.lock:
            self.config.use_rainbow = bool(enabled)
            self.color.use_rainbow = bool(enabled)
        self.recolor()

    def set_unpack_rgb(self, enabled: bool):
        with self.lock:
            self.config.unpack_rgb = bool(enabled)
            self.color.unpack_rgb_bytes = bool(enabled)
        self.recolor()

    def set_use_automaxmin(self, enabled: bool):
        """Toggle auto-ranging; turning it off restores the typed-in range."""
        with self.lock:
            self.config.use_automaxmin = bool(enabled)
            self.color.auto_range = bool(enabled)
            if not enabled:
                self.color.min_value = self.config.value_min
                self.color.max_value = self.config.value_max
        self.recolor()

    def load_settings(self, values: dict):
        """Apply a persisted settings document; every key is optional.

        Rainbow must be settled before auto min/max, and both before the
        color mode is selected, since each step reads the previous one.
        """
        dc = config_from_dict(values, base=self.config)
        self.set_topic(dc.topic)
        self.set_point_size(dc.point_size)
        self.set_buffer_size(dc.buffer_size)
        requested_mode = dc.color_mode
        if values and ('color_mode' in values
                       or 'color_transformer' in values):
            with self.lock:
                self._pending_color_mode = requested_mode
        else:
            requested_mode = self._pending_color_mode or self.color_mode
        self.set_min_color(dc.min_color)
        self.set_max_color(dc.max_color)
        self.set_value_min(dc.value_min)
        self.set_value_max(dc.value_max)
        self.set_alpha(dc.alpha)
        self.set_target_frame(dc.target_frame)
        with self.lock:
            self.config.unpack_rgb = dc.unpack_rgb
            self.color.unpack_rgb_bytes = dc.unpack_rgb
        self.set_use_rainbow(dc.use_rainbow)
        self.set_use_automaxmin(dc.use_automaxmin)
        self.set_color_mode(requested_mode)

    def save_settings(self) -> dict:
        """Every setting as a flat document, ready for ``save_config``."""
        with self.lock:
            values = self.config.to_dict()
            mode = self.color_mode
            if self.color.feature_index == 0 and self._pending_color_mode:
                mode = self._pending_color_mode
            values['color_mode'] = mode
        return values

    def settings(self) -> DisplayConfig:
        return config_from_dict(self.save_settings())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def subscription(self):
        """Handle of the active transport subscription, or None."""
        return self._subscription

    def shutdown(self):
        """Stop the current subscription, if any."""
        if self._subscription is not None:
            self._subscription.shutdown()
            self._subscription = None
