# meetme/domain/placement.py
"""Interactive placement: pointer, touch and slider input to PlacementState.

Pointer and touch coordinates are CSS pixels relative to the preview canvas'
top-left corner. They are multiplied by the viewport's preview quality to
land in canvas backing pixels, where the frame hit test happens; offsets are
stored in frame pixels at the format's full resolution.
"""
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence

from meetme.config.settings import settings
from meetme.domain import geometry
from meetme.domain.models import PlacementState, Point, Size, Template

logger = logging.getLogger(__name__)

Listener = Callable[[Optional[PlacementState]], None]

# Scale change per wheel delta unit; one 100-unit notch is roughly 10%
WHEEL_ZOOM_RATE = 0.001


class Gesture(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    PINCHING = "pinching"


@dataclass(frozen=True)
class Viewport:
    """Backing-pixel size of the preview canvas and its quality multiplier."""

    width: float
    height: float
    quality: float = 1.0


def _finite(*values) -> bool:
    return all(isinstance(v, (int, float)) and math.isfinite(v) for v in values)


def touch_distance(a: Point, b: Point) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


class PlacementController:
    def __init__(self, template: Template, max_zoom: float = None):
        self._template = template
        self.max_zoom = max_zoom if max_zoom is not None else settings.MAX_ZOOM_FACTOR
        self._image_size: Optional[Size] = None
        self._state: Optional[PlacementState] = None
        self._viewport: Optional[Viewport] = None
        self._gesture = Gesture.IDLE
        self._drag_anchor: Optional[Point] = None
        self._pinch_distance: Optional[float] = None
        self._pinch_scale: Optional[float] = None
        self._listeners: List[Listener] = []

    # --- read side ---------------------------------------------------------

    @property
    def template(self) -> Template:
        return self._template

    @property
    def image_size(self) -> Optional[Size]:
        return self._image_size

    @property
    def state(self) -> Optional[PlacementState]:
        return self._state

    @property
    def gesture(self) -> Gesture:
        return self._gesture

    @property
    def viewport(self) -> Optional[Viewport]:
        return self._viewport

    @property
    def frame_size(self) -> Size:
        return geometry.frame_size(self._template)

    @property
    def min_scale(self) -> Optional[float]:
        if self._image_size is None:
            return None
        return geometry.cover_scale(self._image_size, self.frame_size)

    @property
    def max_scale(self) -> Optional[float]:
        cover = self.min_scale
        return None if cover is None else cover * self.max_zoom

    # --- observers ---------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, state: Optional[PlacementState], force: bool = False) -> None:
        if state == self._state and not force:
            return
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Placement listener failed")

    # --- lifecycle ---------------------------------------------------------

    def set_viewport(self, viewport: Viewport) -> None:
        self._viewport = viewport

    def set_template(self, template: Template) -> None:
        """Swap templates; a loaded photo is re-fitted to the new frame."""
        self._template = template
        self._end_gesture()
        if self._image_size is not None:
            self._commit(geometry.initial_placement(self._image_size, self.frame_size), force=True)

    def load_image(self, image_size: Size) -> None:
        if not _finite(image_size.width, image_size.height) or image_size.width <= 0 or image_size.height <= 0:
            logger.warning(f"Ignoring image with invalid size {image_size}")
            return
        self._image_size = image_size
        self._end_gesture()
        self._commit(geometry.initial_placement(image_size, self.frame_size), force=True)

    def clear_image(self) -> None:
        self._image_size = None
        self._end_gesture()
        self._commit(None)

    def restore(self, scale: float, offset: Point) -> None:
        """Adopt a persisted placement, clamped to the current frame."""
        if self._image_size is None or not _finite(scale, offset.x, offset.y):
            return
        self._commit(
            geometry.constrain(PlacementState(scale, offset), self._image_size, self.frame_size, self.max_zoom)
        )

    def reset(self) -> None:
        if self._image_size is not None:
            self._commit(geometry.initial_placement(self._image_size, self.frame_size))

    # --- helpers -----------------------------------------------------------

    def _ready(self) -> bool:
        return self._image_size is not None and self._state is not None and self._viewport is not None

    def _canvas_point(self, x: float, y: float) -> Point:
        quality = self._viewport.quality
        return Point(x * quality, y * quality)

    def _display_scale(self) -> float:
        return geometry.display_scale(self._viewport.width, self._template.dimensions.width)

    def _end_gesture(self) -> None:
        self._gesture = Gesture.IDLE
        self._drag_anchor = None
        self._pinch_distance = None
        self._pinch_scale = None

    def _apply_scale(self, scale: float) -> None:
        cover = self.min_scale
        new_scale = geometry.clamp_scale(scale, cover, self.max_zoom)
        offset = geometry.clamp_offset(self._state.offset, new_scale, self._image_size, self.frame_size)
        self._commit(PlacementState(new_scale, offset))

    # --- pointer -----------------------------------------------------------

    def pointer_down(self, x: float, y: float) -> None:
        if not self._ready() or not _finite(x, y) or self._gesture == Gesture.PINCHING:
            return
        point = self._canvas_point(x, y)
        rect = geometry.frame_rect(self._template.frame, self._viewport.width, self._viewport.height)
        if not rect.contains(point):
            return
        ds = self._display_scale()
        offset = self._state.offset
        self._gesture = Gesture.DRAGGING
        self._drag_anchor = Point(
            point.x - rect.x - offset.x * ds,
            point.y - rect.y - offset.y * ds,
        )

    def pointer_move(self, x: float, y: float) -> None:
        if self._gesture != Gesture.DRAGGING or not self._ready() or not _finite(x, y):
            return
        point = self._canvas_point(x, y)
        rect = geometry.frame_rect(self._template.frame, self._viewport.width, self._viewport.height)
        ds = self._display_scale()
        wanted = Point(
            (point.x - rect.x - self._drag_anchor.x) / ds,
            (point.y - rect.y - self._drag_anchor.y) / ds,
        )
        scale = self._state.scale
        self._commit(PlacementState(scale, geometry.clamp_offset(wanted, scale, self._image_size, self.frame_size)))

    def pointer_up(self) -> None:
        self._end_gesture()

    pointer_leave = pointer_up
    pointer_cancel = pointer_up

    # --- touch -------------------------------------------------------------

    def touch_start(self, touches: Sequence[Point]) -> None:
        if not self._ready():
            return
        if len(touches) == 2:
            # Two fingers always win over a drag in progress
            distance = touch_distance(touches[0], touches[1])
            if not _finite(distance):
                return
            self._end_gesture()
            self._gesture = Gesture.PINCHING
            self._pinch_distance = distance
            self._pinch_scale = self._state.scale
            return
        if len(touches) == 1:
            self.pointer_down(touches[0].x, touches[0].y)

    def touch_move(self, touches: Sequence[Point]) -> None:
        if not self._ready():
            return
        if self._gesture == Gesture.PINCHING:
            if len(touches) != 2 or not self._pinch_distance:
                return
            distance = touch_distance(touches[0], touches[1])
            if not _finite(distance):
                return
            self._apply_scale(self._pinch_scale * (distance / self._pinch_distance))
            return
        if self._gesture == Gesture.DRAGGING and len(touches) == 1:
            self.pointer_move(touches[0].x, touches[0].y)

    def touch_end(self, remaining: Sequence[Point] = ()) -> None:
        self._end_gesture()

    def touch_cancel(self) -> None:
        self._end_gesture()

    # --- explicit controls -------------------------------------------------

    def set_scale(self, scale: float) -> None:
        """Slider input, clamped to [cover, cover * max_zoom]."""
        if self._image_size is None or self._state is None or not _finite(scale):
            return
        self._apply_scale(scale)

    def zoom_by(self, factor: float) -> None:
        """Wheel / button zoom relative to the current scale."""
        if self._state is None or not _finite(factor) or factor <= 0:
            return
        self.set_scale(self._state.scale * factor)

    def wheel(self, delta_y: float) -> None:
        if not _finite(delta_y):
            return
        self.zoom_by(math.exp(-delta_y * WHEEL_ZOOM_RATE))
