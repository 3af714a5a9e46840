# meetme/domain/geometry.py
"""Coordinate model: normalized template space, full-resolution frame pixels
and rendered canvas pixels.

All functions are pure float math. Nothing here rounds; rounding is left to
the raster backend so repeated preview redraws never drift.
"""
from meetme.domain.models import (
    NormalizedFrame,
    PixelRect,
    PlacementState,
    Point,
    Size,
    Template,
)


def frame_rect(frame: NormalizedFrame, canvas_width: float, canvas_height: float) -> PixelRect:
    return PixelRect(
        x=frame.x * canvas_width,
        y=frame.y * canvas_height,
        width=frame.width * canvas_width,
        height=frame.height * canvas_height,
    )


def display_scale(canvas_width: float, format_width: float) -> float:
    """Ratio between the rendered canvas and the format's logical resolution."""
    return canvas_width / format_width


def frame_size(template: Template) -> Size:
    """Frame dimensions in frame-pixel space (full format resolution)."""
    dims = template.dimensions
    rect = frame_rect(template.frame, dims.width, dims.height)
    return Size(rect.width, rect.height)


def fit_scale(image_size: Size, target: Size, mode: str = "cover") -> float:
    scale_x = target.width / image_size.width
    scale_y = target.height / image_size.height
    if mode == "cover":
        return max(scale_x, scale_y)
    if mode == "contain":
        return min(scale_x, scale_y)
    raise ValueError(f"Unknown fit mode: {mode}")


def cover_scale(image_size: Size, target: Size) -> float:
    """Smallest scale at which the image fills the target with no gaps."""
    return fit_scale(image_size, target, "cover")


def centered_offset(image_size: Size, scale: float, target: Size) -> Point:
    return Point(
        (target.width - image_size.width * scale) / 2,
        (target.height - image_size.height * scale) / 2,
    )


def clamp_offset(offset: Point, scale: float, image_size: Size, target: Size) -> Point:
    """Project an offset onto the region where the scaled image covers the frame.

    Idempotent: clamping a clamped offset returns it unchanged.
    """
    min_x = target.width - image_size.width * scale
    min_y = target.height - image_size.height * scale
    return Point(
        min(0.0, max(offset.x, min_x)),
        min(0.0, max(offset.y, min_y)),
    )


def clamp_scale(scale: float, min_scale: float, max_factor: float) -> float:
    return max(min_scale, min(scale, min_scale * max_factor))


def initial_placement(image_size: Size, target: Size) -> PlacementState:
    """Cover-scaled and centered: the state right after a photo is loaded."""
    scale = cover_scale(image_size, target)
    return PlacementState(scale=scale, offset=centered_offset(image_size, scale, target))


def constrain(state: PlacementState, image_size: Size, target: Size, max_factor: float) -> PlacementState:
    """Clamp scale into [cover, cover * max_factor], then re-clamp the offset."""
    scale = clamp_scale(state.scale, cover_scale(image_size, target), max_factor)
    return PlacementState(scale=scale, offset=clamp_offset(state.offset, scale, image_size, target))
