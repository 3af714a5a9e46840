"""Data model definitions: template records, frame geometry and placement state."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Tolerance for frames whose edges were stored as floats summing to 1.0000001
_EDGE_EPSILON = 1e-6


class TemplateFormat(str, Enum):
    SQUARE = "square"
    STORY = "story"
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"


@dataclass(frozen=True)
class Size:
    width: float
    height: float


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class PixelRect:
    """Rectangle in some pixel space (canvas, export or frame)."""

    x: float
    y: float
    width: float
    height: float

    def contains(self, point: Point) -> bool:
        return (
            self.x <= point.x <= self.x + self.width
            and self.y <= point.y <= self.y + self.height
        )


FORMAT_DIMENSIONS = {
    TemplateFormat.SQUARE: Size(1080, 1080),
    TemplateFormat.STORY: Size(1080, 1920),
    TemplateFormat.PORTRAIT: Size(1080, 1350),
    TemplateFormat.LANDSCAPE: Size(1200, 630),
}


@dataclass(frozen=True)
class PlacementState:
    """Scale and frame-pixel offset of one photo inside one frame.

    Never mutated: every gesture step produces a new instance.
    """

    scale: float
    offset: Point


class NormalizedFrame(BaseModel):
    """Photo cutout in [0, 1] template coordinates."""

    model_config = ConfigDict(frozen=True)

    x: float = Field(ge=0.0, le=1.0)
    y: float = Field(ge=0.0, le=1.0)
    width: float = Field(gt=0.0, le=1.0)
    height: float = Field(gt=0.0, le=1.0)

    @model_validator(mode="after")
    def _inside_template(self):
        if self.x + self.width > 1.0 + _EDGE_EPSILON:
            raise ValueError("frame x + width must not exceed 1")
        if self.y + self.height > 1.0 + _EDGE_EPSILON:
            raise ValueError("frame y + height must not exceed 1")
        return self


class Template(BaseModel):
    """Read-only template record as consumed by the compositing core."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    format: TemplateFormat
    image_url: str
    frame: NormalizedFrame
    placeholder_image_url: Optional[str] = None
    placeholder_scale: Optional[float] = None
    placeholder_x: Optional[float] = None
    placeholder_y: Optional[float] = None

    @property
    def dimensions(self) -> Size:
        return FORMAT_DIMENSIONS[self.format]

    @property
    def placeholder(self) -> Optional[PlacementState]:
        if self.placeholder_scale is None:
            return None
        return PlacementState(
            scale=self.placeholder_scale,
            offset=Point(self.placeholder_x or 0.0, self.placeholder_y or 0.0),
        )
