from pydantic import BaseModel, Field
from typing import List, Literal, Optional

class TouchPoint(BaseModel):
    x: float
    y: float

class CreateSession(BaseModel):
    event_id: str
    event_slug: Optional[str] = None       # used only when the event is unknown
    template_id: str
    image: str                             # URL, data URL or base64
    is_mobile: bool = False
    device_pixel_ratio: float = Field(default=1.0, gt=0)
    container_width: Optional[float] = Field(default=None, gt=0)

class CreatePlaceholderSession(BaseModel):
    device_pixel_ratio: float = Field(default=1.0, gt=0)
    container_width: Optional[float] = Field(default=None, gt=0)

class PointerInput(BaseModel):
    type: Literal["down", "move", "up", "leave", "cancel"]
    x: float = 0.0                         # CSS pixels relative to the canvas
    y: float = 0.0

class TouchInput(BaseModel):
    type: Literal["start", "move", "end", "cancel"]
    touches: List[TouchPoint] = Field(default_factory=list)

class ScaleInput(BaseModel):
    scale: float

class WheelInput(BaseModel):
    delta_y: float

class ResizeInput(BaseModel):
    container_width: float = Field(gt=0)

class ExportBody(BaseModel):
    target: Literal["file", "device", "social"] = "file"
    network: Literal["linkedin", "instagram"] = "linkedin"
    caption: str = ""

class PlaceholderBody(BaseModel):
    scale: float = Field(gt=0)
    offset_x: float
    offset_y: float

class ToastOut(BaseModel):
    level: str
    message: str
    persist: bool = False

class SessionOut(BaseModel):
    session_id: str
    template_id: str
    scale: Optional[float]
    offset_x: Optional[float]
    offset_y: Optional[float]
    min_scale: Optional[float]
    max_scale: Optional[float]
    gesture: str
    preview_width: int
    preview_height: int
    preview_quality: float
    toasts: List[ToastOut] = Field(default_factory=list)

class ExportOut(BaseModel):
    outcome: str
    filename: Optional[str] = None
    image: Optional[str] = None            # data URL of the PNG, when a file was produced
    clipboard_text: Optional[str] = None
    open_url: Optional[str] = None
    toasts: List[ToastOut] = Field(default_factory=list)
