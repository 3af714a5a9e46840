# meetme/infrastructure/imaging/surface.py
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image


class RenderSurface:
    """Raster target with an explicit create / resize / dispose lifecycle.

    ``css_width``/``css_height`` are the on-screen display size; the backing
    image is that size multiplied by ``quality`` (the preview quality
    multiplier, 1.0 for offscreen export surfaces).
    """

    def __init__(self, css_width: float, css_height: float, quality: float = 1.0):
        self.css_width = css_width
        self.css_height = css_height
        self.quality = quality
        self.image: Optional[Image.Image] = None
        self._disposed = False
        self.clear()

    @classmethod
    def offscreen(cls, width: int, height: int) -> "RenderSurface":
        return cls(width, height, 1.0)

    @property
    def backing_size(self) -> Tuple[int, int]:
        # Same truncation a canvas applies when its width/height are assigned
        return (
            max(1, int(self.css_width * self.quality)),
            max(1, int(self.css_height * self.quality)),
        )

    @property
    def disposed(self) -> bool:
        return self._disposed

    def resize(self, css_width: float, css_height: float, quality: Optional[float] = None) -> None:
        self.css_width = css_width
        self.css_height = css_height
        if quality is not None:
            self.quality = quality
        self.clear()

    def clear(self) -> None:
        if self._disposed:
            return
        self.image = Image.new("RGBA", self.backing_size, (0, 0, 0, 0))

    def present(self, frame: Image.Image) -> None:
        """Replace the surface contents with a fully rendered frame."""
        if self._disposed:
            return
        if frame.size != self.backing_size:
            raise ValueError(f"Frame size {frame.size} does not match surface {self.backing_size}")
        self.image = frame

    def to_png(self) -> bytes:
        if self.image is None:
            raise ValueError("Surface has been disposed")
        buf = BytesIO()
        self.image.save(buf, format="PNG", optimize=True)
        return buf.getvalue()

    def dispose(self) -> None:
        if self.image is not None:
            self.image.close()
        self.image = None
        self._disposed = True
