# meetme/domain/preview.py
import logging
from typing import Optional

from PIL import Image

from meetme.domain.models import PlacementState, Size, Template
from meetme.domain.placement import PlacementController, Viewport
from meetme.domain.ports import Notifier
from meetme.infrastructure.imaging import compositor
from meetme.infrastructure.imaging.surface import RenderSurface

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] [preview] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False


def preview_quality(device_pixel_ratio: float, is_mobile: bool) -> float:
    """Backing-store multiplier: sharper on mobile, capped to bound the pixel count."""
    dpr = device_pixel_ratio or 1.0
    if is_mobile:
        return min(dpr * 1.2, 3.0)
    return min(dpr, 2.0)


class PreviewRenderer:
    """Keeps a RenderSurface in sync with a PlacementController.

    Redraws on every committed state, on image swaps and on resize, always
    from the controller's latest state.
    """

    def __init__(
        self,
        controller: PlacementController,
        notifier: Optional[Notifier] = None,
        is_mobile: bool = False,
        device_pixel_ratio: float = 1.0,
    ):
        self.controller = controller
        self.notifier = notifier
        self.is_mobile = is_mobile
        self.device_pixel_ratio = device_pixel_ratio
        self.surface: Optional[RenderSurface] = None
        self.template_image: Optional[Image.Image] = None
        self.user_image: Optional[Image.Image] = None
        self.placeholder_image: Optional[Image.Image] = None
        self.render_count = 0
        self._template_layer: Optional[Image.Image] = None
        self._unsubscribe = controller.subscribe(self._on_state)

    @property
    def quality(self) -> float:
        return preview_quality(self.device_pixel_ratio, self.is_mobile)

    @property
    def template(self) -> Template:
        return self.controller.template

    # --- surface lifecycle -------------------------------------------------

    def resize(self, container_width: float) -> None:
        """Fit the display width to the container; height follows the format."""
        if not container_width or container_width <= 0:
            return
        dims = self.template.dimensions
        css_height = container_width * (dims.height / dims.width)
        if self.surface is None or self.surface.disposed:
            self.surface = RenderSurface(container_width, css_height, self.quality)
        else:
            self.surface.resize(container_width, css_height, self.quality)
        width, height = self.surface.backing_size
        self.controller.set_viewport(Viewport(width, height, self.quality))
        self.render()

    attach = resize

    def dispose(self) -> None:
        self._unsubscribe()
        if self.surface is not None:
            self.surface.dispose()
        self._template_layer = None

    # --- inputs ------------------------------------------------------------

    def set_template(self, template: Template, template_image: Optional[Image.Image]) -> None:
        self.template_image = template_image
        self._template_layer = None
        css_width = self.surface.css_width if self.surface is not None else None
        self.controller.set_template(template)
        if css_width:
            self.resize(css_width)
        else:
            self.render()

    def set_template_image(self, template_image: Optional[Image.Image]) -> None:
        self.template_image = template_image
        self._template_layer = None
        self.render()

    def set_user_image(self, user_image: Optional[Image.Image]) -> None:
        self.user_image = user_image
        if user_image is None:
            self.controller.clear_image()
            self.render()
        else:
            # load_image commits a fresh placement, which triggers a render
            self.controller.load_image(Size(user_image.width, user_image.height))

    def set_placeholder_image(self, placeholder_image: Optional[Image.Image]) -> None:
        self.placeholder_image = placeholder_image
        self.render()

    def report_load_failure(self, what: str, error: Exception) -> None:
        logger.warning(f"Failed to load {what}: {error}")
        if self.notifier is not None:
            self.notifier.error(f"Failed to load {what}")

    # --- drawing -----------------------------------------------------------

    def _on_state(self, state: Optional[PlacementState]) -> None:
        self.render()

    def _fitted_template(self, size) -> Optional[Image.Image]:
        if self.template_image is None:
            return None
        if self._template_layer is None or self._template_layer.size != size:
            self._template_layer = compositor.fit_template(self.template_image, size)
        return self._template_layer

    def render(self) -> Optional[Image.Image]:
        """Draw the current frame onto the surface. Never raises."""
        surface = self.surface
        if surface is None or surface.disposed:
            return None
        try:
            size = surface.backing_size
            template_layer = self._fitted_template(size)
            frame = self._draw(size, template_layer)
            if frame is None:
                surface.clear()
                return None
            surface.present(frame)
            self.render_count += 1
            return frame
        except Exception:
            logger.exception("Preview render failed")
            surface.clear()
            return None

    def _draw(self, size, template_layer) -> Optional[Image.Image]:
        template = self.template
        state = self.controller.state
        if self.user_image is not None and state is not None:
            return compositor.composite(
                template_layer, self.user_image, template.frame,
                state.scale, state.offset, size, template.dimensions,
            )
        placement = template.placeholder
        if self.placeholder_image is not None and placement is not None:
            return compositor.composite(
                template_layer, self.placeholder_image, template.frame,
                placement.scale, placement.offset, size, template.dimensions,
            )
        return compositor.composite_template_only(template_layer, size)


def render_template_preview(
    template: Template,
    template_image: Optional[Image.Image],
    placeholder_image: Optional[Image.Image] = None,
) -> Optional[Image.Image]:
    """Template card at full format resolution, with its sample photo if configured."""
    dims = template.dimensions
    size = (int(dims.width), int(dims.height))
    placement = template.placeholder
    if placeholder_image is not None and placement is not None:
        return compositor.composite(
            template_image, placeholder_image, template.frame,
            placement.scale, placement.offset, size, dims,
        )
    return compositor.composite_template_only(template_image, size)
