# meetme/infrastructure/imaging/compositor.py
from typing import Optional, Tuple

from PIL import Image

from meetme.domain.geometry import display_scale, frame_rect
from meetme.domain.models import NormalizedFrame, PixelRect, Point, Size

# Box-reduce sources before the affine resample once they shrink by at least
# this factor, otherwise bicubic sampling aliases.
_REDUCE_THRESHOLD = 2


def _clip_box(rect: PixelRect, size: Tuple[int, int]) -> Tuple[int, int, int, int]:
    width, height = size
    left = min(max(0, round(rect.x)), width)
    top = min(max(0, round(rect.y)), height)
    right = min(max(left, round(rect.x + rect.width)), width)
    bottom = min(max(top, round(rect.y + rect.height)), height)
    return left, top, right, bottom


def _place_clipped(
    image: Image.Image,
    left: float,
    top: float,
    draw_w: float,
    draw_h: float,
    box: Tuple[int, int, int, int],
) -> Image.Image:
    """Resample ``image`` drawn at (left, top, draw_w, draw_h) into ``box``.

    Positions and sizes stay fractional; the affine mapping samples the source
    for every output pixel of the clip box, leaving transparency outside it.
    """
    source = image if image.mode == "RGBA" else image.convert("RGBA")
    factor = int(min(source.width / draw_w, source.height / draw_h))
    # reduce() rounds its output size up; scale from the original extent so
    # a partial trailing block does not shift the geometry
    fx = draw_w / source.width
    fy = draw_h / source.height
    if factor >= _REDUCE_THRESHOLD:
        source = source.reduce(factor)
        fx *= factor
        fy *= factor
    bx, by, br, bb = box
    return source.transform(
        (br - bx, bb - by),
        Image.Transform.AFFINE,
        (1 / fx, 0, (bx - left) / fx, 0, 1 / fy, (by - top) / fy),
        resample=Image.Resampling.BICUBIC,
    )


def fit_template(template_image: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """Template stretched to fill the whole target."""
    layer = template_image if template_image.mode == "RGBA" else template_image.convert("RGBA")
    if layer.size != size:
        layer = layer.resize(size, Image.Resampling.LANCZOS)
    return layer


def composite(
    template_image: Optional[Image.Image],
    user_image: Optional[Image.Image],
    frame: NormalizedFrame,
    scale: float,
    offset: Point,
    size: Tuple[int, int],
    format_size: Size,
) -> Optional[Image.Image]:
    """Render one composite at ``size``.

    The user image is clipped to the frame and the template drawn on top.
    ``offset`` is in frame pixels at the format's logical resolution and is
    scaled to the target by ``size[0] / format_size.width``. Returns None when
    either image is missing.
    """
    if template_image is None or user_image is None:
        return None

    width, height = size
    canvas = Image.new("RGBA", size, (0, 0, 0, 0))
    rect = frame_rect(frame, width, height)
    res_scale = display_scale(width, format_size.width)

    draw_w = user_image.width * scale * res_scale
    draw_h = user_image.height * scale * res_scale
    box = _clip_box(rect, size)
    if draw_w > 0 and draw_h > 0 and box[2] > box[0] and box[3] > box[1]:
        layer = _place_clipped(
            user_image,
            rect.x + offset.x * res_scale,
            rect.y + offset.y * res_scale,
            draw_w,
            draw_h,
            box,
        )
        canvas.paste(layer, box[:2])

    canvas.alpha_composite(fit_template(template_image, size))
    return canvas


def composite_template_only(template_image: Optional[Image.Image], size: Tuple[int, int]) -> Optional[Image.Image]:
    if template_image is None:
        return None
    canvas = Image.new("RGBA", size, (0, 0, 0, 0))
    canvas.alpha_composite(fit_template(template_image, size))
    return canvas
