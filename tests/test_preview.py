import pytest

from meetme.domain import preview as preview_module
from meetme.domain.notifications import ToastBuffer
from meetme.domain.placement import PlacementController
from meetme.domain.preview import PreviewRenderer, preview_quality, render_template_preview
from meetme.infrastructure.imaging import compositor

from conftest import framed_template, make_template, solid, split_image


@pytest.mark.parametrize(
    "dpr, is_mobile, expected",
    [
        (1.0, False, 1.0),
        (1.5, False, 1.5),
        (3.0, False, 2.0),
        (2.0, True, 2.4),
        (3.0, True, 3.0),
        (1.0, True, 1.2),
        (0, False, 1.0),
    ],
)
def test_preview_quality(dpr, is_mobile, expected):
    assert preview_quality(dpr, is_mobile) == pytest.approx(expected)


@pytest.fixture
def toasts():
    return ToastBuffer()


@pytest.fixture
def renderer(template, toasts):
    controller = PlacementController(template, max_zoom=3.0)
    r = PreviewRenderer(controller, notifier=toasts, is_mobile=False, device_pixel_ratio=2.0)
    r.set_template_image(framed_template())
    r.resize(300)
    yield r
    r.dispose()


def test_resize_sizes_backing_store_and_viewport(renderer):
    assert renderer.surface.backing_size == (600, 600)
    viewport = renderer.controller.viewport
    assert (viewport.width, viewport.height, viewport.quality) == (600, 600, 2.0)


def test_resize_follows_format_aspect(toasts):
    controller = PlacementController(make_template(format="story"), max_zoom=3.0)
    r = PreviewRenderer(controller, notifier=toasts, is_mobile=True, device_pixel_ratio=1.0)
    r.resize(360)

    assert r.surface.css_height == pytest.approx(640)
    assert r.surface.backing_size == (432, 768)
    r.dispose()


def test_template_only_render_before_photo(renderer):
    image = renderer.surface.image
    assert renderer.render_count >= 1
    assert image.size == (600, 600)
    assert image.getpixel((10, 10))[0] > 250
    assert image.getpixel((300, 300))[3] == 0


def test_user_photo_renders_and_follows_state(renderer):
    renderer.set_user_image(split_image())
    count = renderer.render_count
    first = renderer.surface.image

    # frame spans 120..480 on the 600px canvas; photo midline sits on 300
    assert first.getpixel((200, 300))[:3] == (0, 255, 0)
    assert first.getpixel((400, 300))[:3] == (0, 0, 255)

    renderer.controller.set_scale(1.0)
    assert renderer.render_count == count + 1
    assert renderer.surface.image is not first


def test_placeholder_renders_when_no_user_photo(toasts):
    template = make_template(placeholder_scale=0.648, placeholder_x=-324.0, placeholder_y=0.0)
    controller = PlacementController(template, max_zoom=3.0)
    r = PreviewRenderer(controller, notifier=toasts)
    r.set_template_image(solid((1080, 1080), (0, 0, 0, 0)))
    r.set_placeholder_image(split_image())
    r.resize(540)

    assert r.surface.image.getpixel((150, 270))[:3] == (0, 255, 0)
    assert r.surface.image.getpixel((400, 270))[:3] == (0, 0, 255)
    r.dispose()


def test_render_failure_is_contained(renderer, monkeypatch):
    renderer.set_user_image(split_image())

    def broken(*args, **kwargs):
        raise MemoryError("out of pixels")

    monkeypatch.setattr(compositor, "composite", broken)
    count = renderer.render_count

    assert renderer.render() is None
    assert renderer.render_count == count
    assert renderer.surface.image.getpixel((10, 10))[3] == 0


def test_missing_template_image_renders_nothing(template, toasts):
    controller = PlacementController(template, max_zoom=3.0)
    r = PreviewRenderer(controller, notifier=toasts)
    r.resize(300)
    r.set_user_image(split_image())

    assert r.render_count == 0
    assert r.surface.image.getpixel((150, 150))[3] == 0
    r.dispose()


def test_report_load_failure_raises_toast(renderer, toasts):
    renderer.report_load_failure("template image", OSError("404"))
    drained = toasts.drain()
    assert [(t.level, t.message) for t in drained] == [("error", "Failed to load template image")]


def test_dispose_stops_rendering(renderer):
    renderer.set_user_image(split_image())
    renderer.dispose()
    count = renderer.render_count

    renderer.controller.set_scale(1.2)

    assert renderer.render_count == count
    assert renderer.surface.disposed
    assert renderer.render() is None


def test_set_template_refits_and_resizes(renderer):
    renderer.set_user_image(split_image())
    landscape = make_template(format="landscape")

    renderer.set_template(landscape, solid((1200, 630), (0, 0, 0, 0)))

    assert renderer.surface.backing_size == (600, 315)
    assert renderer.controller.state.scale == pytest.approx(max(720 / 2000, 378 / 1000))


def test_full_resolution_template_preview():
    template = make_template(placeholder_scale=0.648, placeholder_x=-324.0, placeholder_y=0.0)
    out = render_template_preview(template, framed_template(), split_image())
    assert out.size == (1080, 1080)
    assert out.getpixel((300, 540))[:3] == (0, 255, 0)

    plain = render_template_preview(make_template(), framed_template())
    assert plain.getpixel((540, 540))[3] == 0


def test_preview_logger_does_not_propagate():
    assert preview_module.logger.propagate is False
