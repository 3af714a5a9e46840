import base64
import io

import pytest
from PIL import Image

from meetme.domain.errors import ShareCancelled
from meetme.domain.models import NormalizedFrame, PlacementState, Template
from meetme.domain.ports import LimitCheck


def solid(size, color, mode="RGBA"):
    return Image.new(mode, size, color)


def split_image(size=(2000, 1000), left=(0, 255, 0, 255), right=(0, 0, 255, 255)):
    """Left half one colour, right half another."""
    img = Image.new("RGBA", size, left)
    img.paste(Image.new("RGBA", (size[0] // 2, size[1]), right), (size[0] // 2, 0))
    return img


def framed_template(size=(1080, 1080), frame=(0.2, 0.2, 0.6, 0.6), color=(255, 0, 0, 255)):
    """Opaque border with a fully transparent cutout where the frame is."""
    img = Image.new("RGBA", size, color)
    w, h = size
    x, y, fw, fh = frame
    hole = Image.new("RGBA", (round(fw * w), round(fh * h)), (0, 0, 0, 0))
    img.paste(hole, (round(x * w), round(y * h)))
    return img


def to_data_url(img, fmt="PNG"):
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    mime = "jpeg" if fmt == "JPEG" else fmt.lower()
    return f"data:image/{mime};base64,{base64.b64encode(buf.getvalue()).decode()}"


def make_template(**overrides):
    data = dict(
        id="tpl-1",
        name="My Cool  Frame",
        format="square",
        image_url="",
        frame=NormalizedFrame(x=0.2, y=0.2, width=0.6, height=0.6),
    )
    data.update(overrides)
    return Template(**data)


@pytest.fixture
def template():
    return make_template()


class FakeTemplates:
    def __init__(self, *templates, events=None):
        self.templates = {t.id: t for t in templates}
        self.events = events or {}

    async def get_template(self, template_id):
        return self.templates.get(template_id)

    async def get_event_slug(self, event_id):
        return self.events.get(event_id)


class FakePlaceholderStore:
    def __init__(self, templates: FakeTemplates = None):
        self.saved = {}
        self.templates = templates

    async def save_placement(self, template_id, scale, offset):
        self.saved[template_id] = PlacementState(scale, offset)
        if self.templates is not None and template_id in self.templates.templates:
            t = self.templates.templates[template_id]
            self.templates.templates[template_id] = t.model_copy(
                update={"placeholder_scale": scale, "placeholder_x": offset.x, "placeholder_y": offset.y}
            )

    async def load_placement(self, template_id):
        return self.saved.get(template_id)


class FakeLimiter:
    def __init__(self, result=None, error=None):
        self.result = result or LimitCheck(success=True)
        self.error = error
        self.calls = []

    async def check_and_reserve(self, event_id, template_id):
        self.calls.append((event_id, template_id))
        if self.error is not None:
            raise self.error
        return self.result


class FakeAnalytics:
    def __init__(self, error=None):
        self.downloads = []
        self.events = []
        self.error = error

    async def record_download(self, event_id, template_id):
        self.downloads.append((event_id, template_id))
        if self.error is not None:
            raise self.error

    async def track_event(self, event_id, template_id, stat_type):
        self.events.append((event_id, template_id, stat_type))


class FakePlatform:
    def __init__(self, can_share=False, share_error=None):
        self.can_share = can_share
        self.share_error = share_error
        self.saved = []
        self.shared = []
        self.clipboard = []
        self.opened = []

    def can_share_files(self):
        return self.can_share

    async def save_file(self, file):
        self.saved.append(file)

    async def share_files(self, files, title, text=None):
        if self.share_error is not None:
            raise self.share_error
        self.shared.append((files, title, text))

    async def write_clipboard(self, text):
        self.clipboard.append(text)

    async def open_url(self, url):
        self.opened.append(url)

    @property
    def side_effects(self):
        return len(self.saved) + len(self.shared) + len(self.clipboard) + len(self.opened)


class CancelledSharePlatform(FakePlatform):
    def __init__(self):
        super().__init__(can_share=True, share_error=ShareCancelled())


@pytest.fixture
def limiter():
    return FakeLimiter()


@pytest.fixture
def analytics():
    return FakeAnalytics()


@pytest.fixture
def platform():
    return FakePlatform()