import base64

import pytest
from fastapi.testclient import TestClient

from meetme.config.settings import settings
from meetme.delivery.platform import ResponsePlatform
from meetme.domain.editor_service import EditorService
from meetme.domain.errors import ExportFailure
from meetme.domain.ports import LimitCheck
from meetme.main import app

from conftest import (
    FakeAnalytics,
    FakeLimiter,
    FakePlaceholderStore,
    FakeTemplates,
    framed_template,
    make_template,
    split_image,
    to_data_url,
)

API = settings.API_V1_STR
ADMIN = (settings.BASIC_AUTH_USERNAME, settings.BASIC_AUTH_PASSWORD)


@pytest.fixture
def templates():
    return FakeTemplates(
        make_template(image_url=to_data_url(framed_template())),
        make_template(
            id="tpl-ph",
            name="Sample",
            image_url=to_data_url(framed_template()),
            placeholder_image_url=to_data_url(split_image()),
        ),
    )


@pytest.fixture
def limiter():
    return FakeLimiter()


@pytest.fixture
def client(templates, limiter):
    service = EditorService(
        templates,
        limiter,
        FakeAnalytics(),
        placeholders=FakePlaceholderStore(templates),
    )
    with TestClient(app) as test_client:
        app.state.editor_service = service
        yield test_client
    app.state.editor_service = None


def create(client, **overrides):
    body = dict(
        event_id="evt-id",
        event_slug="evt",
        template_id="tpl-1",
        image=to_data_url(split_image()),
        container_width=540,
    )
    body.update(overrides)
    return client.post(f"{API}/sessions", json=body)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["service_ready"] is True


def test_create_session(client):
    response = create(client)

    assert response.status_code == 201
    data = response.json()
    assert data["template_id"] == "tpl-1"
    assert data["scale"] == pytest.approx(0.648)
    assert data["offset_x"] == pytest.approx(-324)
    assert data["min_scale"] == pytest.approx(0.648)
    assert data["max_scale"] == pytest.approx(1.944)
    assert (data["preview_width"], data["preview_height"]) == (540, 540)
    assert data["gesture"] == "idle"


def test_create_session_errors(client):
    assert create(client, template_id="missing").status_code == 404
    assert create(client, image="data:image/png;base64,AAAA").status_code == 422
    assert create(client, device_pixel_ratio=0).status_code == 422


def test_drag_through_pointer_events(client):
    session_id = create(client).json()["session_id"]

    down = client.post(f"{API}/sessions/{session_id}/pointer", json={"type": "down", "x": 270, "y": 270})
    assert down.json()["gesture"] == "dragging"

    # 540px canvas: display scale 0.5, so 50 css px is 100 frame px
    moved = client.post(f"{API}/sessions/{session_id}/pointer", json={"type": "move", "x": 320, "y": 270})
    assert moved.json()["offset_x"] == pytest.approx(-224)

    up = client.post(f"{API}/sessions/{session_id}/pointer", json={"type": "up"})
    assert up.json()["gesture"] == "idle"


def test_pinch_scale_and_wheel(client):
    session_id = create(client).json()["session_id"]
    url = f"{API}/sessions/{session_id}"

    client.post(f"{url}/touch", json={"type": "start", "touches": [{"x": 200, "y": 270}, {"x": 300, "y": 270}]})
    pinched = client.post(f"{url}/touch", json={"type": "move", "touches": [{"x": 150, "y": 270}, {"x": 350, "y": 270}]})
    assert pinched.json()["scale"] == pytest.approx(1.296)
    assert pinched.json()["gesture"] == "pinching"
    ended = client.post(f"{url}/touch", json={"type": "end"})
    assert ended.json()["gesture"] == "idle"

    assert client.post(f"{url}/scale", json={"scale": 99}).json()["scale"] == pytest.approx(1.944)
    assert client.post(f"{url}/wheel", json={"delta_y": 10000}).json()["scale"] == pytest.approx(0.648)
    assert client.post(f"{url}/reset").json()["offset_x"] == pytest.approx(-324)


def test_resize_and_preview(client):
    session_id = create(client).json()["session_id"]

    resized = client.post(f"{API}/sessions/{session_id}/resize", json={"container_width": 300})
    assert resized.json()["preview_width"] == 300

    preview = client.get(f"{API}/sessions/{session_id}/preview")
    assert preview.status_code == 200
    assert preview.headers["content-type"] == "image/png"
    assert preview.headers["cache-control"] == "no-store"
    assert preview.content.startswith(b"\x89PNG")


def test_unknown_session_is_404(client):
    assert client.get(f"{API}/sessions/nope").status_code == 404
    assert client.post(f"{API}/sessions/nope/scale", json={"scale": 1}).status_code == 404
    assert client.post(f"{API}/sessions/nope/export", json={}).status_code == 404


def test_delete_session(client):
    session_id = create(client).json()["session_id"]
    assert client.delete(f"{API}/sessions/{session_id}").status_code == 204
    assert client.get(f"{API}/sessions/{session_id}").status_code == 404


def test_export_file_returns_png_attachment(client, limiter):
    session_id = create(client).json()["session_id"]

    response = client.post(f"{API}/sessions/{session_id}/export", json={"target": "file"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.headers["content-disposition"] == 'attachment; filename="evt-my-cool-frame-meetme.png"'
    assert response.content.startswith(b"\x89PNG")
    assert limiter.calls == [("evt-id", "tpl-1")]


def test_export_limit_reached(client, limiter):
    limiter.result = LimitCheck(success=False, limit_reached=True, message="Download limit reached")
    session_id = create(client).json()["session_id"]

    response = client.post(f"{API}/sessions/{session_id}/export", json={"target": "file"})

    assert response.status_code == 403
    data = response.json()
    assert data["outcome"] == "limit_reached"
    assert data["image"] is None
    assert data["toasts"] == [{"level": "error", "message": "Download limit reached", "persist": False}]


def test_export_social_returns_manual_share_steps(client):
    session_id = create(client).json()["session_id"]

    response = client.post(
        f"{API}/sessions/{session_id}/export",
        json={"target": "social", "network": "linkedin", "caption": "See you there!"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["outcome"] == "shared_manually"
    assert data["filename"] == "evt-my-cool-frame-meetme.png"
    assert data["clipboard_text"] == "See you there!"
    assert data["open_url"] == settings.LINKEDIN_COMPOSE_URL
    header, encoded = data["image"].split(",", 1)
    assert header == "data:image/png;base64"
    assert base64.b64decode(encoded).startswith(b"\x89PNG")
    assert data["toasts"][0]["persist"] is True


def test_export_device_downloads_without_share_sheet(client):
    session_id = create(client).json()["session_id"]
    response = client.post(f"{API}/sessions/{session_id}/export", json={"target": "device"})
    assert response.status_code == 200
    assert response.json()["outcome"] == "downloaded"


def test_template_preview(client):
    response = client.get(f"{API}/templates/tpl-1/preview")
    assert response.status_code == 200
    assert response.content.startswith(b"\x89PNG")
    assert client.get(f"{API}/templates/missing/preview").status_code == 404


def test_placeholder_routes_require_auth(client):
    assert client.post(f"{API}/templates/tpl-ph/placeholder-session", json={}).status_code == 401
    assert client.get(f"{API}/templates/tpl-ph/placeholder").status_code == 401
    wrong = client.get(f"{API}/templates/tpl-ph/placeholder", auth=("admin", "wrong"))
    assert wrong.status_code == 401


def test_placeholder_editing_flow(client):
    created = client.post(
        f"{API}/templates/tpl-ph/placeholder-session", json={"container_width": 540}, auth=ADMIN,
    )
    assert created.status_code == 201
    session_id = created.json()["session_id"]

    client.post(f"{API}/sessions/{session_id}/scale", json={"scale": 1.0})
    saved = client.post(f"{API}/sessions/{session_id}/placeholder", auth=ADMIN)
    assert saved.status_code == 200

    stored = client.get(f"{API}/templates/tpl-ph/placeholder", auth=ADMIN).json()
    assert stored["scale"] == pytest.approx(1.0)


def test_put_placeholder_clamps(client):
    response = client.put(
        f"{API}/templates/tpl-ph/placeholder",
        json={"scale": 50, "offset_x": 10, "offset_y": -99999},
        auth=ADMIN,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["scale"] == pytest.approx(1.944)
    assert data["offset_x"] == pytest.approx(0)
    assert data["offset_y"] == pytest.approx(648 - 1944)


def test_participant_session_cannot_save_placeholder(client):
    session_id = create(client).json()["session_id"]
    response = client.post(f"{API}/sessions/{session_id}/placeholder", auth=ADMIN)
    assert response.status_code == 400


def test_create_session_refuses_server_side_image_sources(client, tmp_path):
    path = tmp_path / "private.png"
    split_image(left=(12, 34, 56, 255), right=(12, 34, 56, 255)).save(path)

    assert create(client, image=str(path)).status_code == 422
    assert create(client, image=f"file://{path}").status_code == 422
    assert create(client, image="http://127.0.0.1:9/photo.png").status_code == 422
    assert app.state.editor_service.session_count == 0


def test_create_session_accepts_bare_base64(client):
    encoded = to_data_url(split_image()).split(",", 1)[1]
    assert create(client, image=encoded).status_code == 201


async def test_response_platform_has_no_share_sheet():
    platform = ResponsePlatform()
    assert platform.can_share_files() is False
    with pytest.raises(ExportFailure):
        await platform.share_files([], title="MeetMe")
