# meetme/delivery/api/editor.py
import base64
import logging
import secrets
import traceback
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from meetme.config.settings import settings
from meetme.delivery.platform import ResponsePlatform
from meetme.delivery.schemas.body import (
    CreatePlaceholderSession,
    CreateSession,
    ExportBody,
    ExportOut,
    PlaceholderBody,
    PointerInput,
    ResizeInput,
    ScaleInput,
    SessionOut,
    ToastOut,
    TouchInput,
    WheelInput,
)
from meetme.domain.editor_service import EditorService, EditorSession
from meetme.domain.errors import (
    ImageLoadError,
    ImageNotReadyError,
    ImageTooLargeError,
    MeetMeError,
    SessionNotFoundError,
    TemplateNotFoundError,
)
from meetme.domain.export import ExportOutcome
from meetme.domain.models import Point
from meetme.domain.notifications import ToastBuffer

router = APIRouter()
security = HTTPBasic()
logger = logging.getLogger("uvicorn.error")

OUTCOME_STATUS = {
    ExportOutcome.LIMIT_REACHED: status.HTTP_403_FORBIDDEN,
    ExportOutcome.NOT_READY: status.HTTP_409_CONFLICT,
    ExportOutcome.FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

def verify_basic_auth(creds: HTTPBasicCredentials = Depends(security)) -> None:
    ok_user = secrets.compare_digest(creds.username, settings.BASIC_AUTH_USERNAME)
    ok_pass = secrets.compare_digest(creds.password, settings.BASIC_AUTH_PASSWORD)
    if not (ok_user and ok_pass):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

def get_service(request: Request) -> EditorService:
    service = getattr(request.app.state, "editor_service", None)
    if service is None:
        logger.error("Editor service not initialized")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is not ready. Please try again in a moment.",
        )
    return service

def to_http_error(e: Exception) -> HTTPException:
    if isinstance(e, (SessionNotFoundError, TemplateNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.user_message)
    if isinstance(e, ImageTooLargeError):
        return HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=e.user_message)
    if isinstance(e, ImageLoadError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.user_message)
    if isinstance(e, ImageNotReadyError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e) or e.user_message)
    if isinstance(e, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    logger.error(f"=== EDITOR ERROR: {e} ===\n{traceback.format_exc()}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error.",
    )

def toasts_out(buffer: ToastBuffer):
    return [ToastOut(level=t.level, message=t.message, persist=t.persist) for t in buffer.drain()]

def session_out(session: EditorSession) -> SessionOut:
    controller = session.controller
    state = controller.state
    width, height = session.renderer.surface.backing_size
    return SessionOut(
        session_id=session.id,
        template_id=session.template.id,
        scale=state.scale if state else None,
        offset_x=state.offset.x if state else None,
        offset_y=state.offset.y if state else None,
        min_scale=controller.min_scale,
        max_scale=controller.max_scale,
        gesture=controller.gesture.value,
        preview_width=width,
        preview_height=height,
        preview_quality=session.renderer.quality,
        toasts=toasts_out(session.toasts),
    )

async def _apply(service: EditorService, session_id: str, action) -> SessionOut:
    try:
        session = await service.apply(session_id, action)
    except MeetMeError as e:
        raise to_http_error(e)
    return session_out(session)

# --- sessions ---------------------------------------------------------------

@router.post("/sessions", response_model=SessionOut, status_code=status.HTTP_201_CREATED)
async def create_session(body: CreateSession, service: EditorService = Depends(get_service)):
    try:
        session = await service.create_session(
            event_id=body.event_id,
            event_slug=body.event_slug,
            template_id=body.template_id,
            photo_src=body.image,
            is_mobile=body.is_mobile,
            device_pixel_ratio=body.device_pixel_ratio,
            container_width=body.container_width,
        )
    except Exception as e:
        raise to_http_error(e)
    return session_out(session)

@router.get("/sessions/{session_id}", response_model=SessionOut)
async def get_session(session_id: str, service: EditorService = Depends(get_service)):
    try:
        return session_out(service.get(session_id))
    except MeetMeError as e:
        raise to_http_error(e)

@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: str, service: EditorService = Depends(get_service)):
    try:
        service.close_session(session_id)
    except MeetMeError as e:
        raise to_http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.post("/sessions/{session_id}/pointer", response_model=SessionOut)
async def pointer(session_id: str, body: PointerInput, service: EditorService = Depends(get_service)):
    def action(session: EditorSession):
        controller = session.controller
        if body.type == "down":
            controller.pointer_down(body.x, body.y)
        elif body.type == "move":
            controller.pointer_move(body.x, body.y)
        elif body.type == "up":
            controller.pointer_up()
        elif body.type == "leave":
            controller.pointer_leave()
        else:
            controller.pointer_cancel()
    return await _apply(service, session_id, action)

@router.post("/sessions/{session_id}/touch", response_model=SessionOut)
async def touch(session_id: str, body: TouchInput, service: EditorService = Depends(get_service)):
    touches = [Point(t.x, t.y) for t in body.touches]

    def action(session: EditorSession):
        controller = session.controller
        if body.type == "start":
            controller.touch_start(touches)
        elif body.type == "move":
            controller.touch_move(touches)
        elif body.type == "end":
            controller.touch_end(touches)
        else:
            controller.touch_cancel()
    return await _apply(service, session_id, action)

@router.post("/sessions/{session_id}/scale", response_model=SessionOut)
async def set_scale(session_id: str, body: ScaleInput, service: EditorService = Depends(get_service)):
    return await _apply(service, session_id, lambda s: s.controller.set_scale(body.scale))

@router.post("/sessions/{session_id}/wheel", response_model=SessionOut)
async def wheel(session_id: str, body: WheelInput, service: EditorService = Depends(get_service)):
    return await _apply(service, session_id, lambda s: s.controller.wheel(body.delta_y))

@router.post("/sessions/{session_id}/reset", response_model=SessionOut)
async def reset(session_id: str, service: EditorService = Depends(get_service)):
    return await _apply(service, session_id, lambda s: s.controller.reset())

@router.post("/sessions/{session_id}/resize", response_model=SessionOut)
async def resize(session_id: str, body: ResizeInput, service: EditorService = Depends(get_service)):
    return await _apply(service, session_id, lambda s: s.renderer.resize(body.container_width))

@router.get("/sessions/{session_id}/preview")
async def preview(session_id: str, service: EditorService = Depends(get_service)):
    try:
        png = await service.preview_png(session_id)
    except MeetMeError as e:
        raise to_http_error(e)
    return Response(content=png, media_type="image/png", headers={"Cache-Control": "no-store"})

@router.post("/sessions/{session_id}/export")
async def export(session_id: str, body: ExportBody, service: EditorService = Depends(get_service)):
    platform = ResponsePlatform()
    notifier = ToastBuffer()
    try:
        outcome = await service.export(
            session_id, body.target, platform, notifier, caption=body.caption, network=body.network,
        )
    except MeetMeError as e:
        raise to_http_error(e)

    saved = platform.saved
    if body.target == "file" and outcome == ExportOutcome.DOWNLOADED and saved is not None:
        return Response(
            content=saved.content,
            media_type=saved.content_type,
            headers={"Content-Disposition": f'attachment; filename="{saved.filename}"'},
        )

    payload = ExportOut(
        outcome=outcome.value,
        filename=saved.filename if saved else None,
        image=f"data:{saved.content_type};base64,{base64.b64encode(saved.content).decode()}" if saved else None,
        clipboard_text=platform.clipboard_text,
        open_url=platform.opened_url,
        toasts=toasts_out(notifier),
    )
    return JSONResponse(status_code=OUTCOME_STATUS.get(outcome, status.HTTP_200_OK), content=payload.model_dump())

# --- templates ----------------------------------------------------------------

@router.get("/templates/{template_id}/preview")
async def template_preview(
    template_id: str, event_id: Optional[str] = None, service: EditorService = Depends(get_service)
):
    try:
        png = await service.template_preview_png(template_id, event_id=event_id)
    except Exception as e:
        raise to_http_error(e)
    return Response(content=png, media_type="image/png")

@router.post(
    "/templates/{template_id}/placeholder-session",
    response_model=SessionOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_basic_auth)],
)
async def create_placeholder_session(
    template_id: str, body: CreatePlaceholderSession, service: EditorService = Depends(get_service)
):
    try:
        session = await service.create_placeholder_session(
            template_id, device_pixel_ratio=body.device_pixel_ratio, container_width=body.container_width,
        )
    except Exception as e:
        raise to_http_error(e)
    return session_out(session)

@router.post("/sessions/{session_id}/placeholder", response_model=SessionOut, dependencies=[Depends(verify_basic_auth)])
async def save_placeholder(session_id: str, service: EditorService = Depends(get_service)):
    try:
        await service.save_placeholder(session_id)
        return session_out(service.get(session_id))
    except Exception as e:
        raise to_http_error(e)

@router.put("/templates/{template_id}/placeholder", dependencies=[Depends(verify_basic_auth)])
async def put_placeholder(template_id: str, body: PlaceholderBody, service: EditorService = Depends(get_service)):
    """Store a placement directly; it is clamped against the placeholder photo first."""
    try:
        session = await service.create_placeholder_session(template_id)
        try:
            await service.apply(session.id, lambda s: s.controller.restore(body.scale, Point(body.offset_x, body.offset_y)))
            await service.save_placeholder(session.id)
            state = session.controller.state
        finally:
            service.close_session(session.id)
    except Exception as e:
        raise to_http_error(e)
    return {"template_id": template_id, "scale": state.scale, "offset_x": state.offset.x, "offset_y": state.offset.y}

@router.get("/templates/{template_id}/placeholder", dependencies=[Depends(verify_basic_auth)])
async def get_placeholder(template_id: str, service: EditorService = Depends(get_service)):
    try:
        if service.placeholders is None:
            raise ValueError("Placeholder storage is not configured")
        state = await service.placeholders.load_placement(template_id)
    except Exception as e:
        raise to_http_error(e)
    if state is None:
        return {"template_id": template_id, "scale": None, "offset_x": None, "offset_y": None}
    return {"template_id": template_id, "scale": state.scale, "offset_x": state.offset.x, "offset_y": state.offset.y}
