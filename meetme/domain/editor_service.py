# meetme/domain/editor_service.py
import asyncio
import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, TypeVar

from PIL import Image

from meetme.config.settings import settings
from meetme.domain.errors import (
    ImageLoadError,
    ImageNotReadyError,
    SessionNotFoundError,
    TemplateNotFoundError,
)
from meetme.domain.export import ExportOutcome, ExportPipeline, ExportRequest
from meetme.domain.models import Template
from meetme.domain.notifications import ToastBuffer
from meetme.domain.placement import PlacementController
from meetme.domain.ports import AnalyticsSink, DownloadLimiter, Notifier, PlaceholderStore, SharePlatform, TemplateSource
from meetme.domain.preview import PreviewRenderer, render_template_preview
from meetme.infrastructure.imaging import loader
from meetme.infrastructure.imaging.surface import RenderSurface

# --- LOGGER SETUP ---
logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False

T = TypeVar("T")

PARTICIPANT = "participant"
PLACEHOLDER = "placeholder"


@dataclass
class EditorSession:
    """One template × one photo. Owns its controller, renderer and toasts."""

    id: str
    event_id: str
    event_slug: str
    purpose: str
    template: Template
    template_image: Optional[Image.Image]
    user_image: Optional[Image.Image]
    controller: PlacementController
    renderer: PreviewRenderer
    toasts: ToastBuffer
    is_mobile: bool = False
    last_seen: float = 0.0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def export_request(self) -> ExportRequest:
        return ExportRequest(
            event_id=self.event_id,
            event_slug=self.event_slug,
            template=self.template,
            template_image=self.template_image,
            user_image=self.user_image,
            placement=self.controller.state,
        )

    def close(self) -> None:
        self.renderer.dispose()


class EditorService:
    def __init__(
        self,
        templates: TemplateSource,
        limiter: DownloadLimiter,
        analytics: AnalyticsSink,
        placeholders: Optional[PlaceholderStore] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.templates = templates
        self.limiter = limiter
        self.analytics = analytics
        self.placeholders = placeholders
        self.executor = executor
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.SESSION_TTL_SECONDS
        self.clock = clock
        self._sessions: Dict[str, EditorSession] = {}
        self._sessions_lock = threading.Lock()
        self._background = set()

    # --- session registry --------------------------------------------------

    def _purge_expired(self) -> None:
        now = self.clock()
        with self._sessions_lock:
            expired = [s for s in self._sessions.values() if now - s.last_seen > self.ttl_seconds]
            for session in expired:
                del self._sessions[session.id]
        for session in expired:
            logger.info(f"Session {session.id} expired")
            session.close()

    def get(self, session_id: str) -> EditorSession:
        self._purge_expired()
        with self._sessions_lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        session.last_seen = self.clock()
        return session

    def close_session(self, session_id: str) -> None:
        with self._sessions_lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)
        session.close()

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def _fire(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # --- creation ----------------------------------------------------------

    async def _get_template(self, template_id: str) -> Template:
        template = await self.templates.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    async def _open(
        self,
        template: Template,
        photo_src: str,
        event_id: str,
        event_slug: str,
        purpose: str,
        is_mobile: bool,
        device_pixel_ratio: float,
        container_width: float,
    ) -> EditorSession:
        start = time.perf_counter()
        logger.info(f"Loading template {template.id} and photo for new {purpose} session")
        template_image, user_image = await loader.load_many(
            [template.image_url, photo_src],
            executor=self.executor,
            # participant photos are size-limited and must carry their own bytes
            max_bytes=[None, settings.MAX_UPLOAD_BYTES if purpose == PARTICIPANT else None],
            inline_only=[False, purpose == PARTICIPANT],
        )
        if isinstance(user_image, BaseException):
            raise user_image

        toasts = ToastBuffer()
        controller = PlacementController(template)
        renderer = PreviewRenderer(controller, toasts, is_mobile=is_mobile, device_pixel_ratio=device_pixel_ratio)
        if isinstance(template_image, ImageLoadError):
            renderer.report_load_failure("template", template_image)
            template_image = None
        elif isinstance(template_image, BaseException):
            raise template_image

        session = EditorSession(
            id=uuid.uuid4().hex,
            event_id=event_id,
            event_slug=event_slug,
            purpose=purpose,
            template=template,
            template_image=template_image,
            user_image=user_image,
            controller=controller,
            renderer=renderer,
            toasts=toasts,
            is_mobile=is_mobile,
            last_seen=self.clock(),
        )

        def setup():
            renderer.template_image = template_image
            renderer.attach(container_width or settings.DEFAULT_CONTAINER_WIDTH)
            renderer.set_user_image(user_image)

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self.executor, setup)

        self._purge_expired()
        with self._sessions_lock:
            self._sessions[session.id] = session
        logger.info(f"Session {session.id} ready in {time.perf_counter() - start:.2f}s (scale={controller.state.scale:.4f})")
        return session

    async def create_session(
        self,
        event_id: str,
        template_id: str,
        photo_src: str,
        event_slug: Optional[str] = None,
        is_mobile: bool = False,
        device_pixel_ratio: float = 1.0,
        container_width: float = None,
    ) -> EditorSession:
        """Open a participant session.

        The export filename uses the slug stored for ``event_id``; the
        caller's ``event_slug`` only stands in for events the store does not know.
        """
        template = await self._get_template(template_id)
        event_slug = await self.templates.get_event_slug(event_id) or event_slug or event_id
        session = await self._open(
            template, photo_src, event_id, event_slug, PARTICIPANT,
            is_mobile, device_pixel_ratio, container_width,
        )
        self._fire(self.analytics.track_event(event_id, template.id, "upload"))
        return session

    async def create_placeholder_session(
        self,
        template_id: str,
        device_pixel_ratio: float = 1.0,
        container_width: float = None,
    ) -> EditorSession:
        """Admin editing of a template's sample photo, seeded from the stored placement."""
        template = await self._get_template(template_id)
        if not template.placeholder_image_url:
            raise ImageNotReadyError("Template has no placeholder image")
        session = await self._open(
            template, template.placeholder_image_url, "", "", PLACEHOLDER,
            False, device_pixel_ratio, container_width,
        )
        stored = template.placeholder
        if stored is not None:
            await self.apply(session.id, lambda s: s.controller.restore(stored.scale, stored.offset))
        return session

    # --- interaction -------------------------------------------------------

    async def apply(self, session_id: str, action: Callable[[EditorSession], T]) -> EditorSession:
        """Run one input event against a session, serialized per session.

        Rendering is CPU-bound, so the event runs on the executor while the
        session lock keeps events in arrival order.
        """
        session = self.get(session_id)
        async with session.lock:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(self.executor, action, session)
        return session

    async def preview_png(self, session_id: str) -> bytes:
        session = self.get(session_id)
        async with session.lock:
            surface = session.renderer.surface
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self.executor, surface.to_png)

    async def export(
        self,
        session_id: str,
        target: str,
        platform: SharePlatform,
        notifier: Notifier,
        caption: str = "",
        network: str = "linkedin",
    ) -> ExportOutcome:
        session = self.get(session_id)
        pipeline = ExportPipeline(self.limiter, self.analytics, platform, notifier, executor=self.executor)
        async with session.lock:
            request = session.export_request()
        if target == "device":
            outcome = await pipeline.save_to_device(request)
        elif target == "social":
            outcome = await pipeline.share_to_social(request, caption=caption, network=network, is_mobile=session.is_mobile)
        else:
            outcome = await pipeline.download_as_file(request)
        logger.info(f"Session {session_id} export ({target}) finished: {outcome.value}")
        self._fire(pipeline.drain())
        return outcome

    async def save_placeholder(self, session_id: str) -> None:
        session = self.get(session_id)
        if session.purpose != PLACEHOLDER or self.placeholders is None:
            raise ValueError(f"Session {session_id} is not a placeholder session")
        state = session.controller.state
        if state is None:
            raise ImageNotReadyError()
        await self.placeholders.save_placement(session.template.id, state.scale, state.offset)

    # --- template cards ----------------------------------------------------

    async def template_preview_png(self, template_id: str, event_id: Optional[str] = None) -> bytes:
        template = await self._get_template(template_id)
        if event_id:
            self._fire(self.analytics.track_event(event_id, template.id, "view"))
        template_image, placeholder_image = await loader.load_many(
            [template.image_url, template.placeholder_image_url], executor=self.executor,
        )
        if isinstance(template_image, BaseException):
            raise template_image
        if isinstance(placeholder_image, ImageLoadError):
            logger.warning(f"Placeholder for template {template_id} failed to load, rendering template only")
            placeholder_image = None
        elif isinstance(placeholder_image, BaseException):
            raise placeholder_image

        def render() -> bytes:
            dims = template.dimensions
            surface = RenderSurface.offscreen(int(dims.width), int(dims.height))
            try:
                surface.present(render_template_preview(template, template_image, placeholder_image))
                return surface.to_png()
            finally:
                surface.dispose()

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, render)
