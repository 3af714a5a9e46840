# meetme/domain/export.py
import asyncio
import logging
import re
import traceback
from concurrent.futures import Executor
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from PIL import Image

from meetme.config.settings import settings
from meetme.domain.errors import (
    ExportFailure,
    ImageNotReadyError,
    LimitReachedError,
    ShareCancelled,
)
from meetme.domain.models import PlacementState, Template
from meetme.domain.ports import AnalyticsSink, DownloadLimiter, ExportFile, Notifier, SharePlatform
from meetme.infrastructure.imaging import compositor
from meetme.infrastructure.imaging.surface import RenderSurface

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] [export] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False

SHARE_TITLE = "My Event Visual"
GENERIC_ERROR = "Something went wrong while creating your image. Please try again."


class ExportOutcome(str, Enum):
    DOWNLOADED = "downloaded"
    SHARED = "shared"
    SHARED_MANUALLY = "shared_manually"
    CANCELLED = "cancelled"
    LIMIT_REACHED = "limit_reached"
    NOT_READY = "not_ready"
    FAILED = "failed"


COMPLETED = {ExportOutcome.DOWNLOADED, ExportOutcome.SHARED, ExportOutcome.SHARED_MANUALLY}


@dataclass(frozen=True)
class ExportRequest:
    """Everything needed to render and name one export."""

    event_id: str
    event_slug: str
    template: Template
    template_image: Optional[Image.Image]
    user_image: Optional[Image.Image]
    placement: Optional[PlacementState]


def export_filename(event_slug: str, template_name: str) -> str:
    slug = re.sub(r"\s+", "-", template_name).lower()
    return f"{event_slug}-{slug}-meetme.png"


def render_png(request: ExportRequest) -> bytes:
    """Composite at the format's exact resolution on a fresh offscreen surface."""
    if request.template_image is None or request.user_image is None or request.placement is None:
        raise ImageNotReadyError()
    dims = request.template.dimensions
    surface = RenderSurface.offscreen(int(dims.width), int(dims.height))
    try:
        frame = compositor.composite(
            request.template_image,
            request.user_image,
            request.template.frame,
            request.placement.scale,
            request.placement.offset,
            surface.backing_size,
            dims,
        )
        if frame is None:
            raise ExportFailure("Compositor produced no image")
        surface.present(frame)
        data = surface.to_png()
    except (ImageNotReadyError, ExportFailure):
        raise
    except Exception as e:
        raise ExportFailure(f"PNG encoding failed: {type(e).__name__}: {e}") from e
    finally:
        surface.dispose()
    if not data:
        raise ExportFailure("PNG encoding returned no data")
    return data


class ExportPipeline:
    """Limit check, full-resolution render and platform delivery.

    Public methods never raise; they return an ExportOutcome and talk to the
    user through the notifier. Analytics are recorded once per completed
    export, never for cancelled, refused or failed ones.
    """

    def __init__(
        self,
        limiter: DownloadLimiter,
        analytics: AnalyticsSink,
        platform: SharePlatform,
        notifier: Notifier,
        executor: Optional[Executor] = None,
    ):
        self.limiter = limiter
        self.analytics = analytics
        self.platform = platform
        self.notifier = notifier
        self.executor = executor
        self._pending = set()

    # --- public entry points -----------------------------------------------

    async def download_as_file(self, request: ExportRequest) -> ExportOutcome:
        return await self._run(request, self._deliver_download)

    async def save_to_device(self, request: ExportRequest) -> ExportOutcome:
        return await self._run(request, self._deliver_device)

    async def share_to_social(
        self,
        request: ExportRequest,
        caption: str = "",
        network: str = "linkedin",
        is_mobile: bool = False,
    ) -> ExportOutcome:
        caption = (caption or "")[: settings.MAX_CAPTION_LENGTH]

        async def deliver(file: ExportFile) -> ExportOutcome:
            return await self._deliver_social(file, caption, network, is_mobile)

        return await self._run(request, deliver)

    async def drain(self) -> None:
        """Wait for fire-and-forget analytics calls still in flight."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # --- pipeline ----------------------------------------------------------

    async def _run(self, request: ExportRequest, deliver: Callable[[ExportFile], Awaitable[ExportOutcome]]) -> ExportOutcome:
        run_id = f"{request.event_id}/{request.template.id}"
        try:
            if request.template_image is None or request.user_image is None or request.placement is None:
                raise ImageNotReadyError()

            await self._reserve(request)

            logger.info(f"Rendering export for {run_id}")
            loop = asyncio.get_running_loop()
            png = await loop.run_in_executor(self.executor, render_png, request)
            file = ExportFile(export_filename(request.event_slug, request.template.name), png)

            outcome = await deliver(file)
        except ImageNotReadyError as e:
            self.notifier.error(e.user_message)
            return ExportOutcome.NOT_READY
        except LimitReachedError as e:
            logger.info(f"Download limit reached for {run_id}")
            self.notifier.error(e.user_message)
            return ExportOutcome.LIMIT_REACHED
        except ExportFailure as e:
            logger.error(f"Export failed for {run_id}: {e}")
            self.notifier.error(GENERIC_ERROR)
            return ExportOutcome.FAILED
        except Exception as e:
            logger.error(f"Unexpected export error for {run_id}: {e}\n{traceback.format_exc()}")
            self.notifier.error(GENERIC_ERROR)
            return ExportOutcome.FAILED

        if outcome in COMPLETED:
            self._record(request)
        return outcome

    async def _reserve(self, request: ExportRequest) -> None:
        try:
            result = await self.limiter.check_and_reserve(request.event_id, request.template.id)
        except Exception as e:
            # Fail open: an unavailable limit service must not block the user
            logger.warning(f"Download limit check failed, allowing export: {type(e).__name__}: {e}")
            return
        if result.limit_reached:
            raise LimitReachedError(result.message)
        if not result.success:
            logger.warning(f"Download limit check unsuccessful ({result.message}), allowing export")

    def _record(self, request: ExportRequest) -> None:
        async def record():
            try:
                await self.analytics.record_download(request.event_id, request.template.id)
            except Exception as e:
                logger.warning(f"Failed to record download: {type(e).__name__}: {e}")

        task = asyncio.get_running_loop().create_task(record())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    # --- delivery targets --------------------------------------------------

    async def _save(self, file: ExportFile) -> None:
        try:
            await self.platform.save_file(file)
        except Exception as e:
            raise ExportFailure(f"File save failed: {e}") from e

    async def _deliver_download(self, file: ExportFile) -> ExportOutcome:
        await self._save(file)
        self.notifier.success("Image downloaded!")
        return ExportOutcome.DOWNLOADED

    async def _try_native_share(self, file: ExportFile, text: Optional[str] = None) -> Optional[ExportOutcome]:
        """SHARED, CANCELLED, or None when the caller should fall back."""
        if not self.platform.can_share_files():
            return None
        try:
            await self.platform.share_files([file], title=SHARE_TITLE, text=text)
        except ShareCancelled:
            logger.info("Native share dismissed by user")
            return ExportOutcome.CANCELLED
        except Exception as e:
            logger.warning(f"Native share failed, falling back to download: {type(e).__name__}: {e}")
            return None
        return ExportOutcome.SHARED

    async def _deliver_device(self, file: ExportFile) -> ExportOutcome:
        outcome = await self._try_native_share(file)
        if outcome == ExportOutcome.SHARED:
            self.notifier.success("Saved! Share it everywhere")
        if outcome is not None:
            return outcome
        return await self._deliver_download(file)

    def _compose_url(self, network: str) -> str:
        if network == "instagram":
            return settings.INSTAGRAM_URL
        return settings.LINKEDIN_COMPOSE_URL

    async def _deliver_social(self, file: ExportFile, caption: str, network: str, is_mobile: bool) -> ExportOutcome:
        if is_mobile:
            outcome = await self._try_native_share(file, text=caption or None)
            if outcome == ExportOutcome.SHARED:
                self.notifier.success("Shared!")
            if outcome is not None:
                return outcome

        # Desktop share targets rarely include the network: do it by hand
        await self._save(file)
        copied = False
        if caption:
            try:
                await self.platform.write_clipboard(caption)
                copied = True
            except Exception as e:
                logger.warning(f"Clipboard write failed: {type(e).__name__}: {e}")
        try:
            await self.platform.open_url(self._compose_url(network))
        except Exception as e:
            logger.warning(f"Opening compose page failed: {type(e).__name__}: {e}")

        label = "Instagram" if network == "instagram" else "LinkedIn"
        if copied:
            message = f"Image downloaded and caption copied. Attach the image and paste the caption into your {label} post."
        else:
            message = f"Image downloaded. Attach it to your {label} post."
        self.notifier.info(message, persist=True)
        return ExportOutcome.SHARED_MANUALLY
