# meetme/domain/ports.py
"""Collaborators the engine talks to at its boundary."""
from dataclasses import dataclass
from typing import List, Optional, Protocol

from meetme.domain.models import PlacementState, Point, Template


@dataclass(frozen=True)
class LimitCheck:
    success: bool
    limit_reached: bool = False
    message: Optional[str] = None


@dataclass(frozen=True)
class ExportFile:
    filename: str
    content: bytes
    content_type: str = "image/png"


class TemplateSource(Protocol):
    async def get_template(self, template_id: str) -> Optional[Template]: ...

    async def get_event_slug(self, event_id: str) -> Optional[str]: ...


class PlaceholderStore(Protocol):
    async def save_placement(self, template_id: str, scale: float, offset: Point) -> None: ...

    async def load_placement(self, template_id: str) -> Optional[PlacementState]: ...


class DownloadLimiter(Protocol):
    async def check_and_reserve(self, event_id: str, template_id: str) -> LimitCheck: ...


class AnalyticsSink(Protocol):
    async def record_download(self, event_id: str, template_id: str) -> None: ...

    async def track_event(self, event_id: str, template_id: Optional[str], stat_type: str) -> None: ...


class SharePlatform(Protocol):
    """Opaque platform primitives: file save, share sheet, clipboard, tabs.

    ``share_files`` raises ShareCancelled when the user dismisses the sheet.
    """

    def can_share_files(self) -> bool: ...

    async def save_file(self, file: ExportFile) -> None: ...

    async def share_files(self, files: List[ExportFile], title: str, text: Optional[str] = None) -> None: ...

    async def write_clipboard(self, text: str) -> None: ...

    async def open_url(self, url: str) -> None: ...


class Notifier(Protocol):
    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def info(self, message: str, persist: bool = False) -> None: ...
