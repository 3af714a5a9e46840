# meetme/delivery/platform.py
from typing import List, Optional

from meetme.domain.errors import ExportFailure
from meetme.domain.ports import ExportFile


class ResponsePlatform:
    """Platform primitives as seen from an HTTP response.

    The server cannot touch the visitor's file system, clipboard or share
    sheet, so each primitive is recorded and handed back to the client to
    perform. There is no server-side share sheet: ``can_share_files`` is
    False and the export pipeline takes its download fallbacks.
    """

    def __init__(self):
        self.saved: Optional[ExportFile] = None
        self.clipboard_text: Optional[str] = None
        self.opened_url: Optional[str] = None

    def can_share_files(self) -> bool:
        return False

    async def save_file(self, file: ExportFile) -> None:
        self.saved = file

    async def share_files(self, files: List[ExportFile], title: str, text: Optional[str] = None) -> None:
        raise ExportFailure("Native share is not available over HTTP")

    async def write_clipboard(self, text: str) -> None:
        self.clipboard_text = text

    async def open_url(self, url: str) -> None:
        self.opened_url = url
