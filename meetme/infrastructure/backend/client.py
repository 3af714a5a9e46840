# meetme/infrastructure/backend/client.py
import logging
from typing import Optional

import aiohttp

from meetme.config.settings import settings
from meetme.domain.ports import LimitCheck

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] [backend] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False

STAT_TYPES = ("view", "upload", "download")


class BackendClient:
    """Download-limit check and stat counters on the managed backend's RPC API."""

    def __init__(self, base_url: str = None, api_key: Optional[str] = None, timeout: int = None):
        self.base_url = (base_url or settings.BACKEND_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.BACKEND_API_KEY
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.REQUEST_TIMEOUT)
        self._session: Optional[aiohttp.ClientSession] = None

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout, headers=self._headers())
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def _rpc(self, name: str, payload: dict):
        url = f"{self.base_url}/rest/v1/rpc/{name}"
        async with self._get_session().post(url, json=payload) as response:
            response.raise_for_status()
            if response.content_length == 0:
                return None
            return await response.json(content_type=None)

    async def check_and_reserve(self, event_id: str, template_id: str) -> LimitCheck:
        data = await self._rpc(
            "check_and_reserve_download",
            {"p_event_id": event_id, "p_template_id": template_id},
        ) or {}
        return LimitCheck(
            success=bool(data.get("success", False)),
            limit_reached=bool(data.get("limit_reached", data.get("limitReached", False))),
            message=data.get("message"),
        )

    async def track_event(self, event_id: str, template_id: Optional[str], stat_type: str) -> None:
        """Best-effort stat counter; failures are logged and swallowed."""
        if stat_type not in STAT_TYPES:
            raise ValueError(f"Unknown stat type: {stat_type}")
        try:
            await self._rpc(
                "increment_event_stat",
                {"p_event_id": event_id, "p_template_id": template_id, "p_stat_type": stat_type},
            )
        except Exception as e:
            logger.warning(f"Failed to track {stat_type} for event {event_id}: {type(e).__name__}: {e}")

    async def record_download(self, event_id: str, template_id: str) -> None:
        await self.track_event(event_id, template_id, "download")
