"""Firebase Realtime Database mirror over its REST API."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from farm_dashboard.config import FirebaseSettings

logger = logging.getLogger(__name__)


class RemoteMirror:
    """Mirror whole documents to ``{database_url}/{key}.json``.

    Every call reports failure through its return value; nothing here raises
    for transport or HTTP errors.
    """

    def __init__(self, settings: FirebaseSettings, *, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self._client = httpx.AsyncClient(
            base_url=(settings.database_url or "").rstrip("/"),
            timeout=settings.request_timeout_seconds,
            transport=transport,
        )

    @property
    def available(self) -> bool:
        return self.settings.configured

    def _params(self) -> Dict[str, str]:
        token = self.settings.auth_token.get_secret_value() if self.settings.auth_token else ""
        return {"auth": token} if token else {}

    async def save(self, key: str, data: Any) -> bool:
        try:
            resp = await self._client.put(f"/{key}.json", json=data, params=self._params())
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Remote save failed for %s: %s", key, exc)
            return False
        logger.info("Synced %s to remote mirror", key)
        return True

    async def load(self, key: str) -> Optional[Any]:
        try:
            resp = await self._client.get(f"/{key}.json", params=self._params())
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Remote load failed for %s: %s", key, exc)
            return None

    async def delete(self, key: str) -> bool:
        try:
            resp = await self._client.delete(f"/{key}.json", params=self._params())
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Remote delete failed for %s: %s", key, exc)
            return False
        return True

    async def aclose(self) -> None:
        await self._client.aclose()
