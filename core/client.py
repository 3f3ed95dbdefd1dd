"""HTTP-клиент бэкенда каталога уроков"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx

from .config import Settings
from .domain import Order
from .errors import BackendConnectionError, BackendNotFoundError, BackendRequestError

logger = logging.getLogger(__name__)


class LessonsClient:
    """
    Тонкая обёртка над httpx.AsyncClient.

    Если http не передан, на каждый запрос открывается короткоживущий клиент:
    Streamlit крутит каждое действие в своём asyncio.run.
    """

    def __init__(self, settings: Settings, http: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        self.http = http

    async def aclose(self) -> None:
        if self.http is not None:
            await self.http.aclose()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self.http is not None:
            yield self.http
            return
        async with httpx.AsyncClient(
            base_url=self.settings.api_base_url,
            timeout=self.settings.request_timeout,
        ) as http:
            yield http

    async def call(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
    ) -> Any:
        try:
            async with self._session() as http:
                response = await http.request(method, path, json=json)
        except httpx.HTTPError as exc:
            raise BackendConnectionError(f"backend_connection_failed: {exc}") from exc

        if response.status_code == 404:
            raise BackendNotFoundError(f"backend_not_found: {method} {path}")
        if response.status_code >= 400:
            raise BackendRequestError(
                f"backend_error_{response.status_code}", response.status_code
            )

        logger.debug("%s %s -> %s", method, path, response.status_code)
        try:
            return response.json()
        except ValueError:
            return {"status_code": response.status_code, "text": response.text}

    async def fetch_lessons(self) -> list[dict]:
        return await self.call("GET", "/lessons")

    async def create_order(self, order: Order) -> dict:
        return await self.call("POST", "/orders", json=order.to_payload())

    async def update_lesson_spaces(self, lesson_id: int, spaces: int) -> dict:
        return await self.call("PUT", f"/lessons/{lesson_id}", json={"spaces": spaces})

    async def reserve(self, lesson_id: int, units: int = 1) -> dict:
        return await self.call(
            "POST", f"/lessons/{lesson_id}/reserve", json={"units": units}
        )

    async def release(self, lesson_id: int, units: int = 1) -> dict:
        return await self.call(
            "POST", f"/lessons/{lesson_id}/release", json={"units": units}
        )
