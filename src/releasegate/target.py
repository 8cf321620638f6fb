"""HTTP access to the application under validation."""

from __future__ import annotations

import time
from typing import Optional

import httpx

from releasegate.config import TargetConfig


class TargetClient:
    """Thin async HTTP helper bound to one target application.

    A fresh ``httpx.AsyncClient`` is opened per request so probes running on
    different event loops or concurrently never share connection state.
    """

    def __init__(
        self,
        target: TargetConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.target = target
        self.transport = transport

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout or self.target.request_timeout_s,
            follow_redirects=True,
            transport=self.transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        timeout: Optional[float] = None,
        **kwargs,
    ) -> tuple[httpx.Response, float]:
        """Issue a request against the target.

        Returns:
            The response and the elapsed wall time in milliseconds
        """
        start = time.monotonic()
        async with self._client(timeout) as client:
            response = await client.request(method, self.target.url(path), **kwargs)
        return response, (time.monotonic() - start) * 1000

    async def get(self, path: str = "/", **kwargs) -> tuple[httpx.Response, float]:
        return await self.request("GET", path, **kwargs)
