"""Transports behind the `request` action."""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any

import httpx

from protoflow import config
from protoflow.kernel.types import TransportError

logger = logging.getLogger(__name__)


class Transport:
    """
    Abstract transport interface.
    Implement with HTTP for live backends, or canned data for mockups and tests.
    """

    async def request(
        self,
        url: str,
        method: str = "GET",
        data: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Perform one request. Returns the decoded response or raises."""
        raise NotImplementedError


class HttpTransport(Transport):
    """HTTP transport over httpx.

    Relative URLs are resolved against `base_url`. GET and DELETE send `data`
    as query parameters; other methods send it as a JSON body.
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None) -> None:
        self._base_url = (base_url if base_url is not None else config.settings.API_BASE_URL).rstrip("/")
        self._timeout = timeout if timeout is not None else config.settings.REQUEST_TIMEOUT

    def _url(self, url: str) -> str:
        if url.startswith(("http://", "https://")) or not self._base_url:
            return url
        return f"{self._base_url}/{url.lstrip('/')}"

    async def request(
        self,
        url: str,
        method: str = "GET",
        data: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Send the request and decode the response.

        Returns:
            Parsed JSON when the response declares JSON, the body text otherwise

        Raises:
            TransportError: If the server is unreachable or answers with an error status
        """
        method = method.upper()
        logger.debug("HttpTransport: %s %s", method, url)
        kwargs: dict[str, Any] = {"headers": headers or {}}
        if data is not None:
            if method in ("GET", "DELETE"):
                kwargs["params"] = data
            else:
                kwargs["json"] = data

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.request(method, self._url(url), **kwargs)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        if "json" in response.headers.get("content-type", ""):
            return response.json()
        return response.text


# Canned responses served by MockTransport for the demo apps
DEFAULT_MOCK_RESPONSES: dict[str, Any] = {
    "/api/user/info": {
        "code": 0,
        "data": {
            "id": "1001",
            "name": "Test User",
            "avatar": "https://example.com/avatar.png",
        },
    },
    "/api/list": {
        "code": 0,
        "data": {
            "items": [
                {"id": 1, "title": "Sample item 1"},
                {"id": 2, "title": "Sample item 2"},
            ],
            "total": 2,
        },
    },
}


class MockTransport(Transport):
    """In-memory transport for mockups and tests.

    Known URLs return their canned response; anything else echoes the request
    data as {"code": 0, "message": "success", "data": data}. URLs listed in
    `failures` raise TransportError with the given message. Every call is
    recorded in `calls`.
    """

    def __init__(
        self,
        responses: dict[str, Any] | None = None,
        *,
        failures: dict[str, str] | None = None,
        latency_ms: float = 0,
    ) -> None:
        self.responses: dict[str, Any] = dict(DEFAULT_MOCK_RESPONSES)
        if responses:
            self.responses.update(responses)
        self.failures: dict[str, str] = dict(failures or {})
        self.latency_ms = latency_ms
        self.calls: list[dict[str, Any]] = []

    async def request(
        self,
        url: str,
        method: str = "GET",
        data: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        self.calls.append({"url": url, "method": method, "data": data, "headers": headers})
        if self.latency_ms:
            await asyncio.sleep(self.latency_ms / 1000)

        if url in self.failures:
            raise TransportError(self.failures[url])
        if url in self.responses:
            return copy.deepcopy(self.responses[url])
        return {"code": 0, "message": "success", "data": data}
