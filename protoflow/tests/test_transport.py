"""Tests for the request transports with mocked HTTP."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from protoflow.kernel.types import TransportError
from protoflow.services.transport import HttpTransport, MockTransport, Transport

pytestmark = pytest.mark.asyncio


def mock_client_for(response):
    mock_client = AsyncMock()
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)
    mock_client.request = AsyncMock(return_value=response)
    return mock_client


def json_response(payload):
    response = MagicMock()
    response.status_code = 200
    response.headers = {"content-type": "application/json"}
    response.json.return_value = payload
    response.raise_for_status = MagicMock()
    return response


async def test_get_sends_query_params():
    """GET requests put data in the query string and resolve against the base URL."""
    transport = HttpTransport(base_url="https://api.example.com/", timeout=5)

    with patch("httpx.AsyncClient") as mock_client_cls:
        mock_client = mock_client_for(json_response({"code": 0}))
        mock_client_cls.return_value = mock_client

        result = await transport.request("/api/list", "get", {"page": 2})

    assert result == {"code": 0}
    mock_client_cls.assert_called_once_with(timeout=5)
    call = mock_client.request.call_args
    assert call.args == ("GET", "https://api.example.com/api/list")
    assert call.kwargs["params"] == {"page": 2}
    assert "json" not in call.kwargs


async def test_post_sends_json_body():
    """Non-GET requests send data as JSON."""
    transport = HttpTransport(base_url="", timeout=5)

    with patch("httpx.AsyncClient") as mock_client_cls:
        mock_client = mock_client_for(json_response({"ok": True}))
        mock_client_cls.return_value = mock_client

        await transport.request("https://other.example.com/save", "POST", {"x": 1}, {"X-Token": "t"})

    call = mock_client.request.call_args
    assert call.args == ("POST", "https://other.example.com/save")
    assert call.kwargs["json"] == {"x": 1}
    assert call.kwargs["headers"] == {"X-Token": "t"}


async def test_text_response():
    """Responses without a JSON content type come back as text."""
    transport = HttpTransport(base_url="", timeout=5)
    response = MagicMock()
    response.headers = {"content-type": "text/plain"}
    response.text = "pong"
    response.raise_for_status = MagicMock()

    with patch("httpx.AsyncClient") as mock_client_cls:
        mock_client_cls.return_value = mock_client_for(response)
        assert await transport.request("/ping") == "pong"


async def test_http_error_is_wrapped():
    """HTTP status errors surface as TransportError."""
    transport = HttpTransport(base_url="", timeout=5)
    response = MagicMock()
    response.raise_for_status.side_effect = httpx.HTTPStatusError(
        "500 Server Error", request=MagicMock(), response=MagicMock()
    )

    with patch("httpx.AsyncClient") as mock_client_cls:
        mock_client_cls.return_value = mock_client_for(response)

        with pytest.raises(TransportError):
            await transport.request("/api/list")


async def test_mock_transport_canned_response():
    transport = MockTransport()
    result = await transport.request("/api/user/info")
    assert result["data"]["name"] == "Test User"
    result["data"]["name"] = "changed"
    assert (await transport.request("/api/user/info"))["data"]["name"] == "Test User"


async def test_mock_transport_echo_and_failure():
    transport = MockTransport({"/api/custom": {"code": 7}}, failures={"/api/down": "down"})
    assert await transport.request("/api/anything", "POST", {"a": 1}) == {
        "code": 0,
        "message": "success",
        "data": {"a": 1},
    }
    assert await transport.request("/api/custom") == {"code": 7}
    with pytest.raises(TransportError, match="down"):
        await transport.request("/api/down")
    assert [c["url"] for c in transport.calls] == ["/api/anything", "/api/custom", "/api/down"]


async def test_mock_transport_latency():
    transport = MockTransport(latency_ms=5)
    assert (await transport.request("/api/list"))["data"]["total"] == 2


async def test_base_transport_is_abstract():
    with pytest.raises(NotImplementedError):
        await Transport().request("/x")
