"""Unit tests for the tool registry client."""

import pytest
import httpx
from unittest.mock import AsyncMock, patch
from app.adapters.tool_registry_client import ToolRegistryClient
from app.infra.error_handler import (
    ErrorCategory,
    NetworkOrServerError,
    ToolNotFoundError,
)


def _response(status_code, body=None, headers=None):
    request = httpx.Request("GET", "https://registry.test")
    if body is None:
        return httpx.Response(status_code, headers=headers, request=request)
    return httpx.Response(status_code, json=body, headers=headers, request=request)


def _mock_client(mock_client_class, *responses):
    mock_client = AsyncMock()
    mock_client.request = AsyncMock(side_effect=list(responses))
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)
    mock_client_class.return_value = mock_client
    return mock_client


TOOL_DOCUMENT = {
    "name": "Lookup_Order",
    "description": "Looks up an order",
    "type": "webhook",
    "response_timeout_secs": 20,
    "api_schema": {
        "url": "https://api.example.com/lookup",
        "method": "POST",
        "request_body_schema": {"type": "object", "properties": {}},
    },
}


class TestToolRegistryClient:
    """Registry HTTP contract."""

    @pytest.fixture
    def client(self):
        return ToolRegistryClient(base_url="https://registry.test/", timeout=5, max_retries=2)

    @pytest.mark.asyncio
    async def test_list_tools(self, client, principal):
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_client(
                mock_client_class,
                _response(200, [
                    {"tool_id": "tool_a", "created_at": "2024-08-01T10:00:00Z"},
                    {"toolId": "tool_b", "createdAt": 1722506400},
                ]),
            )

            tools = await client.list_tools(principal)

            assert [t.tool_id for t in tools] == ["tool_a", "tool_b"]
            method, url = mock_client.request.call_args[0]
            assert method == "GET"
            assert url == "https://registry.test/tools/user-1"
            headers = mock_client.request.call_args[1]["headers"]
            assert headers["Authorization"] == "Bearer token-1"
            mock_client_class.assert_called_once_with(timeout=5)

    @pytest.mark.asyncio
    async def test_get_tool_unwraps_tool_config(self, client, principal):
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_client(mock_client_class, _response(200, {"tool_config": TOOL_DOCUMENT}))

            document = await client.get_tool(principal, "tool_a")

            assert document.name == "Lookup_Order"
            assert document.api_schema.url == "https://api.example.com/lookup"
            assert mock_client.request.call_args[0][1] == "https://registry.test/tools/user-1/tool_a"

    @pytest.mark.asyncio
    async def test_get_tool_not_found(self, client, principal):
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_client(mock_client_class, _response(404, {"detail": "Not found"}))

            with pytest.raises(ToolNotFoundError) as exc_info:
                await client.get_tool(principal, "missing")

            assert exc_info.value.tool_id == "missing"
            # Lookup misses are not retried
            assert mock_client.request.call_count == 1

    @pytest.mark.asyncio
    async def test_get_tool_accepts_partial_api_schema(self, client, principal):
        partial = {"name": "Lookup", "type": "webhook", "api_schema": {"method": "POST"}}
        with patch("httpx.AsyncClient") as mock_client_class:
            _mock_client(mock_client_class, _response(200, partial))

            document = await client.get_tool(principal, "tool_a")

            assert document.api_schema.url is None
            assert document.api_schema.request_body_schema is None

    @pytest.mark.asyncio
    async def test_get_tool_invalid_definition(self, client, principal):
        with patch("httpx.AsyncClient") as mock_client_class:
            _mock_client(mock_client_class, _response(200, {"name": "Lookup", "type": "zapier"}))

            with pytest.raises(NetworkOrServerError) as exc_info:
                await client.get_tool(principal, "tool_a")

            assert "tool_a" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_reads_retry_server_errors(self, client, principal):
        with patch("httpx.AsyncClient") as mock_client_class, \
                patch("app.infra.error_handler.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            mock_client = _mock_client(
                mock_client_class,
                _response(503, {"error": "busy"}),
                _response(200, {"tool_config": TOOL_DOCUMENT}),
            )

            document = await client.get_tool(principal, "tool_a")

            assert document.name == "Lookup_Order"
            assert mock_client.request.call_count == 2
            mock_sleep.assert_awaited_once()
            # A fresh token is requested for every attempt
            second_headers = mock_client.request.call_args_list[1][1]["headers"]
            assert second_headers["Authorization"] == "Bearer token-2"

    @pytest.mark.asyncio
    async def test_reads_give_up_after_max_retries(self, client, principal):
        with patch("httpx.AsyncClient") as mock_client_class, \
                patch("app.infra.error_handler.asyncio.sleep", new=AsyncMock()):
            mock_client = _mock_client(
                mock_client_class,
                httpx.ConnectError("connection refused"),
                httpx.ConnectError("connection refused"),
                httpx.ConnectError("connection refused"),
            )

            with pytest.raises(NetworkOrServerError) as exc_info:
                await client.list_tools(principal)

            assert exc_info.value.category == ErrorCategory.NETWORK
            assert mock_client.request.call_count == 3

    @pytest.mark.asyncio
    async def test_create_tool(self, client, principal):
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_client(mock_client_class, _response(200, {"id": "tool_new"}))

            tool_id = await client.create_tool(principal, TOOL_DOCUMENT)

            assert tool_id == "tool_new"
            method, url = mock_client.request.call_args[0]
            assert (method, url) == ("POST", "https://registry.test/tools/create/")
            assert mock_client.request.call_args[1]["json"] == {
                "tool_config": TOOL_DOCUMENT,
                "user_id": "user-1",
            }

    @pytest.mark.asyncio
    async def test_create_is_not_retried(self, client, principal):
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_client(mock_client_class, _response(500, {"detail": "boom"}))

            with pytest.raises(NetworkOrServerError) as exc_info:
                await client.create_tool(principal, TOOL_DOCUMENT)

            assert exc_info.value.status_code == 500
            assert "boom" in exc_info.value.message
            assert mock_client.request.call_count == 1

    @pytest.mark.asyncio
    async def test_create_without_id(self, client, principal):
        with patch("httpx.AsyncClient") as mock_client_class:
            _mock_client(mock_client_class, _response(200, {}))

            with pytest.raises(NetworkOrServerError):
                await client.create_tool(principal, TOOL_DOCUMENT)

    @pytest.mark.asyncio
    async def test_patch_tool(self, client, principal):
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_client(mock_client_class, _response(204))

            await client.patch_tool(principal, "tool_a", {"description": "New"})

            method, url = mock_client.request.call_args[0]
            assert (method, url) == ("PATCH", "https://registry.test/tools/user-1/tool_a")
            assert mock_client.request.call_args[1]["json"] == {"tool_config": {"description": "New"}}

    @pytest.mark.asyncio
    async def test_patch_client_error(self, client, principal):
        with patch("httpx.AsyncClient") as mock_client_class:
            _mock_client(mock_client_class, _response(400, {"message": "bad tool_config"}))

            with pytest.raises(NetworkOrServerError) as exc_info:
                await client.patch_tool(principal, "tool_a", {})

            assert exc_info.value.category == ErrorCategory.API_ERROR
            assert not exc_info.value.retryable
