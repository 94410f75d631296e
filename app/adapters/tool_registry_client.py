"""HTTP client for the external tool registry."""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from app.infra.config import config
from app.infra.error_handler import (
    NetworkOrServerError,
    ToolNotFoundError,
    retry_with_backoff,
    wrap_http_error,
)
from app.models.principal import Principal
from app.models.tool import RegistryToolSummary, ToolDocument

logger = logging.getLogger(__name__)


class ToolRegistryClient:
    """Client for the tool registry.

    Every call asks the principal for a fresh bearer token; tokens are never
    cached here. Reads are retried on transient failures, writes are not.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
    ):
        self.base_url = (base_url or config.TOOL_REGISTRY_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.REGISTRY_TIMEOUT_SECS
        self.max_retries = max_retries if max_retries is not None else config.REGISTRY_MAX_RETRIES

    async def _request(
        self,
        principal: Principal,
        method: str,
        path: str,
        action: str,
        json_body: Optional[Dict[str, Any]] = None,
        tool_id: Optional[str] = None,
    ) -> Any:
        """
        Issue one registry request.

        Args:
            principal: Authenticated principal supplying the bearer token
            method: HTTP method
            path: Path relative to the registry base URL
            action: Short description used in errors and logs
            json_body: Optional JSON body
            tool_id: Set for single-tool lookups so a 404 maps to NotFound

        Returns:
            Decoded JSON body, or None for an empty body

        Raises:
            ToolNotFoundError: If a single-tool lookup returns 404
            NetworkOrServerError: On transport failure or any other non-2xx
        """
        token = await principal.get_token()
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }
        url = f"{self.base_url}{path}"

        start_time = time.time()
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.request(method, url, json=json_body, headers=headers)
            except httpx.HTTPError as e:
                logger.warning(
                    "Registry request failed",
                    extra={"action": action, "method": method, "path": path, "error": str(e)},
                )
                raise NetworkOrServerError(f"Registry {action} failed: {e}") from e

        latency_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "Registry request completed",
            extra={
                "action": action,
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "latency_ms": latency_ms,
            },
        )

        if response.status_code == 404 and tool_id is not None:
            raise ToolNotFoundError(tool_id)
        if not 200 <= response.status_code < 300:
            raise wrap_http_error(response, action)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise NetworkOrServerError(
                f"Registry {action} returned invalid JSON",
                status_code=response.status_code,
            ) from e

    def _log_retry(self, action: str):
        def on_retry(error: Exception, attempt: int) -> None:
            logger.warning(
                "Retrying registry read",
                extra={"action": action, "attempt": attempt, "error": str(error)},
            )
        return on_retry

    async def list_tools(self, principal: Principal) -> List[RegistryToolSummary]:
        """List the reusable tools stored for a user."""
        path = f"/tools/{principal.user_id}"

        body = await retry_with_backoff(
            lambda: self._request(principal, "GET", path, "list tools"),
            max_retries=self.max_retries,
            on_retry=self._log_retry("list tools"),
        )

        if isinstance(body, dict):
            body = body.get("tools", [])
        return [RegistryToolSummary.model_validate(item) for item in body or []]

    async def get_tool(self, principal: Principal, tool_id: str) -> ToolDocument:
        """
        Fetch one tool's full definition.

        Raises:
            ToolNotFoundError: If the registry has no such tool
            NetworkOrServerError: On any other failure
        """
        path = f"/tools/{principal.user_id}/{tool_id}"

        body = await retry_with_backoff(
            lambda: self._request(principal, "GET", path, "get tool", tool_id=tool_id),
            max_retries=self.max_retries,
            on_retry=self._log_retry("get tool"),
        )

        if not isinstance(body, dict):
            raise NetworkOrServerError(f"Registry returned no definition for tool '{tool_id}'")
        # Some registry versions wrap the document
        document = body.get("tool_config", body)
        try:
            return ToolDocument.model_validate(document)
        except ValidationError as e:
            logger.warning(
                "Registry returned an unreadable tool definition",
                extra={"tool_id": tool_id, "error": str(e)},
            )
            raise NetworkOrServerError(
                f"Registry returned an invalid definition for tool '{tool_id}'"
            ) from e

    async def create_tool(self, principal: Principal, document: Dict[str, Any]) -> str:
        """
        Create a registry entry.

        Args:
            principal: Authenticated principal
            document: Wire form of the tool document

        Returns:
            The identifier assigned by the registry
        """
        body = await self._request(
            principal,
            "POST",
            "/tools/create/",
            "create tool",
            json_body={"tool_config": document, "user_id": principal.user_id},
        )

        tool_id = None
        if isinstance(body, dict):
            tool_id = body.get("id") or body.get("tool_id") or body.get("toolId")
        if not tool_id:
            raise NetworkOrServerError("Registry create tool returned no id")

        logger.info("Tool created", extra={"tool_id": tool_id, "tool_name": document.get("name")})
        return str(tool_id)

    async def patch_tool(
        self,
        principal: Principal,
        tool_id: str,
        partial: Dict[str, Any],
    ) -> None:
        """Partially update a registry entry; the registry merges server-side."""
        await self._request(
            principal,
            "PATCH",
            f"/tools/{principal.user_id}/{tool_id}",
            "patch tool",
            json_body={"tool_config": partial},
        )
        logger.info("Tool patched", extra={"tool_id": tool_id})


tool_registry_client = ToolRegistryClient()
