"""Pytest configuration and fixtures."""

import pytest
import os
from dotenv import load_dotenv

# Load test environment variables
load_dotenv()

# Set test environment
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("TOOL_REGISTRY_URL", "https://registry.test")
os.environ.setdefault("WEBHOOK_BASE_URL", "https://hooks.test")

from app.infra.error_handler import ToolNotFoundError
from app.models.principal import Principal
from app.models.tool import ToolDocument


class FakeRegistry:
    """In-memory stand-in for the tool registry client."""

    def __init__(self, documents=None, summaries=None):
        self.documents = dict(documents or {})
        self.summaries = list(summaries or [])
        self.get_calls = []
        self.create_calls = []
        self.patch_calls = []
        self.list_calls = 0
        self.fail_with = None
        self._next_id = 1

    async def list_tools(self, principal):
        self.list_calls += 1
        return list(self.summaries)

    async def get_tool(self, principal, tool_id):
        self.get_calls.append(tool_id)
        if tool_id not in self.documents:
            raise ToolNotFoundError(tool_id)
        return self.documents[tool_id]

    async def create_tool(self, principal, document):
        if self.fail_with is not None:
            raise self.fail_with
        self.create_calls.append(document)
        tool_id = f"tool_{self._next_id}"
        self._next_id += 1
        self.documents[tool_id] = ToolDocument.model_validate(document)
        return tool_id

    async def patch_tool(self, principal, tool_id, partial):
        if self.fail_with is not None:
            raise self.fail_with
        self.patch_calls.append((tool_id, partial))


@pytest.fixture
def principal():
    """Principal whose token getter counts calls."""
    calls = {"count": 0}

    async def get_token():
        calls["count"] += 1
        return f"token-{calls['count']}"

    p = Principal(user_id="user-1", get_token=get_token)
    p.token_calls = calls
    return p


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def calcom_document():
    """Registry entry of a Cal.com booking tool."""
    from app.models.tool import CalComBookingTool
    from app.services.schema_synthesizer import build_tool_document

    variant = CalComBookingTool(api_key="cal_live_123", description="Books a demo call")
    return build_tool_document(variant, "https://hooks.test")


@pytest.fixture
def webhook_document():
    """Registry entry of a plain webhook tool."""
    return ToolDocument.model_validate({
        "name": "Lookup_Order",
        "description": "Looks up an order by number",
        "type": "webhook",
        "response_timeout_secs": 30,
        "api_schema": {
            "url": "https://api.example.com/lookup",
            "method": "POST",
            "request_body_schema": {
                "type": "object",
                "properties": {
                    "order_number": {"type": "string", "description": "Order number"},
                    "source": {"type": "string", "description": "Caller", "constant_value": "voice"},
                },
                "required": ["order_number"],
            },
        },
    })
