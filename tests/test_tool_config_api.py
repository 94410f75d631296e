"""API tests for the tool configuration endpoints."""

import logging

import pytest
from fastapi.testclient import TestClient
from app.api.routers.tool_config import get_registry
from app.infra.error_handler import NetworkOrServerError
from app.main import app
from app.models.tool import RegistryToolSummary, ToolDocument

AUTH = {"Authorization": "Bearer console-token"}

WEBHOOK_DRAFT = {
    "kind": "webhook",
    "name": "Lookup_Order",
    "description": "Looks up an order",
    "url": "https://api.example.com/lookup",
}


@pytest.fixture
def client(registry):
    """Test client wired to the in-memory registry."""
    app.dependency_overrides[get_registry] = lambda: registry
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestEditorHelpers:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert "X-Request-ID" in response.headers

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"
        assert "X-Response-Time-Ms" in response.headers

    def test_options(self, client):
        response = client.get("/tool-config/options", params={"attached": ["CALCOM", "end_call"]})
        assert response.status_code == 200
        values = [o["value"] for o in response.json()]
        assert values[0] == "webhook"
        assert "calcom" not in values
        assert "end_call" not in values

    def test_sample_schema(self, client):
        response = client.get("/tool-config/sample-schema")
        data = response.json()
        assert data["request_schema"]["type"] == "object"
        assert '"Laptop"' in data["text"]


class TestValidate:

    def test_valid_draft(self, client):
        response = client.post("/tool-config/validate", json={"draft": WEBHOOK_DRAFT})
        assert response.json() == {"can_save": True, "issues": []}

    def test_reserved_name(self, client):
        draft = dict(WEBHOOK_DRAFT, name="end_call")
        response = client.post("/tool-config/validate", json={"draft": draft})
        data = response.json()
        assert data["can_save"] is False
        assert data["issues"][0]["code"] == "ReservedName"
        assert data["issues"][0]["field"] == "name"

    def test_invalid_schema_text(self, client):
        response = client.post(
            "/tool-config/validate",
            json={"draft": WEBHOOK_DRAFT, "schema_text": "{nope"},
        )
        assert [i["code"] for i in response.json()["issues"]] == ["InvalidJson"]

    def test_unknown_kind_rejected(self, client):
        response = client.post("/tool-config/validate", json={"draft": {"kind": "zapier"}})
        assert response.status_code == 422


class TestPreview:

    def test_calcom_preview(self, client):
        response = client.post(
            "/tool-config/preview",
            json={"draft": {"kind": "calcom", "api_key": "cal_live_1"}},
        )
        assert response.status_code == 200
        document = response.json()
        assert document["name"] == "CALCOM"
        assert document["type"] == "webhook"
        assert document["api_schema"]["url"].endswith("/calcom/book/")
        apikey = document["api_schema"]["request_body_schema"]["properties"]["apiKey"]
        assert apikey["constant_value"] == "cal_live_1"

    def test_unsaveable_preview(self, client):
        response = client.post("/tool-config/preview", json={"draft": {"kind": "ghl_booking"}})
        assert response.status_code == 422
        assert response.json()["detail"]["issues"][0]["code"] == "MissingCredentials"


class TestUserEndpoints:

    def test_bearer_token_required(self, client):
        response = client.get("/users/user-1/tool-config/available")
        assert response.status_code == 401

    def test_available_tools(self, client, registry):
        registry.summaries = [RegistryToolSummary(tool_id="tool_a"), RegistryToolSummary(tool_id="tool_b")]
        response = client.get(
            "/users/user-1/tool-config/available",
            params={"exclude": ["tool_a"]},
            headers=AUTH,
        )
        assert response.status_code == 200
        assert response.json()["count"] == 1
        assert response.json()["items"][0]["tool_id"] == "tool_b"

    def test_save_new_webhook(self, client, registry):
        response = client.post(
            "/users/user-1/tool-config/save",
            json={"draft": WEBHOOK_DRAFT, "tool_ids": ["tool_x"]},
            headers=AUTH,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["tool_id"] == "tool_1"
        assert data["tool_ids"] == ["tool_x", "tool_1"]
        assert registry.create_calls[0]["name"] == "Lookup_Order"

    def test_save_system_tool(self, client, registry):
        response = client.post(
            "/users/user-1/tool-config/save",
            json={"draft": {"kind": "system", "system_type": "skip_turn"}, "tool_ids": ["tool_x"]},
            headers=AUTH,
        )
        data = response.json()
        assert response.status_code == 200
        assert data["tool_id"] is None
        assert data["tool_ids"] == ["tool_x"]
        assert data["built_in_tools"]["skip_turn"]["params"]["system_tool_type"] == "skip_turn"
        assert registry.create_calls == []

    def test_save_existing_booking(self, client, registry, calcom_document):
        registry.documents["tool_cal"] = calcom_document
        response = client.post(
            "/users/user-1/tool-config/save",
            json={
                "draft": {"kind": "calcom", "api_key": "cal_live_new"},
                "tool_id": "tool_cal",
                "tool_ids": ["tool_cal"],
            },
            headers=AUTH,
        )
        assert response.status_code == 200
        assert response.json()["tool_ids"] == ["tool_cal"]
        tool_id, partial = registry.patch_calls[0]
        assert tool_id == "tool_cal"
        assert partial["api_schema"]["request_body_schema"]["properties"]["apiKey"]["constant_value"] == "cal_live_new"

    def test_save_draft_of_other_variant(self, client, registry, calcom_document):
        registry.documents["tool_cal"] = calcom_document
        response = client.post(
            "/users/user-1/tool-config/save",
            json={"draft": WEBHOOK_DRAFT, "tool_id": "tool_cal"},
            headers=AUTH,
        )
        assert response.status_code == 422

    def test_save_unknown_tool(self, client):
        response = client.post(
            "/users/user-1/tool-config/save",
            json={"draft": WEBHOOK_DRAFT, "tool_id": "missing"},
            headers=AUTH,
        )
        assert response.status_code == 404
        assert response.json()["category"] == "not_found"

    def test_save_registry_failure(self, client, registry):
        registry.fail_with = NetworkOrServerError("Registry create tool failed (503)", status_code=503)
        response = client.post(
            "/users/user-1/tool-config/save",
            json={"draft": WEBHOOK_DRAFT},
            headers=AUTH,
        )
        assert response.status_code == 502
        assert response.json()["detail"] == "Registry create tool failed (503)"

    def test_save_invalid_draft(self, client, registry):
        response = client.post(
            "/users/user-1/tool-config/save",
            json={"draft": dict(WEBHOOK_DRAFT, url="")},
            headers=AUTH,
        )
        assert response.status_code == 422
        assert response.json()["detail"]["issues"][0]["code"] == "EmptyUrl"
        assert registry.create_calls == []

    def test_save_registry_system_tool(self, client, registry, caplog):
        registry.documents["sys1"] = ToolDocument.model_validate({
            "name": "end_call",
            "type": "system",
            "params": {"system_tool_type": "end_call"},
        })
        with caplog.at_level(logging.INFO, logger="app.api.routers.tool_config"):
            response = client.post(
                "/users/user-1/tool-config/save",
                json={
                    "draft": {"kind": "system", "system_type": "end_call", "description": "Hang up"},
                    "tool_id": "sys1",
                    "tool_ids": ["sys1"],
                },
                headers=AUTH,
            )
        assert response.status_code == 200
        data = response.json()
        assert data["tool_id"] == "sys1"
        assert data["tool_ids"] == ["sys1"]
        assert data["built_in_tools"] == {}
        assert registry.patch_calls[0][0] == "sys1"
        saved = [r for r in caplog.records if r.getMessage() == "Tool saved for agent"]
        assert saved[0].tool_name == "end_call"
