"""Tool configuration API router."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.adapters.tool_registry_client import tool_registry_client
from app.api.models import (
    AvailableToolsResponse,
    SampleSchemaResponse,
    SaveToolRequest,
    SaveToolResponse,
    ToolDraftRequest,
    ValidateToolResponse,
    ValidationIssueResponse,
    VariantOptionResponse,
)
from app.infra.auth import get_principal
from app.infra.config import config
from app.models.principal import Principal
from app.models.tool import AgentToolSet, SystemTool, ToolKind, WebhookTool
from app.services.schema_synthesizer import (
    build_tool_document,
    parse_operator_schema,
    sample_request_schema,
    schema_to_text,
)
from app.services.tool_config_session import ToolConfigSession
from app.services.tool_identity import variant_options
from app.services.tool_validator import ValidationIssue, collect_issues

logger = logging.getLogger(__name__)

router = APIRouter()


def get_registry():
    """Registry client dependency (overridden in tests)."""
    return tool_registry_client


def _issue_response(issue: ValidationIssue) -> ValidationIssueResponse:
    return ValidationIssueResponse(code=issue.code.value, field=issue.field, message=issue.message)


def _draft_issues(request: ToolDraftRequest) -> List[ValidationIssue]:
    schema_text = request.schema_text
    if schema_text is None and isinstance(request.draft, WebhookTool):
        schema_text = schema_to_text(request.draft.request_schema)
    return collect_issues(request.draft, schema_text)


def _unsaveable(issues: List[ValidationIssue]) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={
            "message": "Tool draft cannot be saved",
            "issues": [_issue_response(issue).model_dump() for issue in issues],
        },
    )


@router.get("/tool-config/options", tags=["Tool Config"], response_model=List[VariantOptionResponse])
async def get_variant_options(
    attached: List[str] = Query(default=[], description="Names of tools already on the agent"),
    current: Optional[str] = Query(None, description="Name of the tool open in the editor"),
):
    """
    Variants selectable in the tool editor.

    Booking tools and system types already on the agent are left out unless
    they are the tool currently being edited.
    """
    return [
        VariantOptionResponse(
            kind=option.kind.value,
            label=option.label,
            value=option.value,
            system_type=option.system_type.value if option.system_type else None,
        )
        for option in variant_options(attached, current)
    ]


@router.get("/tool-config/sample-schema", tags=["Tool Config"], response_model=SampleSchemaResponse)
async def get_sample_schema():
    """Sample webhook request body schema."""
    schema = sample_request_schema()
    return SampleSchemaResponse(request_schema=schema.to_wire(), text=schema_to_text(schema))


@router.post("/tool-config/validate", tags=["Tool Config"], response_model=ValidateToolResponse)
async def validate_tool(request: ToolDraftRequest):
    """Validate a draft; the editor enables save when ``can_save`` is true."""
    issues = _draft_issues(request)
    return ValidateToolResponse(
        can_save=not issues,
        issues=[_issue_response(issue) for issue in issues],
    )


@router.post("/tool-config/preview", tags=["Tool Config"])
async def preview_tool(request: ToolDraftRequest) -> Dict[str, Any]:
    """
    Tool document the draft would be saved as.

    Returns 422 with the validation issues when the draft is not saveable.
    """
    issues = _draft_issues(request)
    if issues:
        raise _unsaveable(issues)

    draft = request.draft
    if isinstance(draft, WebhookTool) and request.schema_text is not None:
        draft = draft.model_copy(update={"request_schema": parse_operator_schema(request.schema_text)})
    return build_tool_document(draft, config.WEBHOOK_BASE_URL).to_wire()


@router.get(
    "/users/{user_id}/tool-config/available",
    tags=["Tool Config"],
    response_model=AvailableToolsResponse,
)
async def list_available_tools(
    exclude: List[str] = Query(default=[], description="Tool ids already on the agent"),
    principal: Principal = Depends(get_principal),
    registry=Depends(get_registry),
):
    """Reusable registry tools of the user not yet attached to the agent."""
    session = ToolConfigSession(principal, registry, AgentToolSet(tool_ids=list(dict.fromkeys(exclude))))
    items = await session.available_tools()
    return AvailableToolsResponse(items=items, count=len(items))


@router.post(
    "/users/{user_id}/tool-config/save",
    tags=["Tool Config"],
    response_model=SaveToolResponse,
)
async def save_tool(
    request: SaveToolRequest,
    principal: Principal = Depends(get_principal),
    registry=Depends(get_registry),
):
    """
    Save a tool onto an agent.

    Webhook and booking tools are created in the registry, or patched when
    ``tool_id`` is given; new system tools go into ``built_in_tools`` without a
    registry call. Returns the agent's updated tool set for the caller to
    persist on the agent record.

    **Example Request:**
    ```json
    {
        "draft": {
            "kind": "webhook",
            "name": "Lookup_Order",
            "description": "Looks up an order",
            "url": "https://api.example.com/lookup"
        },
        "tool_ids": ["tool_123"]
    }
    ```
    """
    try:
        tool_set = AgentToolSet(tool_ids=request.tool_ids, built_in_tools=request.built_in_tools)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    session = ToolConfigSession(principal, registry, tool_set)
    draft = request.draft

    if request.tool_id:
        await session.open(request.tool_id)
        if session.failure is not None:
            raise session.failure
    elif isinstance(draft, SystemTool):
        session.select_variant(ToolKind.SYSTEM, draft.system_type)
    else:
        session.select_variant(draft.kind)

    try:
        session.apply_draft(draft, request.schema_text)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    if not session.can_save:
        raise _unsaveable(session.issues)

    updated = await session.save()
    if updated is None:
        if session.failure is not None:
            raise session.failure
        raise HTTPException(status_code=409, detail=session.error or "Tool could not be saved")

    logger.info(
        "Tool saved for agent",
        extra={"user_id": principal.user_id, "tool_id": session.tool_id, "tool_name": draft.tool_name},
    )
    return SaveToolResponse(
        tool_id=session.tool_id,
        tool_ids=updated.tool_ids,
        built_in_tools=updated.built_in_tools,
    )
