"""API request/response models."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from app.models.tool import BuiltInTool, RegistryToolSummary, ToolVariant


# ============================================================================
# Validation Models
# ============================================================================

class ValidationIssueResponse(BaseModel):
    """A field-level validation issue."""
    code: str = Field(..., examples=["ReservedName"])
    field: str = Field(..., examples=["name"])
    message: str


class ToolDraftRequest(BaseModel):
    """A tool draft as typed in the editor."""
    draft: ToolVariant = Field(..., description="Tool variant, discriminated by 'kind'")
    schema_text: Optional[str] = Field(
        None,
        description="Raw request body JSON of a webhook draft; defaults to the draft's request_schema",
    )


class ValidateToolResponse(BaseModel):
    """Response model for draft validation."""
    can_save: bool
    issues: List[ValidationIssueResponse] = Field(default_factory=list)


# ============================================================================
# Editor Helper Models
# ============================================================================

class VariantOptionResponse(BaseModel):
    """Entry of the variant selector."""
    kind: str
    label: str
    value: str
    system_type: Optional[str] = None


class SampleSchemaResponse(BaseModel):
    """Sample request body schema for the webhook editor."""
    request_schema: Dict[str, Any]
    text: str


class AvailableToolsResponse(BaseModel):
    """Response model for listing reusable registry tools."""
    items: List[RegistryToolSummary]
    count: int


# ============================================================================
# Save Models
# ============================================================================

class SaveToolRequest(ToolDraftRequest):
    """Request model for saving a tool onto an agent."""
    tool_id: Optional[str] = Field(None, description="Registry id when editing an existing tool")
    tool_ids: List[str] = Field(default_factory=list, description="Tool ids currently on the agent")
    built_in_tools: Dict[str, Optional[BuiltInTool]] = Field(
        default_factory=dict,
        description="Built-in tools currently on the agent, keyed by system type",
    )


class SaveToolResponse(BaseModel):
    """Response model for a saved tool: the agent's updated tool set."""
    tool_id: Optional[str] = Field(None, description="Registry id of the saved tool; None for built-ins")
    tool_ids: List[str]
    built_in_tools: Dict[str, Optional[BuiltInTool]]
