"""Tool configuration data model: variants, request schemas and wire documents."""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


DEFAULT_TIMEOUT_SECS = 20
MIN_TIMEOUT_SECS = 1
MAX_TIMEOUT_SECS = 120


class ToolKind(str, Enum):
    """Discriminant of the tool variant union."""
    WEBHOOK = "webhook"
    SYSTEM = "system"
    GHL_BOOKING = "ghl_booking"
    CALCOM = "calcom"


class SystemToolType(str, Enum):
    """Built-in actions implemented by the calling platform."""
    END_CALL = "end_call"
    LANGUAGE_DETECTION = "language_detection"
    TRANSFER_TO_AGENT = "transfer_to_agent"
    TRANSFER_TO_NUMBER = "transfer_to_number"
    SKIP_TURN = "skip_turn"
    PLAY_KEYPAD_TOUCH_TONE = "play_keypad_touch_tone"


class RequestSchema(BaseModel):
    """
    JSON-Schema-like node describing a webhook request body.

    A node carrying ``constant_value`` is filled by the operator at
    configuration time and is never asked of the calling model.
    """
    model_config = ConfigDict(extra="allow")

    type: str
    description: Optional[str] = None
    constant_value: Optional[Any] = None
    dynamic_variable: Optional[str] = None
    properties: Optional[Dict[str, "RequestSchema"]] = None
    items: Optional["RequestSchema"] = None
    required: Optional[List[str]] = None

    @property
    def is_constant(self) -> bool:
        return self.constant_value is not None

    def to_wire(self) -> Dict[str, Any]:
        """Serialize without unset optional keys."""
        return self.model_dump(exclude_none=True)


class Transfer(BaseModel):
    """Transfer target of a transfer_* system tool."""
    condition: str
    phone_number: Optional[str] = None
    agent_id: Optional[str] = None


# ============================================================================
# Tool variants (edit-session shapes)
# ============================================================================

class WebhookTool(BaseModel):
    """Arbitrary operator-defined HTTP callback."""
    model_config = ConfigDict(extra="forbid")

    kind: Literal["webhook"] = "webhook"
    name: str = ""
    description: str = ""
    timeout_secs: int = DEFAULT_TIMEOUT_SECS
    url: str = ""
    request_schema: RequestSchema = Field(
        default_factory=lambda: RequestSchema(type="object", properties={})
    )

    @property
    def tool_name(self) -> str:
        return self.name


class SystemTool(BaseModel):
    """Built-in platform action; its name is always its system type."""
    model_config = ConfigDict(extra="forbid")

    kind: Literal["system"] = "system"
    system_type: SystemToolType
    description: str = ""
    timeout_secs: int = DEFAULT_TIMEOUT_SECS
    transfers: List[Transfer] = Field(default_factory=list)

    @property
    def tool_name(self) -> str:
        return self.system_type.value


class GhlBookingTool(BaseModel):
    """GoHighLevel calendar booking integration."""
    model_config = ConfigDict(extra="forbid")

    kind: Literal["ghl_booking"] = "ghl_booking"
    api_key: str = ""
    calendar_id: str = ""
    location_id: str = ""
    description: str = ""
    timeout_secs: int = DEFAULT_TIMEOUT_SECS

    @property
    def tool_name(self) -> str:
        return "GHL_BOOKING"


class CalComBookingTool(BaseModel):
    """Cal.com booking integration."""
    model_config = ConfigDict(extra="forbid")

    kind: Literal["calcom"] = "calcom"
    api_key: str = ""
    description: str = ""
    timeout_secs: int = DEFAULT_TIMEOUT_SECS

    @property
    def tool_name(self) -> str:
        return "CALCOM"


ToolVariant = Annotated[
    Union[WebhookTool, SystemTool, GhlBookingTool, CalComBookingTool],
    Field(discriminator="kind"),
]


# ============================================================================
# Persisted shapes
# ============================================================================

class ApiSchema(BaseModel):
    """HTTP call description of a webhook-backed tool.

    Registry entries may omit ``url`` or ``request_body_schema``.
    """
    url: Optional[str] = None
    method: str = "POST"
    request_body_schema: Optional[RequestSchema] = None


class SystemParams(BaseModel):
    """Parameters of a system tool."""
    system_tool_type: str
    transfers: Optional[List[Transfer]] = None


class ToolDocument(BaseModel):
    """Normalized registry entry consumed by the calling agent at runtime."""
    name: str
    description: str = ""
    type: Literal["webhook", "system"]
    response_timeout_secs: int = Field(
        default=DEFAULT_TIMEOUT_SECS, ge=MIN_TIMEOUT_SECS, le=MAX_TIMEOUT_SECS
    )
    api_schema: Optional[ApiSchema] = None
    params: Optional[SystemParams] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class BuiltInTool(BaseModel):
    """System tool stored inline on an agent record, keyed by its system type."""
    name: str
    description: str = ""
    type: Literal["system"] = "system"
    response_timeout_secs: int = DEFAULT_TIMEOUT_SECS
    params: SystemParams


ToolReference = Union[str, BuiltInTool]


class AgentToolSet(BaseModel):
    """Tool references stored on an agent record."""
    tool_ids: List[str] = Field(default_factory=list)
    built_in_tools: Dict[str, Optional[BuiltInTool]] = Field(default_factory=dict)

    @field_validator("tool_ids")
    @classmethod
    def _unique_tool_ids(cls, value: List[str]) -> List[str]:
        if len(set(value)) != len(value):
            raise ValueError("tool_ids must not contain duplicates")
        return value

    def with_tool_id(self, tool_id: str) -> "AgentToolSet":
        """Return a copy with ``tool_id`` appended unless already present."""
        tool_ids = list(self.tool_ids)
        if tool_id not in tool_ids:
            tool_ids.append(tool_id)
        return AgentToolSet(tool_ids=tool_ids, built_in_tools=dict(self.built_in_tools))

    def with_built_in(self, system_type: str, tool: BuiltInTool) -> "AgentToolSet":
        built_in_tools = dict(self.built_in_tools)
        built_in_tools[system_type] = tool
        return AgentToolSet(tool_ids=list(self.tool_ids), built_in_tools=built_in_tools)

    def without_tool_id(self, tool_id: str) -> "AgentToolSet":
        return AgentToolSet(
            tool_ids=[t for t in self.tool_ids if t != tool_id],
            built_in_tools=dict(self.built_in_tools),
        )

    def without_built_in(self, system_type: str) -> "AgentToolSet":
        built_in_tools = dict(self.built_in_tools)
        if system_type in built_in_tools:
            built_in_tools[system_type] = None
        return AgentToolSet(tool_ids=list(self.tool_ids), built_in_tools=built_in_tools)

    def attached_system_types(self) -> List[str]:
        return [key for key, tool in self.built_in_tools.items() if tool is not None]


class RegistryToolSummary(BaseModel):
    """Row of the registry's per-user tool listing."""
    tool_id: str = Field(..., validation_alias=AliasChoices("tool_id", "toolId", "id"))
    created_at: Optional[Any] = Field(
        default=None, validation_alias=AliasChoices("created_at", "createdAt")
    )
