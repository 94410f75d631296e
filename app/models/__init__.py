
from .principal import Principal
from .tool import (
    AgentToolSet,
    ApiSchema,
    BuiltInTool,
    CalComBookingTool,
    GhlBookingTool,
    RegistryToolSummary,
    RequestSchema,
    SystemParams,
    SystemTool,
    SystemToolType,
    ToolDocument,
    ToolKind,
    ToolReference,
    ToolVariant,
    Transfer,
    WebhookTool,
)

__all__ = [
    "AgentToolSet",
    "ApiSchema",
    "BuiltInTool",
    "CalComBookingTool",
    "GhlBookingTool",
    "Principal",
    "RegistryToolSummary",
    "RequestSchema",
    "SystemParams",
    "SystemTool",
    "SystemToolType",
    "ToolDocument",
    "ToolKind",
    "ToolReference",
    "ToolVariant",
    "Transfer",
    "WebhookTool",
]
