"""Tool identity service - maps tool names to variants and supplies defaults."""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

from app.models.tool import (
    DEFAULT_TIMEOUT_SECS,
    CalComBookingTool,
    GhlBookingTool,
    SystemTool,
    SystemToolType,
    ToolKind,
    WebhookTool,
)


GHL_BOOKING_NAME = "GHL_BOOKING"
CALCOM_NAME = "CALCOM"

BOOKING_TOOL_NAMES = {
    GHL_BOOKING_NAME: ToolKind.GHL_BOOKING,
    CALCOM_NAME: ToolKind.CALCOM,
}

# Names used by earlier console releases; still reserved, never classified
LEGACY_ALIASES = {"transfer_call", "CAL_BOOKING"}

SYSTEM_TYPE_NAMES = {system_type.value for system_type in SystemToolType}

SYSTEM_DEFAULT_DESCRIPTIONS = {
    SystemToolType.END_CALL: "Ends the current call",
    SystemToolType.LANGUAGE_DETECTION: "Detects the caller's language and switches to it",
    SystemToolType.TRANSFER_TO_AGENT: "Transfers the call to another agent",
    SystemToolType.TRANSFER_TO_NUMBER: "Transfers the call to another number",
    SystemToolType.SKIP_TURN: "Skip the current turn",
    SystemToolType.PLAY_KEYPAD_TOUCH_TONE: "Plays keypad touch tones on the call",
}

BOOKING_DEFAULT_DESCRIPTIONS = {
    ToolKind.GHL_BOOKING: "Books an appointment using GoHighLevel",
    ToolKind.CALCOM: "Books an appointment using Cal.com",
}


@dataclass
class VariantOption:
    """Entry of the variant selector."""
    kind: ToolKind
    label: str
    system_type: Optional[SystemToolType] = None

    @property
    def value(self) -> str:
        return self.system_type.value if self.system_type else self.kind.value


def classify(name: str, existing_schema=None) -> ToolKind:
    """
    Resolve the variant of a tool from its name.

    Never fails: unknown names are plain webhooks. ``existing_schema`` is
    accepted for callers holding a fetched document but does not affect the
    result; only the name decides.
    """
    if name in BOOKING_TOOL_NAMES:
        return BOOKING_TOOL_NAMES[name]
    if name in SYSTEM_TYPE_NAMES:
        return ToolKind.SYSTEM
    return ToolKind.WEBHOOK


def reserved_names() -> Set[str]:
    """Names an operator may not give to a webhook (compare case-insensitively)."""
    return set(BOOKING_TOOL_NAMES) | SYSTEM_TYPE_NAMES | LEGACY_ALIASES


def is_reserved_name(name: str) -> bool:
    lowered = name.strip().lower()
    return any(lowered == reserved.lower() for reserved in reserved_names())


def defaults_for(kind: ToolKind, system_type: Optional[SystemToolType] = None):
    """
    Canonical empty instance of a variant.

    Args:
        kind: Variant to build
        system_type: Required when kind is SYSTEM

    Raises:
        ValueError: If a system variant is requested without a system type
    """
    if kind == ToolKind.WEBHOOK:
        return WebhookTool(timeout_secs=DEFAULT_TIMEOUT_SECS)
    if kind == ToolKind.SYSTEM:
        if system_type is None:
            raise ValueError("system_type is required for system tools")
        system_type = SystemToolType(system_type)
        return SystemTool(
            system_type=system_type,
            description=SYSTEM_DEFAULT_DESCRIPTIONS[system_type],
            timeout_secs=DEFAULT_TIMEOUT_SECS,
        )
    if kind == ToolKind.GHL_BOOKING:
        return GhlBookingTool(
            description=BOOKING_DEFAULT_DESCRIPTIONS[kind],
            timeout_secs=DEFAULT_TIMEOUT_SECS,
        )
    if kind == ToolKind.CALCOM:
        return CalComBookingTool(
            description=BOOKING_DEFAULT_DESCRIPTIONS[kind],
            timeout_secs=DEFAULT_TIMEOUT_SECS,
        )
    raise ValueError(f"Unknown tool kind: {kind}")


def variant_options(
    attached_names: Iterable[str] = (),
    current_name: Optional[str] = None,
) -> List[VariantOption]:
    """
    Variants the operator can pick for the agent being edited.

    Booking tools and system types that are already attached are hidden,
    except the one currently being edited.

    Args:
        attached_names: Names of tools already on the agent (booking names
            and system types)
        current_name: Name of the tool open in the editor, if any
    """
    attached = set(attached_names)

    def available(name: str) -> bool:
        return name not in attached or name == current_name

    options = [VariantOption(kind=ToolKind.WEBHOOK, label="Webhook")]
    if available(GHL_BOOKING_NAME):
        options.append(VariantOption(kind=ToolKind.GHL_BOOKING, label="GHL Booking"))
    if available(CALCOM_NAME):
        options.append(VariantOption(kind=ToolKind.CALCOM, label="Cal.com"))
    for system_type in SystemToolType:
        if available(system_type.value):
            options.append(VariantOption(
                kind=ToolKind.SYSTEM,
                label=system_type.value.upper(),
                system_type=system_type,
            ))
    return options
