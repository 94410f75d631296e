"""Field validation for tool configuration drafts."""

import re
from enum import Enum
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlparse

from app.models.tool import (
    MAX_TIMEOUT_SECS,
    MIN_TIMEOUT_SECS,
    CalComBookingTool,
    GhlBookingTool,
    SystemTool,
    SystemToolType,
    ToolKind,
    WebhookTool,
)
from app.services.schema_synthesizer import SchemaParseError, parse_operator_schema
from app.services.tool_identity import is_reserved_name


class ToolValidationCode(str, Enum):
    """Validation failure codes surfaced next to the offending field."""
    EMPTY_NAME = "EmptyName"
    RESERVED_NAME = "ReservedName"
    INVALID_NAME_FORMAT = "InvalidNameFormat"
    EMPTY_URL = "EmptyUrl"
    MALFORMED_URL = "MalformedUrl"
    INVALID_JSON = "InvalidJson"
    MISSING_CREDENTIALS = "MissingCredentials"
    EMPTY_DESCRIPTION = "EmptyDescription"
    INVALID_TIMEOUT = "InvalidTimeout"
    MISSING_TRANSFER_TARGET = "MissingTransferTarget"


@dataclass
class ValidationIssue:
    """A validation issue found in a tool draft."""
    code: ToolValidationCode
    field: str  # form field the message belongs to
    message: str  # human readable


TOOL_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
PHONE_NUMBER_PATTERN = re.compile(r"^\+[1-9]\d{6,14}$")


def validate_name(name: str, kind: ToolKind = ToolKind.WEBHOOK) -> Optional[ValidationIssue]:
    """
    Validate a tool name.

    Only webhook names are operator-chosen; the fixed names of the other
    variants skip the reserved-name check.
    """
    if not name or not name.strip():
        return ValidationIssue(ToolValidationCode.EMPTY_NAME, "name", "Tool name is required")
    if kind == ToolKind.WEBHOOK and is_reserved_name(name):
        return ValidationIssue(
            ToolValidationCode.RESERVED_NAME,
            "name",
            "Reserved tool name. Please choose a different name.",
        )
    if not TOOL_NAME_PATTERN.match(name):
        return ValidationIssue(
            ToolValidationCode.INVALID_NAME_FORMAT,
            "name",
            "Tool name may only contain letters, digits, underscores and hyphens (max 64)",
        )
    return None


def validate_url(url: str) -> Optional[ValidationIssue]:
    """Webhook URL must be an absolute http(s) URL."""
    if not url or not url.strip():
        return ValidationIssue(ToolValidationCode.EMPTY_URL, "url", "Webhook URL is required")
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        parsed = None
    if parsed is None or parsed.scheme not in ("http", "https") or not parsed.netloc:
        return ValidationIssue(
            ToolValidationCode.MALFORMED_URL,
            "url",
            "Webhook URL must be an absolute http(s) URL",
        )
    return None


def validate_ghl(config: GhlBookingTool) -> Optional[ValidationIssue]:
    if not (config.api_key.strip() and config.calendar_id.strip() and config.location_id.strip()):
        return ValidationIssue(
            ToolValidationCode.MISSING_CREDENTIALS,
            "credentials",
            "GHL API key, calendar ID and location ID are required",
        )
    return None


def validate_calcom(config: CalComBookingTool) -> Optional[ValidationIssue]:
    if not config.api_key.strip():
        return ValidationIssue(
            ToolValidationCode.MISSING_CREDENTIALS,
            "credentials",
            "Cal.com API key is required",
        )
    return None


def validate_json_schema(json_text: str) -> Optional[ValidationIssue]:
    try:
        parse_operator_schema(json_text)
    except SchemaParseError as e:
        return ValidationIssue(ToolValidationCode.INVALID_JSON, "request_schema", str(e))
    return None


def validate_timeout(timeout_secs: int) -> Optional[ValidationIssue]:
    if not MIN_TIMEOUT_SECS <= timeout_secs <= MAX_TIMEOUT_SECS:
        return ValidationIssue(
            ToolValidationCode.INVALID_TIMEOUT,
            "timeout_secs",
            f"Response timeout must be between {MIN_TIMEOUT_SECS} and {MAX_TIMEOUT_SECS} seconds",
        )
    return None


def validate_transfers(tool: SystemTool) -> Optional[ValidationIssue]:
    """Transfer system tools need a destination."""
    if tool.system_type == SystemToolType.TRANSFER_TO_NUMBER:
        numbers = [t.phone_number for t in tool.transfers if t.phone_number]
        if not numbers:
            return ValidationIssue(
                ToolValidationCode.MISSING_TRANSFER_TARGET,
                "transfers",
                "A phone number to transfer to is required",
            )
        if not all(PHONE_NUMBER_PATTERN.match(number.strip()) for number in numbers):
            return ValidationIssue(
                ToolValidationCode.MISSING_TRANSFER_TARGET,
                "transfers",
                "Phone numbers must include + country code (e.g. +1234567890)",
            )
    if tool.system_type == SystemToolType.TRANSFER_TO_AGENT:
        if not any(t.agent_id for t in tool.transfers):
            return ValidationIssue(
                ToolValidationCode.MISSING_TRANSFER_TARGET,
                "transfers",
                "An agent to transfer to is required",
            )
    return None


def collect_issues(variant, schema_text: Optional[str] = None) -> List[ValidationIssue]:
    """
    Every validation issue of a draft, recomputed from scratch.

    Args:
        variant: Tool variant under edit
        schema_text: Raw request body JSON typed by the operator (webhooks
            only); the variant's current schema is used when omitted
    """
    checks: List[Optional[ValidationIssue]] = []

    if isinstance(variant, WebhookTool):
        checks.append(validate_name(variant.name, ToolKind.WEBHOOK))
        checks.append(validate_url(variant.url))
        if not variant.description.strip():
            checks.append(ValidationIssue(
                ToolValidationCode.EMPTY_DESCRIPTION,
                "description",
                "Description is required",
            ))
        if schema_text is not None:
            checks.append(validate_json_schema(schema_text))
        checks.append(validate_timeout(variant.timeout_secs))
    elif isinstance(variant, GhlBookingTool):
        checks.append(validate_ghl(variant))
        checks.append(validate_timeout(variant.timeout_secs))
    elif isinstance(variant, CalComBookingTool):
        checks.append(validate_calcom(variant))
        checks.append(validate_timeout(variant.timeout_secs))
    elif isinstance(variant, SystemTool):
        checks.append(validate_timeout(variant.timeout_secs))
        checks.append(validate_transfers(variant))
    else:
        raise TypeError(f"Unsupported tool variant: {type(variant).__name__}")

    return [issue for issue in checks if issue is not None]


def can_save(variant, schema_text: Optional[str] = None) -> bool:
    """Whether the draft passes every check of its variant."""
    return not collect_issues(variant, schema_text)
