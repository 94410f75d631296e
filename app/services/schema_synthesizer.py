"""Schema synthesis for booking tools and document building for all variants."""

import json
import logging
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from app.models.tool import (
    ApiSchema,
    BuiltInTool,
    CalComBookingTool,
    GhlBookingTool,
    RequestSchema,
    SystemParams,
    SystemTool,
    SystemToolType,
    ToolDocument,
    ToolKind,
    WebhookTool,
)
from app.services.tool_identity import classify

logger = logging.getLogger(__name__)

GHL_BOOKING_PATH = "/ghl/book/"
CALCOM_BOOKING_PATH = "/calcom/book/"

SAMPLE_REQUEST_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "new_time": {
            "type": "string",
            "description": "The new time",
        },
        "Laptop": {
            "type": "object",
            "properties": {
                "Screen_size": {
                    "type": "string",
                    "description": "Size of the screen",
                },
                "operating_system": {
                    "type": "string",
                    "description": "Version of the OS",
                },
            },
            "required": ["Screen_size", "operating_system"],
            "description": "Brand of the laptop",
        },
        "new_date": {
            "type": "string",
            "description": "The new booking date",
        },
        "country_user": {
            "type": "array",
            "items": {
                "type": "string",
                "description": "Interests",
            },
            "description": "User's interests",
        },
    },
    "required": ["new_time", "Laptop", "new_date", "country_user"],
    "description": "Type of parameters from the transcript",
}


class SchemaParseError(ValueError):
    """Operator-supplied request body schema is not acceptable."""


def _string(description: str) -> RequestSchema:
    return RequestSchema(type="string", description=description)


def _constant(description: str, value: str) -> RequestSchema:
    return RequestSchema(type="string", description=description, constant_value=value)


def booking_endpoint(webhook_base_url: str, kind: ToolKind) -> str:
    """Deterministic endpoint of a booking tool."""
    path = GHL_BOOKING_PATH if kind == ToolKind.GHL_BOOKING else CALCOM_BOOKING_PATH
    return f"{webhook_base_url.rstrip('/')}{path}"


def synthesize_ghl_schema(api_key: str, calendar_id: str, location_id: str) -> RequestSchema:
    """
    Request body schema of the GoHighLevel booking tool.

    Times are ISO-8601 with a UTC offset, matching the GoHighLevel
    appointments API.
    """
    return RequestSchema(
        type="object",
        description="Appointment to book in the GoHighLevel calendar",
        properties={
            "apiKey": _constant("GoHighLevel API key", api_key),
            "calendarId": _constant("GoHighLevel calendar to book into", calendar_id),
            "locationId": _constant("GoHighLevel location (sub-account) id", location_id),
            "startTime": _string(
                "Start time of the appointment in ISO-8601 format with UTC offset, "
                "e.g. 2021-06-23T03:30:00+05:30"
            ),
            "endTime": _string(
                "End time of the appointment in ISO-8601 format with UTC offset, "
                "e.g. 2021-06-23T04:30:00+05:30"
            ),
            "title": _string("Short title of the appointment"),
            "timezone": _string("Timezone of the caller as an IANA name, e.g. America/New_York"),
            "contactInfo": RequestSchema(
                type="object",
                description="Contact details of the person booking the appointment",
                properties={
                    "phone": _string("Phone number including + country code, e.g. +15551234567"),
                    "firstName": _string("First name of the contact"),
                    "lastName": _string("Last name of the contact"),
                    "email": _string("Email address of the contact"),
                },
                required=["phone"],
            ),
        },
        required=["startTime", "endTime", "title", "timezone", "contactInfo"],
    )


def synthesize_calcom_schema(api_key: str) -> RequestSchema:
    """
    Request body schema of the Cal.com booking tool.

    Times are UTC with a ``Z`` suffix, matching the Cal.com bookings API.
    """
    return RequestSchema(
        type="object",
        description="Booking to create in Cal.com",
        properties={
            "apiKey": _constant("Cal.com API key", api_key),
            "start": _string(
                "Start time of the booking in UTC, ISO-8601 with Z suffix, "
                "e.g. 2024-08-13T09:00:00Z"
            ),
            "end": _string(
                "End time of the booking in UTC, ISO-8601 with Z suffix, "
                "e.g. 2024-08-13T10:00:00Z"
            ),
            "attendee": RequestSchema(
                type="object",
                description="Person attending the booking",
                properties={
                    "name": _string("Full name of the attendee"),
                    "email": _string("Email address of the attendee"),
                    "timeZone": _string("Timezone of the attendee as an IANA name, e.g. America/New_York"),
                },
                required=["name", "email", "timeZone"],
            ),
        },
        required=["start", "end", "attendee"],
    )


def ghl_api_schema(
    api_key: str,
    calendar_id: str,
    location_id: str,
    webhook_base_url: str,
) -> ApiSchema:
    return ApiSchema(
        url=booking_endpoint(webhook_base_url, ToolKind.GHL_BOOKING),
        method="POST",
        request_body_schema=synthesize_ghl_schema(api_key, calendar_id, location_id),
    )


def calcom_api_schema(api_key: str, webhook_base_url: str) -> ApiSchema:
    return ApiSchema(
        url=booking_endpoint(webhook_base_url, ToolKind.CALCOM),
        method="POST",
        request_body_schema=synthesize_calcom_schema(api_key),
    )


def merge_constant_value(schema: RequestSchema, field_path: str, new_value: Any) -> RequestSchema:
    """
    Set the ``constant_value`` of one field, leaving every other node untouched.

    Args:
        schema: Schema to update (not mutated)
        field_path: Dotted property path, e.g. ``apiKey`` or ``contactInfo.phone``
        new_value: Value to bake in

    Returns:
        Updated copy of the schema

    Raises:
        KeyError: If the path does not name an existing property
    """
    merged = schema.model_copy(deep=True)
    node = merged
    for part in field_path.split("."):
        if not node.properties or part not in node.properties:
            raise KeyError(f"Schema has no field '{field_path}'")
        node = node.properties[part]
    node.constant_value = new_value
    return merged


def extract_constant_values(schema: Optional[RequestSchema], prefix: str = "") -> Dict[str, Any]:
    """Map of dotted field path to ``constant_value`` for every constant field."""
    values: Dict[str, Any] = {}
    if schema is None or not schema.properties:
        return values
    for key, node in schema.properties.items():
        path = f"{prefix}{key}"
        if node.is_constant:
            values[path] = node.constant_value
        values.update(extract_constant_values(node, prefix=f"{path}."))
    return values


def _check_descriptions(node: RequestSchema, path: str) -> None:
    for key, child in (node.properties or {}).items():
        child_path = f"{path}.{key}" if path else key
        if not child.is_constant and not (child.description or "").strip():
            raise SchemaParseError(f"Field '{child_path}' must have a description")
        _check_descriptions(child, child_path)
    if node.items is not None:
        items_path = f"{path}[]" if path else "[]"
        if not node.items.is_constant and not (node.items.description or "").strip():
            raise SchemaParseError(f"Field '{items_path}' must have a description")
        _check_descriptions(node.items, items_path)


def parse_operator_schema(json_text: str) -> RequestSchema:
    """
    Parse the raw JSON an operator typed for a webhook request body.

    Raises:
        SchemaParseError: If the text is not JSON, is not a schema object, or
            has a model-filled field without a description
    """
    try:
        raw = json.loads(json_text)
    except (TypeError, json.JSONDecodeError):
        raise SchemaParseError("Invalid JSON format")

    if not isinstance(raw, dict):
        raise SchemaParseError("Request body schema must be a JSON object")

    try:
        schema = RequestSchema.model_validate(raw)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise SchemaParseError(f"Invalid schema structure at '{location}': {first.get('msg')}")

    if schema.type != "object":
        raise SchemaParseError("Request body schema must have type 'object'")

    _check_descriptions(schema, "")
    return schema


def schema_to_text(schema: RequestSchema) -> str:
    """Pretty JSON shown in the schema editor."""
    return json.dumps(schema.to_wire(), indent=2)


def sample_request_schema() -> RequestSchema:
    return RequestSchema.model_validate(SAMPLE_REQUEST_SCHEMA)


# ============================================================================
# Variant <-> document
# ============================================================================

def _booking_api_schema(
    variant: Union[GhlBookingTool, CalComBookingTool],
    webhook_base_url: str,
    existing: Optional[ToolDocument],
) -> ApiSchema:
    if isinstance(variant, GhlBookingTool):
        constants = {
            "apiKey": variant.api_key,
            "calendarId": variant.calendar_id,
            "locationId": variant.location_id,
        }
        fresh = ghl_api_schema(
            variant.api_key, variant.calendar_id, variant.location_id, webhook_base_url
        )
    else:
        constants = {"apiKey": variant.api_key}
        fresh = calcom_api_schema(variant.api_key, webhook_base_url)

    if existing is None or existing.api_schema is None:
        return fresh

    schema = existing.api_schema.request_body_schema
    if schema is None:
        return fresh
    try:
        for field_path, value in constants.items():
            schema = merge_constant_value(schema, field_path, value)
    except KeyError:
        logger.warning(
            "Existing booking schema lacks credential fields, regenerating",
            extra={"tool_name": variant.tool_name},
        )
        return fresh
    return ApiSchema(url=fresh.url, method="POST", request_body_schema=schema)


def build_tool_document(
    variant,
    webhook_base_url: str,
    existing: Optional[ToolDocument] = None,
) -> ToolDocument:
    """
    Final wire document for a variant.

    Args:
        variant: Tool variant from the edit session
        webhook_base_url: Base URL of the booking webhooks
        existing: Previously persisted document when editing; booking tools
            keep its model-filled field descriptions and only take new
            credential values
    """
    if isinstance(variant, WebhookTool):
        return ToolDocument(
            name=variant.name.strip(),
            description=variant.description,
            type="webhook",
            response_timeout_secs=variant.timeout_secs,
            api_schema=ApiSchema(
                url=variant.url.strip(),
                method="POST",
                request_body_schema=variant.request_schema,
            ),
        )
    if isinstance(variant, (GhlBookingTool, CalComBookingTool)):
        return ToolDocument(
            name=variant.tool_name,
            description=variant.description,
            type="webhook",
            response_timeout_secs=variant.timeout_secs,
            api_schema=_booking_api_schema(variant, webhook_base_url, existing),
        )
    if isinstance(variant, SystemTool):
        return ToolDocument(
            name=variant.tool_name,
            description=variant.description,
            type="system",
            response_timeout_secs=variant.timeout_secs,
            params=_system_params(variant),
        )
    raise TypeError(f"Unsupported tool variant: {type(variant).__name__}")


def _system_params(variant: SystemTool) -> SystemParams:
    return SystemParams(
        system_tool_type=variant.system_type.value,
        transfers=[t.model_copy() for t in variant.transfers] or None,
    )


def build_built_in_tool(variant: SystemTool) -> BuiltInTool:
    """Inline agent record of a system tool."""
    return BuiltInTool(
        name=variant.tool_name,
        description=variant.description,
        type="system",
        response_timeout_secs=variant.timeout_secs,
        params=_system_params(variant),
    )


def system_variant_from_built_in(built_in: BuiltInTool) -> SystemTool:
    system_type = SystemToolType(built_in.params.system_tool_type)
    return SystemTool(
        system_type=system_type,
        description=built_in.description,
        timeout_secs=built_in.response_timeout_secs,
        transfers=[t.model_copy() for t in built_in.params.transfers or []],
    )


def variant_from_document(document: ToolDocument):
    """
    Rebuild the edit-session variant of a persisted document.

    Booking tools get their credentials back from the schema's constant
    values; the document name decides the variant.
    """
    kind = classify(document.name)
    schema = document.api_schema.request_body_schema if document.api_schema else None
    constants = extract_constant_values(schema)

    if kind == ToolKind.GHL_BOOKING:
        return GhlBookingTool(
            api_key=str(constants.get("apiKey") or ""),
            calendar_id=str(constants.get("calendarId") or ""),
            location_id=str(constants.get("locationId") or ""),
            description=document.description,
            timeout_secs=document.response_timeout_secs,
        )
    if kind == ToolKind.CALCOM:
        return CalComBookingTool(
            api_key=str(constants.get("apiKey") or ""),
            description=document.description,
            timeout_secs=document.response_timeout_secs,
        )
    if kind == ToolKind.SYSTEM and document.params is not None:
        return SystemTool(
            system_type=SystemToolType(document.name),
            description=document.description,
            timeout_secs=document.response_timeout_secs,
            transfers=list(document.params.transfers or []),
        )
    return WebhookTool(
        name=document.name,
        description=document.description,
        timeout_secs=document.response_timeout_secs,
        url=(document.api_schema.url or "") if document.api_schema else "",
        request_schema=schema or RequestSchema(type="object", properties={}),
    )
