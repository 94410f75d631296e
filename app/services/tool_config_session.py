"""Tool configuration session - the edit state machine behind the tool editor.

A session is opened for one agent, lets the operator pick or load a tool,
keeps the draft valid-or-not at every step and finally persists it, either
through the registry (webhook and booking tools) or inline on the agent's
tool set (system tools).
"""

import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from app.infra.config import config
from app.infra.error_handler import RegistryError
from app.models.principal import Principal
from app.models.tool import (
    AgentToolSet,
    BuiltInTool,
    CalComBookingTool,
    GhlBookingTool,
    RegistryToolSummary,
    SystemTool,
    SystemToolType,
    ToolDocument,
    ToolKind,
    ToolReference,
    WebhookTool,
)
from app.services.schema_synthesizer import (
    SchemaParseError,
    build_built_in_tool,
    build_tool_document,
    parse_operator_schema,
    sample_request_schema,
    schema_to_text,
    system_variant_from_built_in,
    variant_from_document,
)
from app.services.tool_identity import VariantOption, defaults_for, variant_options
from app.services.tool_validator import ValidationIssue, collect_issues

logger = logging.getLogger(__name__)


SaveCallback = Callable[[List[str], Dict[str, Optional[BuiltInTool]]], Union[None, Awaitable[None]]]


class SessionState(str, Enum):
    """States of a tool configuration session."""
    SELECTING_VARIANT = "selecting_variant"
    FETCHING = "fetching"
    EDITING_NEW = "editing_new"
    EDITING_EXISTING_WEBHOOK = "editing_existing_webhook"
    EDITING_BUILT_IN = "editing_built_in"
    EDITING_GHL = "editing_ghl"
    EDITING_CALCOM = "editing_calcom"
    SAVING = "saving"
    SAVED = "saved"
    CLOSED = "closed"


EDITING_STATES = {
    SessionState.EDITING_NEW,
    SessionState.EDITING_EXISTING_WEBHOOK,
    SessionState.EDITING_BUILT_IN,
    SessionState.EDITING_GHL,
    SessionState.EDITING_CALCOM,
}

_NEW_VARIANT_STATES = {
    ToolKind.WEBHOOK: SessionState.EDITING_NEW,
    ToolKind.GHL_BOOKING: SessionState.EDITING_GHL,
    ToolKind.CALCOM: SessionState.EDITING_CALCOM,
    ToolKind.SYSTEM: SessionState.EDITING_BUILT_IN,
}

IMMUTABLE_FIELDS = {"kind", "system_type"}


class ToolDefinitionCache:
    """Registry documents fetched during one session, keyed by tool id."""

    def __init__(self):
        self._documents: Dict[str, ToolDocument] = {}

    def get(self, tool_id: str) -> Optional[ToolDocument]:
        return self._documents.get(tool_id)

    def put(self, tool_id: str, document: ToolDocument) -> None:
        # Latest write wins
        self._documents[tool_id] = document

    def clear(self) -> None:
        self._documents.clear()

    def __contains__(self, tool_id: str) -> bool:
        return tool_id in self._documents

    def __len__(self) -> int:
        return len(self._documents)


class ToolConfigSession:
    """
    One tool edit session for one agent.

    Attributes:
        state: Current SessionState
        variant: Tool variant under edit, None until one is selected or loaded
        schema_text: Raw request body JSON of a webhook draft
        tool_id: Registry id of the entry under edit; None when creating
        error: Session-level error message (failed fetch or failed save)
        failure: The registry error behind ``error``, when there is one
        tool_set: The agent's tool set; replaced only by a successful save
    """

    def __init__(
        self,
        principal: Principal,
        registry,
        tool_set: Optional[AgentToolSet] = None,
        on_save: Optional[SaveCallback] = None,
        webhook_base_url: Optional[str] = None,
    ):
        self.principal = principal
        self.registry = registry
        self.tool_set = tool_set or AgentToolSet()
        self.on_save = on_save
        self.webhook_base_url = webhook_base_url or config.WEBHOOK_BASE_URL

        self.state = SessionState.SELECTING_VARIANT
        self.variant = None
        self.schema_text: Optional[str] = None
        self.tool_id: Optional[str] = None
        self.existing: Optional[ToolDocument] = None
        self.error: Optional[str] = None
        self.failure: Optional[RegistryError] = None
        self.cache = ToolDefinitionCache()
        self._fetch_seq = 0

    # ------------------------------------------------------------------
    # Entry and variant selection
    # ------------------------------------------------------------------

    async def open(self, reference: Optional[ToolReference] = None) -> None:
        """
        Start the session, optionally for an existing tool reference.

        Args:
            reference: A registry tool id, an inline BuiltInTool, or None to
                start from variant selection
        """
        if reference is None:
            self._supersede_fetches()
            self._reset(SessionState.SELECTING_VARIANT)
            return
        if isinstance(reference, BuiltInTool):
            self._supersede_fetches()
            self._reset(SessionState.EDITING_BUILT_IN)
            self.variant = system_variant_from_built_in(reference)
            return
        await self.select_existing(reference)

    def select_variant(self, kind: Union[ToolKind, str], system_type: Optional[Union[SystemToolType, str]] = None):
        """
        Switch the editor to a fresh variant.

        Field state of the previous variant is discarded, and a registry
        fetch still in flight is dropped when it completes. A system type
        that is already on the agent is loaded from its stored entry instead
        of the defaults.

        Raises:
            ValueError: If a system variant is selected without a system type
            RuntimeError: If the session is saving or closed
        """
        self._ensure_open()
        kind = ToolKind(kind)

        if kind == ToolKind.SYSTEM:
            if system_type is None:
                raise ValueError("system_type is required for system tools")
            system_type = SystemToolType(system_type)
            stored = self.tool_set.built_in_tools.get(system_type.value)
            variant = system_variant_from_built_in(stored) if stored else defaults_for(kind, system_type)
        else:
            variant = defaults_for(kind)

        self._supersede_fetches()
        self._reset(_NEW_VARIANT_STATES[kind])
        self.variant = variant
        if isinstance(variant, WebhookTool):
            self.schema_text = schema_to_text(variant.request_schema)
        return variant

    async def select_existing(self, tool_id: str) -> None:
        """
        Load a registry tool for editing.

        The definition is fetched once per session. When several selections
        overlap, only the latest one is applied.
        """
        self._ensure_open()
        seq = self._supersede_fetches()

        document = self.cache.get(tool_id)
        if document is None:
            self._reset(SessionState.FETCHING)
            try:
                document = await self.registry.get_tool(self.principal, tool_id)
            except RegistryError as e:
                if seq != self._fetch_seq or self.state == SessionState.CLOSED:
                    return
                logger.warning(
                    "Tool definition fetch failed",
                    extra={"tool_id": tool_id, "category": e.category.value, "error": e.message},
                )
                self._reset(SessionState.SELECTING_VARIANT)
                self.error = e.message
                self.failure = e
                return
            if self.state == SessionState.CLOSED:
                logger.debug("Discarding tool fetch of closed session", extra={"tool_id": tool_id})
                return
            self.cache.put(tool_id, document)
            if seq != self._fetch_seq:
                logger.debug("Discarding superseded tool fetch", extra={"tool_id": tool_id})
                return

        self.fetch_completed(tool_id, document)

    def fetch_completed(self, tool_id: str, document: ToolDocument) -> None:
        """Apply a fetched definition: edit it as a webhook, then reclassify by name."""
        self._reset(SessionState.EDITING_EXISTING_WEBHOOK)
        self.tool_id = tool_id
        self.existing = document

        variant = variant_from_document(document)
        self.variant = variant

        if isinstance(variant, GhlBookingTool):
            self.state = SessionState.EDITING_GHL
        elif isinstance(variant, CalComBookingTool):
            self.state = SessionState.EDITING_CALCOM
        elif isinstance(variant, SystemTool):
            self.state = SessionState.EDITING_BUILT_IN
        else:
            self.schema_text = schema_to_text(variant.request_schema)
            return

        logger.info(
            "Reclassified registry tool",
            extra={"tool_id": tool_id, "tool_name": document.name, "state": self.state.value},
        )

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def update(self, **fields: Any):
        """
        Change fields of the draft.

        Raises:
            ValueError: For immutable fields, or fields the variant lacks
        """
        self._ensure_editing()
        immutable = IMMUTABLE_FIELDS.intersection(fields)
        if immutable:
            raise ValueError(f"Fields cannot be changed: {', '.join(sorted(immutable))}")
        if "request_schema" in fields:
            raise ValueError("Use set_schema_text to change the request schema")

        data = self.variant.model_dump()
        data.update(fields)
        # Rebuild through validation so unknown fields are rejected
        self.variant = type(self.variant).model_validate(data)
        return self.variant

    def set_schema_text(self, text: str) -> None:
        """Set the raw request body JSON; a parseable schema updates the draft."""
        self._ensure_editing()
        if not isinstance(self.variant, WebhookTool):
            raise ValueError("Only webhook tools have an editable request schema")
        self.schema_text = text
        try:
            schema = parse_operator_schema(text)
        except SchemaParseError:
            # Surfaced through issues
            return
        self.variant = self.variant.model_copy(update={"request_schema": schema})

    def apply_sample_schema(self) -> None:
        self.set_schema_text(schema_to_text(sample_request_schema()))

    def apply_draft(self, variant, schema_text: Optional[str] = None) -> None:
        """
        Replace the whole draft at once.

        Raises:
            ValueError: If the draft is a different variant or system type
                than the one being edited
        """
        self._ensure_editing()
        if type(variant) is not type(self.variant):
            raise ValueError(
                f"Draft is a {variant.kind} tool but the session is editing a {self.variant.kind} tool"
            )
        if isinstance(variant, SystemTool) and variant.system_type != self.variant.system_type:
            raise ValueError("system_type cannot be changed")

        self.variant = variant
        if isinstance(variant, WebhookTool):
            self.set_schema_text(
                schema_text if schema_text is not None else schema_to_text(variant.request_schema)
            )

    @property
    def issues(self) -> List[ValidationIssue]:
        if self.variant is None:
            return []
        schema_text = self.schema_text if isinstance(self.variant, WebhookTool) else None
        return collect_issues(self.variant, schema_text)

    @property
    def can_save(self) -> bool:
        return self.state in EDITING_STATES and self.variant is not None and not self.issues

    # ------------------------------------------------------------------
    # Save / close
    # ------------------------------------------------------------------

    async def save(self) -> Optional[AgentToolSet]:
        """
        Persist the draft and hand the updated tool set to ``on_save``.

        Returns:
            The updated AgentToolSet, or None when nothing was saved (draft
            not saveable, save already running, or registry failure recorded
            in ``error``)
        """
        if self.state == SessionState.SAVING:
            logger.info("Save already in progress, ignoring")
            return None
        if not self.can_save:
            logger.info(
                "Save blocked",
                extra={"state": self.state.value, "issues": [i.code.value for i in self.issues]},
            )
            return None

        prior_state = self.state
        self.state = SessionState.SAVING
        self.error = None
        self.failure = None

        try:
            tool_set = await self._persist()
        except RegistryError as e:
            logger.warning(
                "Tool save failed",
                extra={"tool_id": self.tool_id, "category": e.category.value, "error": e.message},
            )
            self.state = prior_state
            self.error = e.message
            self.failure = e
            return None

        try:
            if self.on_save is not None:
                result = self.on_save(tool_set.tool_ids, tool_set.built_in_tools)
                if inspect.isawaitable(result):
                    await result
        except Exception as e:
            self.state = prior_state
            self.error = str(e)
            raise

        self.tool_set = tool_set
        self.state = SessionState.SAVED
        self.cache.clear()
        logger.info(
            "Tool saved",
            extra={"tool_name": self.variant.tool_name, "tool_id": self.tool_id},
        )
        return tool_set

    async def _persist(self) -> AgentToolSet:
        variant = self.variant
        # A system tool loaded from the registry stays a registry entry
        if isinstance(variant, SystemTool) and not self.tool_id:
            return self.tool_set.with_built_in(variant.system_type.value, build_built_in_tool(variant))

        document = build_tool_document(variant, self.webhook_base_url, self.existing)
        wire = document.to_wire()
        if self.tool_id:
            await self.registry.patch_tool(self.principal, self.tool_id, wire)
        else:
            self.tool_id = await self.registry.create_tool(self.principal, wire)
        self.existing = document
        return self.tool_set.with_tool_id(self.tool_id)

    def cancel(self) -> None:
        """Close without writing anything."""
        self.close()

    def close(self) -> None:
        self._supersede_fetches()
        if self.state != SessionState.SAVED:
            self.state = SessionState.CLOSED
        self.variant = None
        self.schema_text = None
        self.existing = None
        self.cache.clear()

    # ------------------------------------------------------------------
    # Listing helpers
    # ------------------------------------------------------------------

    async def available_tools(self) -> List[RegistryToolSummary]:
        """Reusable registry tools not yet attached to the agent."""
        tools = await self.registry.list_tools(self.principal)
        attached = set(self.tool_set.tool_ids)
        return [tool for tool in tools if tool.tool_id not in attached]

    def variant_options(self) -> List[VariantOption]:
        attached = list(self.tool_set.attached_system_types())
        for tool_id in self.tool_set.tool_ids:
            document = self.cache.get(tool_id)
            if document is not None:
                attached.append(document.name)
        current = self.variant.tool_name if self.variant is not None else None
        return variant_options(attached, current)

    # ------------------------------------------------------------------

    def _supersede_fetches(self) -> int:
        """Invalidate registry fetches still in flight; returns the new sequence number."""
        self._fetch_seq += 1
        return self._fetch_seq

    def _reset(self, state: SessionState) -> None:
        self.state = state
        self.variant = None
        self.schema_text = None
        self.tool_id = None
        self.existing = None
        self.error = None
        self.failure = None

    def _ensure_open(self) -> None:
        if self.state in (SessionState.SAVING, SessionState.SAVED, SessionState.CLOSED):
            raise RuntimeError(f"Session is {self.state.value}")

    def _ensure_editing(self) -> None:
        if self.state not in EDITING_STATES or self.variant is None:
            raise RuntimeError(f"No tool is being edited (state: {self.state.value})")
