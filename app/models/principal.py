"""Authenticated principal handed to the tool configuration engine."""

from dataclasses import dataclass
from typing import Awaitable, Callable


@dataclass
class Principal:
    """Operator identity as provided by the external identity collaborator."""
    user_id: str  # stable identifier, addresses the user's registry namespace
    get_token: Callable[[], Awaitable[str]]  # fresh bearer token per call, never cached here
