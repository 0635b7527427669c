"""Request lifecycle state machine with transition validation."""

from marketplace.state_machine.machine import RequestStateMachine
from marketplace.state_machine.transitions import (
    TERMINAL_STATES,
    TRANSITIONS,
    RequestEvent,
    sources_for,
)

__all__ = [
    "RequestEvent",
    "RequestStateMachine",
    "TERMINAL_STATES",
    "TRANSITIONS",
    "sources_for",
]
