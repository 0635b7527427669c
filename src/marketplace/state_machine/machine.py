"""RequestStateMachine class with trigger and valid_events."""

from __future__ import annotations

from marketplace.domain.errors import InvalidTransitionError
from marketplace.domain.types import RequestStatus
from marketplace.state_machine.transitions import TERMINAL_STATES, TRANSITIONS


class RequestStateMachine:
    """Finite state machine governing the request lifecycle.

    Positioned at a request's current status, it validates an event against
    the transition map and yields the next status.  The store applies that
    status with a conditional update, so the machine itself never persists.

    Usage::

        sm = RequestStateMachine(RequestStatus.OPEN)
        sm.trigger("offer_accepted")      # -> IN_NEGOTIATION
        sm.trigger("negotiation_agreed")  # -> ACCEPTED
        sm.trigger("completed")           # -> COMPLETED (terminal)
    """

    def __init__(self, initial_state: RequestStatus = RequestStatus.OPEN) -> None:
        self._state: RequestStatus = initial_state

    @property
    def state(self) -> RequestStatus:
        """Return the current request status."""
        return self._state

    @property
    def is_terminal(self) -> bool:
        """Return True if the request is COMPLETED or CANCELLED."""
        return self._state in TERMINAL_STATES

    def can(self, event: str) -> bool:
        """Return True if *event* is valid from the current status."""
        return (self._state, event) in TRANSITIONS

    def trigger(self, event: str) -> RequestStatus:
        """Apply an event to the current status and transition.

        Args:
            event: The event string (e.g. ``"offer_accepted"``).

        Returns:
            The new status after the transition.

        Raises:
            InvalidTransitionError: If the event is not allowed from the
                current status, or if the request is in a terminal status.
        """
        if self.is_terminal or not self.can(event):
            raise InvalidTransitionError(self._state, event)

        self._state = TRANSITIONS[(self._state, event)]
        return self._state

    def get_valid_events(self) -> list[str]:
        """Return a sorted list of events valid from the current status."""
        if self.is_terminal:
            return []
        return sorted(event for status, event in TRANSITIONS if status == self._state)
