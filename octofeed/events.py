"""Classification of backend events into printer lifecycle events.

Any recognised event name sets the lifecycle state directly; transitions are
not validated against a graph because the backend is the source of truth.
Unrecognised names are ignored. The classifier also fills in a missing
"started"/"paused" transition when a status snapshot shows printing or paused
before any lifecycle event was seen on this connection.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from .models import PrinterEvent, PrinterState

LOGGER = logging.getLogger(__name__)

EventCallback = Callable[[PrinterEvent], None]

# Backend event names mapped to the lifecycle state they put the printer in
EVENT_TRANSITIONS: Dict[str, PrinterEvent] = {
    "PrintStarted": PrinterEvent.PRINTING,
    "PrintResumed": PrinterEvent.PRINTING,
    "PrintPaused": PrinterEvent.PAUSED,
    "PrintFailed": PrinterEvent.IDLE,
    "PrintDone": PrinterEvent.IDLE,
    "PrintCancelled": PrinterEvent.IDLE,
    "Connected": PrinterEvent.CONNECTED,
    "Disconnected": PrinterEvent.CLOSED,
    "Error": PrinterEvent.CLOSED,
}

# Status values that stand in for an event that never arrived
_SYNTHESIZED_EVENTS: Dict[PrinterState, str] = {
    PrinterState.PRINTING: "PrintStarted",
    PrinterState.PAUSED: "PrintPaused",
}


def classify(event_type: Optional[str]) -> Optional[PrinterEvent]:
    if event_type is None:
        return None
    return EVENT_TRANSITIONS.get(event_type)


class EventClassifier:
    """Tracks the last lifecycle state of one connection."""

    def __init__(self, publish: EventCallback) -> None:
        self._publish = publish
        self.last_state = PrinterEvent.UNKNOWN

    def reset(self) -> None:
        self.last_state = PrinterEvent.UNKNOWN

    def handle_event(self, event_type: Optional[str]) -> Optional[PrinterEvent]:
        """Apply a backend event; returns the published state, if any."""

        new_state = classify(event_type)
        if new_state is None:
            LOGGER.debug("Ignoring unhandled event %r", event_type)
            return None

        self.last_state = new_state
        self._publish(new_state)
        return new_state

    def synthesize_from_status(self, status: PrinterState) -> Optional[PrinterEvent]:
        """Emit the implied start/pause event while no lifecycle state is known."""

        if self.last_state is not PrinterEvent.UNKNOWN:
            return None
        event_type = _SYNTHESIZED_EVENTS.get(status)
        if event_type is None:
            return None
        LOGGER.info("Status is %s without a prior event; assuming %s", status.value, event_type)
        return self.handle_event(event_type)
