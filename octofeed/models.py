"""Normalized printer data model published by the feed.

Published values are snapshots: the aggregator keeps the live instances and
hands deep copies to the channels, so consumers may hold on to whatever they
receive without seeing it change underneath them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Mapping, Optional, Union

from . import constants

__all__ = [
    "JobStatus",
    "LayerProgress",
    "PrinterCapabilities",
    "PrinterEvent",
    "PrinterNotification",
    "PrinterState",
    "PrinterStatus",
    "SocketAuth",
    "Temperature",
    "TimeValue",
    "ZOffset",
]


class PrinterState(str, Enum):
    """Printer status derived from the backend's state text."""

    CONNECTING = "connecting"
    OPERATIONAL = "operational"
    PRINTING = "printing"
    PAUSING = "pausing"
    PAUSED = "paused"
    CANCELLING = "cancelling"
    ERROR = "error"
    CLOSED = "closed"
    OFFLINE = "offline"
    UNKNOWN = "unknown"

    @classmethod
    def from_text(cls, text: Optional[str]) -> "PrinterState":
        """Map a human readable state text, case-insensitively."""

        normalized = (text or "").strip().lower()
        if normalized in _STATE_ALIASES:
            return _STATE_ALIASES[normalized]
        try:
            return cls(normalized)
        except ValueError:
            return cls.UNKNOWN


_STATE_ALIASES = {
    "printing from sd": PrinterState.PRINTING,
    "offline after error": PrinterState.ERROR,
    "idle": PrinterState.OPERATIONAL,
    "ready": PrinterState.OPERATIONAL,
}


class PrinterEvent(str, Enum):
    """Canonical printer lifecycle events."""

    UNKNOWN = "unknown"
    CONNECTED = "connected"
    CLOSED = "closed"
    PRINTING = "printing"
    PAUSED = "paused"
    IDLE = "idle"


@dataclass(slots=True)
class Temperature:
    current: int = 0
    set: int = 0
    unit: str = constants.TEMPERATURE_UNIT


@dataclass(slots=True)
class PrinterStatus:
    status: PrinterState = PrinterState.CONNECTING
    bed: Temperature = field(default_factory=Temperature)
    tool0: Temperature = field(default_factory=Temperature)
    fan_speed: int = 0


@dataclass(slots=True)
class TimeValue:
    value: str
    unit: Optional[str] = None


@dataclass(slots=True)
class LayerProgress:
    current: float = 0
    total: float = -1


ZHeight = Union[float, LayerProgress]


@dataclass(slots=True)
class JobStatus:
    file: Optional[str] = None
    full_path: Optional[str] = None
    progress: int = 0
    z_height: ZHeight = 0
    filament_amount: float = 0
    time_printed: Optional[TimeValue] = None
    time_left: TimeValue = field(default_factory=lambda: TimeValue("---"))
    estimated_print_time: Optional[TimeValue] = None
    estimated_end_time: Optional[str] = None

    @classmethod
    def initial(cls, *, layer_progress: bool = False) -> "JobStatus":
        """Zero state of a job; z-height shape depends on layer progress mode."""

        return cls(z_height=LayerProgress() if layer_progress else 0)


@dataclass(slots=True, frozen=True)
class PrinterNotification:
    """Out-of-band operator prompt or notice."""

    action: Optional[str] = None
    message: Optional[str] = None
    text: Optional[str] = None
    choices: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: Any) -> "PrinterNotification":
        if not isinstance(data, Mapping):
            return cls()
        choices = data.get("choices")
        return cls(
            action=data.get("action"),
            message=data.get("message"),
            text=data.get("text"),
            choices=list(choices) if isinstance(choices, (list, tuple)) else [],
        )


@dataclass(slots=True, frozen=True)
class PrinterCapabilities:
    eeprom: Optional[bool] = None
    z_probe: Optional[bool] = None


@dataclass(slots=True, frozen=True)
class ZOffset:
    z_offset: Optional[float] = None
    printer_cap: PrinterCapabilities = field(default_factory=PrinterCapabilities)


@dataclass(slots=True, frozen=True)
class SocketAuth:
    """Ephemeral socket credential; used for one handshake and discarded."""

    user: str
    session: str

    def auth_payload(self) -> dict[str, str]:
        return {"auth": f"{self.user}:{self.session}"}

    def __repr__(self) -> str:
        return f"SocketAuth(user={self.user!r}, session=<redacted>)"
