"""Values scraped from free-text signals when structured fields omit them.

The backend attaches the raw serial log lines to every status snapshot. Fan
speed is not part of the structured payload, so it is recovered from the
``M106 S<value>`` commands that went out to the firmware. When the layer
progress plugin is active, it reports fan speed and layer counts as display
strings instead, which are parsed here as well.
"""

from __future__ import annotations

import logging
import re
from typing import Optional, Sequence

from .core.utils import round_half_up

LOGGER = logging.getLogger(__name__)

__all__ = [
    "FAN_SPEED_PATTERN",
    "extract_fan_speed_from_logs",
    "parse_fan_speed_text",
    "parse_layer_value",
]

FAN_SPEED_PATTERN = re.compile(r"M106 S(\d+)", re.IGNORECASE)

_PWM_MAX = 255
_NO_VALUE_MARKERS = ("off", "-")


def _clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(upper, value))


def extract_fan_speed_from_logs(logs: Optional[Sequence[str]]) -> Optional[int]:
    """Return the fan speed percentage from the first ``M106`` log line.

    The S-value is scaled from the PWM range 0-255 to 0-100 and clamped, so
    out-of-range values still yield 100. Returns ``None`` when ``logs`` is
    empty or absent, or when no line matches; callers keep their stored
    value in that case.
    """

    if not logs:
        return None

    for line in logs:
        if not isinstance(line, str):
            continue
        match = FAN_SPEED_PATTERN.search(line)
        if match is None:
            continue
        digits = match.group(1).lstrip("0") or "0"
        raw = _PWM_MAX if len(digits) > 3 else int(digits)
        return _clamp(round_half_up(raw / _PWM_MAX * 100), 0, 100)

    return None


def parse_fan_speed_text(text: Optional[str]) -> Optional[int]:
    """Parse a plugin fan speed string: ``"Off"``, ``"-"`` or ``"<n>%"``."""

    if text is None:
        return None
    normalized = str(text).strip()
    if normalized.lower() in _NO_VALUE_MARKERS:
        return 0
    try:
        value = float(normalized.replace("%", "").strip())
    except ValueError:
        LOGGER.debug("Ignoring unparseable fan speed %r", text)
        return None
    return _clamp(round_half_up(value), 0, 100)


def parse_layer_value(value: object) -> Optional[float]:
    """Parse a plugin layer counter, where ``"-"`` means no value (0)."""

    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    normalized = str(value).strip()
    if normalized == "-":
        return 0
    try:
        number = float(normalized)
    except ValueError:
        LOGGER.debug("Ignoring unparseable layer value %r", value)
        return None
    return int(number) if number.is_integer() else number
