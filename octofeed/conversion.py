"""Unit conversions applied while deriving job status."""

from __future__ import annotations

import math
from datetime import datetime, timedelta

__all__ = [
    "convert_filament_length_to_weight",
    "convert_seconds_to_hours",
    "format_end_time",
]


def convert_seconds_to_hours(seconds: float) -> str:
    """Render a duration as ``H:MM`` (hours are not wrapped at 24)."""

    total_minutes = max(0, int(seconds)) // 60
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}:{minutes:02d}"


def convert_filament_length_to_weight(
    length_mm: float, *, diameter_mm: float = 1.75, density: float = 1.25
) -> float:
    """Convert an extruded filament length to grams, rounded to 0.1 g.

    ``density`` is expressed in g/cm³; the volume is computed in mm³ and
    scaled to cm³ before applying it.
    """

    volume_cm3 = length_mm * math.pi * (diameter_mm / 2) ** 2 / 1000
    return round(volume_cm3 * density, 1)


def format_end_time(now: datetime, remaining_seconds: float) -> str:
    """Wall-clock ``HH:MM`` at which a job with ``remaining_seconds`` left ends."""

    end = now + timedelta(seconds=remaining_seconds)
    return end.strftime("%H:%M")
