"""Core utility functions shared across modules."""

from __future__ import annotations

import copy
import dataclasses
import math
from typing import Any, Mapping


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from negative infinity.

    Backend values such as ``20.5`` must display as ``21``; the built-in
    ``round`` would give ``20``.
    """

    return int(math.floor(value + 0.5))


def apply_patch(target: Any, patch: Mapping[str, Any]) -> None:
    """Recursively apply a sparse patch onto a dataclass instance in-place.

    For each key in patch:
    - If the target attribute is a dataclass and the patch value is a mapping,
      recursively apply it
    - Otherwise, overwrite the attribute with a deep copy of the patch value

    Keys absent from ``patch`` are left untouched.

    Examples:
        >>> status = PrinterStatus()
        >>> apply_patch(status, {"bed": {"current": 60}, "fan_speed": 10})
        >>> status.bed.current, status.bed.set, status.fan_speed
        (60, 0, 10)
    """
    for key, value in patch.items():
        if not hasattr(target, key):
            raise AttributeError(
                f"{type(target).__name__} has no field {key!r} to patch"
            )
        existing = getattr(target, key)
        if dataclasses.is_dataclass(existing) and isinstance(value, Mapping):
            apply_patch(existing, value)
        else:
            setattr(target, key, copy.deepcopy(value))
