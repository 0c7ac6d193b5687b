"""Decoding of the backend's push messages.

Every message on the socket is a JSON object whose single top-level key names
its kind (``current``, ``event``, ``plugin``, ``reauth``, ``connected``). The
helpers here classify a message and pull typed fragments out of it. They keep
no state and never raise on malformed input: missing or mistyped fields are
simply left out of the returned patches.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping, Optional

from . import constants
from .core.utils import round_half_up

__all__ = [
    "MessageKind",
    "PluginKind",
    "classify_message",
    "classify_plugin",
    "decode_event_type",
    "decode_job_fields",
    "decode_logs",
    "decode_plugin",
    "decode_state_text",
    "decode_temperature_patch",
    "display_file_name",
]


class MessageKind(str, Enum):
    CURRENT = "current"
    EVENT = "event"
    PLUGIN = "plugin"
    REAUTH = "reauth"
    CONNECTED = "connected"
    UNKNOWN = "unknown"


# First match wins; the backend never sends more than one of these at once.
_KIND_ORDER = (
    MessageKind.CURRENT,
    MessageKind.EVENT,
    MessageKind.PLUGIN,
    MessageKind.REAUTH,
    MessageKind.CONNECTED,
)


class PluginKind(str, Enum):
    KLIPPER = "klipper"
    LAYER_PROGRESS = "DisplayLayerProgress-websocket-payload"
    ACTION_PROMPT = "action_command_prompt"
    ACTION_NOTIFICATION = "action_command_notification"
    Z_OFFSET = "z_probe_offset_universal"


def classify_message(message: Any) -> MessageKind:
    if not isinstance(message, Mapping):
        return MessageKind.UNKNOWN
    for kind in _KIND_ORDER:
        if kind.value in message:
            return kind
    return MessageKind.UNKNOWN


def classify_plugin(identifier: Any) -> Optional[PluginKind]:
    if not isinstance(identifier, str):
        return None
    try:
        return PluginKind(identifier)
    except ValueError:
        return None


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def decode_plugin(message: Mapping[str, Any]) -> tuple[Optional[str], Any]:
    """Return ``(identifier, data)`` of a ``plugin`` message."""

    plugin = _mapping(message.get("plugin"))
    identifier = plugin.get("plugin")
    return (identifier if isinstance(identifier, str) else None), plugin.get("data")


def decode_event_type(message: Mapping[str, Any]) -> Optional[str]:
    event_type = _mapping(message.get("event")).get("type")
    return event_type if isinstance(event_type, str) else None


def decode_state_text(current: Mapping[str, Any]) -> Optional[str]:
    text = _mapping(current.get("state")).get("text")
    return text if isinstance(text, str) else None


def decode_logs(current: Mapping[str, Any]) -> Optional[list[str]]:
    logs = current.get("logs")
    if not isinstance(logs, (list, tuple)):
        return None
    return [line for line in logs if isinstance(line, str)]


def decode_temperature_patch(current: Mapping[str, Any]) -> dict[str, Any]:
    """Sparse ``PrinterStatus`` patch for bed/tool0 from the first temps entry.

    Returns an empty patch when the snapshot carries no temperature reading.
    """

    temps = current.get("temps")
    if not isinstance(temps, (list, tuple)) or not temps:
        return {}
    reading = _mapping(temps[0])

    patch: dict[str, Any] = {}
    for heater in ("bed", "tool0"):
        values = reading.get(heater)
        if not isinstance(values, Mapping):
            continue
        heater_patch: dict[str, Any] = {}
        for source, target in (("actual", "current"), ("target", "set")):
            number = _number(values.get(source))
            if number is not None:
                heater_patch[target] = round_half_up(number)
        if heater_patch:
            heater_patch["unit"] = constants.TEMPERATURE_UNIT
            patch[heater] = heater_patch
    return patch


def display_file_name(display: Optional[str]) -> Optional[str]:
    if display is None:
        return None
    name = display
    for suffix in constants.JOB_FILE_SUFFIXES:
        name = name.replace(suffix, "", 1)
    return name


def decode_job_fields(current: Mapping[str, Any]) -> dict[str, Any]:
    """Collect the raw job values present in a snapshot.

    Keys: ``file``, ``origin``, ``path``, ``completion``, ``print_time``,
    ``print_time_left``, ``filament_length``, ``estimated_print_time``,
    ``current_z``. ``file`` is always present (possibly ``None``) since it is
    the job identity; every other key only when the snapshot carries it.
    Remaining time, estimated time and z-height are only taken when non-zero.
    """

    job = _mapping(current.get("job"))
    file_info = _mapping(job.get("file"))
    progress = _mapping(current.get("progress"))

    display = file_info.get("display")
    fields: dict[str, Any] = {
        "file": display_file_name(display if isinstance(display, str) else None)
    }

    origin = file_info.get("origin")
    path = file_info.get("path")
    if isinstance(origin, str) and isinstance(path, str):
        fields["origin"] = origin
        fields["path"] = path

    completion = _number(progress.get("completion"))
    if completion is not None:
        fields["completion"] = completion

    print_time = _number(progress.get("printTime"))
    if print_time is not None:
        fields["print_time"] = print_time

    print_time_left = _number(progress.get("printTimeLeft"))
    if print_time_left:
        fields["print_time_left"] = print_time_left

    filament = job.get("filament")
    if isinstance(filament, Mapping) and filament:
        total = 0.0
        for tool in filament.values():
            length = _number(_mapping(tool).get("length"))
            if length is not None:
                total += length
        fields["filament_length"] = total

    estimated = _number(job.get("estimatedPrintTime"))
    if estimated:
        fields["estimated_print_time"] = estimated

    current_z = _number(current.get("currentZ"))
    if current_z:
        fields["current_z"] = current_z

    return fields
