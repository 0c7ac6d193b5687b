"""Routing of decoded socket messages to the status and event handlers."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Union

from .events import EventClassifier
from .models import PrinterEvent, PrinterNotification, ZOffset
from .protocol import (
    MessageKind,
    PluginKind,
    classify_message,
    classify_plugin,
    decode_event_type,
    decode_plugin,
)
from .status import StatusAggregator

LOGGER = logging.getLogger(__name__)

EventPayload = Union[PrinterEvent, PrinterNotification]

# Klipper message subtypes surfaced to the operator
_KLIPPER_NOTIFY_SUBTYPES = ("error",)


class MessageDispatcher:
    """Sends each message to the component owning its kind.

    ``reauth`` and ``connected`` are connection concerns and are handed back
    to the owner through ``on_reauth`` and ``on_connected``.
    """

    def __init__(
        self,
        *,
        aggregator: StatusAggregator,
        classifier: EventClassifier,
        publish_event: Callable[[EventPayload], None],
        publish_z_offset: Callable[[ZOffset], None],
        on_reauth: Callable[[], None],
        on_connected: Callable[[], None],
        layer_progress: bool = False,
    ) -> None:
        self._aggregator = aggregator
        self._classifier = classifier
        self._publish_event = publish_event
        self._publish_z_offset = publish_z_offset
        self._on_reauth = on_reauth
        self._on_connected = on_connected
        self._layer_progress = layer_progress

        self._plugin_handlers: Dict[PluginKind, Callable[[Any], None]] = {
            PluginKind.KLIPPER: self._handle_klipper,
            PluginKind.LAYER_PROGRESS: self._handle_layer_progress,
            PluginKind.ACTION_PROMPT: self._handle_action_command,
            PluginKind.ACTION_NOTIFICATION: self._handle_action_command,
            PluginKind.Z_OFFSET: self._handle_z_offset,
        }

    def dispatch(self, message: Any) -> MessageKind:
        kind = classify_message(message)

        if kind is MessageKind.CURRENT:
            current = message["current"]
            if not isinstance(current, Mapping):
                LOGGER.debug("Ignoring malformed status snapshot")
                return kind
            self._aggregator.apply_printer_snapshot(current)
            self._aggregator.apply_job_snapshot(current)
        elif kind is MessageKind.EVENT:
            self._classifier.handle_event(decode_event_type(message))
        elif kind is MessageKind.PLUGIN:
            self.handle_plugin_message(message)
        elif kind is MessageKind.REAUTH:
            self._on_reauth()
        elif kind is MessageKind.CONNECTED:
            self._on_connected()
        else:
            LOGGER.debug("Ignoring message without a known kind: %.200r", message)

        return kind

    def handle_plugin_message(self, message: Mapping[str, Any]) -> None:
        identifier, data = decode_plugin(message)
        plugin = classify_plugin(identifier)
        if plugin is None:
            LOGGER.debug("Ignoring message from plugin %r", identifier)
            return
        self._plugin_handlers[plugin](data)

    # ------------------------------------------------------------------
    # Plugin handlers
    # ------------------------------------------------------------------
    def _handle_klipper(self, data: Any) -> None:
        if not isinstance(data, Mapping):
            return
        subtype = data.get("subtype")
        if subtype not in _KLIPPER_NOTIFY_SUBTYPES:
            return
        self._publish_event(
            PrinterNotification(
                action="show",
                message=subtype,
                text=data.get("payload"),
                choices=[],
            )
        )

    def _handle_layer_progress(self, data: Any) -> None:
        if not self._layer_progress:
            return
        self._aggregator.apply_layer_progress(data)

    def _handle_action_command(self, data: Any) -> None:
        self._publish_event(PrinterNotification.from_payload(data))

    def _handle_z_offset(self, data: Any) -> None:
        if not isinstance(data, Mapping):
            return
        self._publish_z_offset(ZOffset(z_offset=data.get("msg")))
