"""Tests for socket message routing, including plugin payloads."""

import pytest

from octofeed.channels import ReplayChannel
from octofeed.dispatch import MessageDispatcher
from octofeed.events import EventClassifier
from octofeed.models import (
    LayerProgress,
    PrinterEvent,
    PrinterNotification,
    ZOffset,
)
from octofeed.protocol import MessageKind
from octofeed.status import StatusAggregator


class Harness:
    def __init__(self, layer_progress: bool = False) -> None:
        self.events: ReplayChannel = ReplayChannel("events")
        self.z_offset: ReplayChannel = ReplayChannel("z_offset")
        self.classifier = EventClassifier(self.events.publish)
        self.reauth_requests = 0
        self.acks = 0

        self.aggregator = StatusAggregator(
            classifier=self.classifier,
            publish_printer_status=lambda status: self.printer_status.publish(status),
            publish_job_status=lambda status: self.job_status.publish(status),
            layer_progress=layer_progress,
        )
        self.printer_status: ReplayChannel = ReplayChannel(
            "printer_status", seed=self.aggregator.printer_status_snapshot
        )
        self.job_status: ReplayChannel = ReplayChannel(
            "job_status", seed=self.aggregator.job_status_snapshot
        )
        self.dispatcher = MessageDispatcher(
            aggregator=self.aggregator,
            classifier=self.classifier,
            publish_event=self.events.publish,
            publish_z_offset=self.z_offset.publish,
            on_reauth=self._on_reauth,
            on_connected=self._on_connected,
            layer_progress=layer_progress,
        )

    def _on_reauth(self) -> None:
        self.reauth_requests += 1

    def _on_connected(self) -> None:
        self.acks += 1

    def collect(self, channel: ReplayChannel) -> list:
        received: list = []
        channel.subscribe(received.append)
        return received


@pytest.fixture
def harness():
    return Harness()


def test_fan_speed_sequence_from_logs(harness):
    harness.aggregator.apply_fan_speed_text("66%")
    fan_speeds = []
    harness.printer_status.subscribe(lambda status: fan_speeds.append(status.fan_speed))

    harness.dispatcher.dispatch(
        {
            "current": {
                "state": {"text": "operational"},
                "logs": ["Send: N11111 M106 S25*88"],
                "temps": {},
            }
        }
    )

    assert fan_speeds == [66, 10]


def test_fan_speed_sequence_from_default(harness):
    fan_speeds = []
    harness.printer_status.subscribe(lambda status: fan_speeds.append(status.fan_speed))

    harness.dispatcher.dispatch(
        {"current": {"state": {"text": "Operational"}, "logs": ["Send: N11111 M106 S25*88"]}}
    )

    assert fan_speeds == [0, 10]


def test_late_subscriber_sees_current_record_without_new_message(harness):
    harness.aggregator.apply_fan_speed_from_logs(["M106 S255"])

    assert harness.printer_status.latest.fan_speed == 100


def test_current_message_updates_status_and_job(harness):
    jobs = harness.collect(harness.job_status)

    kind = harness.dispatcher.dispatch(
        {
            "current": {
                "state": {"text": "Printing"},
                "job": {"file": {"display": "benchy.gcode", "origin": "local", "path": "benchy.gcode"}},
                "progress": {"completion": 12.0},
            }
        }
    )

    assert kind is MessageKind.CURRENT
    assert jobs[-1].file == "benchy"
    assert jobs[-1].progress == 12
    assert harness.events.latest == PrinterEvent.PRINTING


def test_malformed_current_message_is_ignored(harness):
    statuses = harness.collect(harness.printer_status)

    harness.dispatcher.dispatch({"current": None})

    assert len(statuses) == 1


def test_event_message_is_classified(harness):
    events = harness.collect(harness.events)

    harness.dispatcher.dispatch({"event": {"type": "PrintDone", "payload": {}}})
    harness.dispatcher.dispatch({"event": {"type": "FileAdded", "payload": {}}})

    assert events == [PrinterEvent.IDLE]
    assert harness.classifier.last_state == PrinterEvent.IDLE


def test_reauth_and_connected_are_handed_back(harness):
    assert harness.dispatcher.dispatch({"reauth": True}) is MessageKind.REAUTH
    assert harness.dispatcher.dispatch({"connected": {}}) is MessageKind.CONNECTED

    assert harness.reauth_requests == 1
    assert harness.acks == 1


def test_unknown_message_is_ignored(harness):
    assert harness.dispatcher.dispatch({"history": {}}) is MessageKind.UNKNOWN
    assert harness.events.latest is None


def test_klipper_error_becomes_notification(harness):
    harness.dispatcher.dispatch(
        {"plugin": {"plugin": "klipper", "data": {"subtype": "error", "payload": "MCU 'mcu' shutdown"}}}
    )

    assert harness.events.latest == PrinterNotification(
        action="show", message="error", text="MCU 'mcu' shutdown", choices=[]
    )


def test_klipper_info_is_ignored(harness):
    harness.dispatcher.dispatch(
        {"plugin": {"plugin": "klipper", "data": {"subtype": "info", "payload": "ok"}}}
    )

    assert harness.events.latest is None


@pytest.mark.parametrize("identifier", ["action_command_prompt", "action_command_notification"])
def test_action_commands_pass_through(harness, identifier):
    harness.dispatcher.dispatch(
        {
            "plugin": {
                "plugin": identifier,
                "data": {"action": "show", "text": "Filament runout", "choices": ["Resume", "Cancel"]},
            }
        }
    )

    assert harness.events.latest == PrinterNotification(
        action="show", message=None, text="Filament runout", choices=["Resume", "Cancel"]
    )


def test_z_offset_plugin_updates_channel(harness):
    harness.dispatcher.dispatch(
        {"plugin": {"plugin": "z_probe_offset_universal", "data": {"msg": -1.3}}}
    )

    assert harness.z_offset.latest == ZOffset(z_offset=-1.3)


def test_layer_progress_ignored_when_disabled(harness):
    statuses = harness.collect(harness.printer_status)

    harness.dispatcher.dispatch(
        {
            "plugin": {
                "plugin": "DisplayLayerProgress-websocket-payload",
                "data": {"fanspeed": "80%", "currentLayer": "4", "totalLayer": "50"},
            }
        }
    )

    assert [status.fan_speed for status in statuses] == [0]


def test_layer_progress_applied_when_enabled():
    harness = Harness(layer_progress=True)

    harness.dispatcher.dispatch(
        {
            "plugin": {
                "plugin": "DisplayLayerProgress-websocket-payload",
                "data": {"fanspeed": "80%", "currentLayer": "4", "totalLayer": "50"},
            }
        }
    )

    assert harness.printer_status.latest.fan_speed == 80
    assert harness.job_status.latest.z_height == LayerProgress(4, 50)


def test_unknown_plugin_is_ignored(harness):
    harness.dispatcher.dispatch({"plugin": {"plugin": "softwareupdate", "data": {"x": 1}}})

    assert harness.events.latest is None
    assert harness.z_offset.latest is None
