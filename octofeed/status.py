"""Best-known printer and job status for one connection.

The aggregator owns the live ``PrinterStatus`` and ``JobStatus`` records.
Each incoming snapshot is decoded into a sparse patch holding only the fields
it actually carries, and the patch is applied onto the record, so a field the
snapshot omits keeps its previous value. Consumers only ever receive deep
copies of the records.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Sequence

from . import constants
from .config import FilamentConfig
from .conversion import (
    convert_filament_length_to_weight,
    convert_seconds_to_hours,
    format_end_time,
)
from .core.utils import apply_patch, round_half_up
from .events import EventClassifier
from .log_signals import extract_fan_speed_from_logs, parse_fan_speed_text, parse_layer_value
from .models import JobStatus, LayerProgress, PrinterState, PrinterStatus, TimeValue
from .protocol import decode_job_fields, decode_logs, decode_state_text, decode_temperature_patch

LOGGER = logging.getLogger(__name__)

__all__ = ["StatusAggregator"]


class StatusAggregator:
    """Applies decoded snapshots to the live status records and publishes them."""

    def __init__(
        self,
        *,
        classifier: EventClassifier,
        publish_printer_status: Callable[[PrinterStatus], None],
        publish_job_status: Callable[[JobStatus], None],
        layer_progress: bool = False,
        filament: Optional[FilamentConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._classifier = classifier
        self._publish_printer_status = publish_printer_status
        self._publish_job_status = publish_job_status
        self._layer_progress = layer_progress
        self._filament = filament or FilamentConfig()
        self._clock = clock

        self._printer_status = PrinterStatus()
        self._job_status = JobStatus.initial(layer_progress=layer_progress)

    @property
    def layer_progress(self) -> bool:
        return self._layer_progress

    def printer_status_snapshot(self) -> PrinterStatus:
        return copy.deepcopy(self._printer_status)

    def job_status_snapshot(self) -> JobStatus:
        return copy.deepcopy(self._job_status)

    def reset(self) -> None:
        """Replace both records with their initial state."""

        self._printer_status = PrinterStatus()
        self._job_status = JobStatus.initial(layer_progress=self._layer_progress)

    # ------------------------------------------------------------------
    # Printer status
    # ------------------------------------------------------------------
    def apply_printer_snapshot(self, current: Mapping[str, Any]) -> PrinterStatus:
        """Update temperatures, state and fan speed from a ``current`` payload."""

        temperature_patch = decode_temperature_patch(current)
        if temperature_patch:
            apply_patch(self._printer_status, temperature_patch)

        self._printer_status.status = PrinterState.from_text(decode_state_text(current))
        self._classifier.synthesize_from_status(self._printer_status.status)

        self.apply_fan_speed_from_logs(decode_logs(current))

        snapshot = self.printer_status_snapshot()
        self._publish_printer_status(snapshot)
        return snapshot

    def apply_fan_speed_from_logs(self, logs: Optional[Sequence[str]]) -> bool:
        """Take the fan speed from serial log lines; ``False`` when none found."""

        fan_speed = extract_fan_speed_from_logs(logs)
        if fan_speed is None:
            return False
        self._printer_status.fan_speed = fan_speed
        return True

    def apply_fan_speed_text(self, text: Optional[str]) -> bool:
        fan_speed = parse_fan_speed_text(text)
        if fan_speed is None:
            return False
        self._printer_status.fan_speed = fan_speed
        return True

    # ------------------------------------------------------------------
    # Job status
    # ------------------------------------------------------------------
    def apply_job_snapshot(self, current: Mapping[str, Any]) -> JobStatus:
        """Update the job record, starting over when the active file changes."""

        fields = decode_job_fields(current)

        if fields["file"] != self._job_status.file:
            LOGGER.info(
                "Active job changed from %r to %r", self._job_status.file, fields["file"]
            )
            self._job_status = JobStatus.initial(layer_progress=self._layer_progress)

        apply_patch(self._job_status, self._job_patch(fields))

        snapshot = self.job_status_snapshot()
        self._publish_job_status(snapshot)
        return snapshot

    def apply_layer_progress(self, data: Any) -> None:
        """Apply layer progress plugin telemetry: fan speed and layer counts."""

        if not isinstance(data, Mapping):
            LOGGER.debug("Ignoring malformed layer progress payload: %r", data)
            return

        self.apply_fan_speed_text(data.get("fanspeed"))

        if self._layer_progress:
            current_layer = parse_layer_value(data.get("currentLayer"))
            total_layer = parse_layer_value(data.get("totalLayer"))
            z_height = self._job_status.z_height
            if not isinstance(z_height, LayerProgress):
                z_height = LayerProgress()
            self._job_status.z_height = LayerProgress(
                current=z_height.current if current_layer is None else current_layer,
                total=z_height.total if total_layer is None else total_layer,
            )

        self._publish_printer_status(self.printer_status_snapshot())
        self._publish_job_status(self.job_status_snapshot())

    def _job_patch(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        patch: dict[str, Any] = {"file": fields["file"]}

        if "path" in fields:
            patch["full_path"] = f"/{fields['origin']}/{fields['path']}"

        if "completion" in fields:
            patch["progress"] = round_half_up(fields["completion"])

        if "print_time" in fields:
            patch["time_printed"] = TimeValue(
                convert_seconds_to_hours(fields["print_time"]), constants.HOURS_UNIT
            )

        if "filament_length" in fields:
            patch["filament_amount"] = convert_filament_length_to_weight(
                fields["filament_length"],
                diameter_mm=self._filament.diameter_mm,
                density=self._filament.density,
            )

        if "print_time_left" in fields:
            patch["time_left"] = TimeValue(
                convert_seconds_to_hours(fields["print_time_left"]), constants.HOURS_UNIT
            )
            patch["estimated_end_time"] = format_end_time(
                self._clock(), fields["print_time_left"]
            )

        if "estimated_print_time" in fields:
            patch["estimated_print_time"] = TimeValue(
                convert_seconds_to_hours(fields["estimated_print_time"]),
                constants.HOURS_UNIT,
            )

        # With layer progress on, z-height belongs to the plugin telemetry.
        if not self._layer_progress and "current_z" in fields:
            patch["z_height"] = fields["current_z"]

        return patch
