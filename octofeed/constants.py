"""Constants used across the octofeed package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "octofeed"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_LOG_PATH = Path.home() / ".config" / APP_NAME / "logs" / f"{APP_NAME}.log"

DEFAULT_OCTOPRINT_HOST = "localhost"
DEFAULT_OCTOPRINT_PORT = 5000

TEMPERATURE_UNIT = "°C"
HOURS_UNIT = "h"

# Suffixes stripped from the display name of the active job file
JOB_FILE_SUFFIXES = (".gcode", ".ufp")

# Backend connection states that mean the printer itself is detached
DETACHED_CONNECTION_STATES = ("Closed", "Error")
