"""Adapter modules for external integrations."""

from .octoprint import OctoPrintClient, build_ws_url

__all__ = [
    "OctoPrintClient",
    "build_ws_url",
]
