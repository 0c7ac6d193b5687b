"""Core primitives for octofeed."""

from .protocols import CredentialProvider, PrinterApi, PrinterFeed
from .utils import apply_patch, round_half_up

__all__ = [
    "CredentialProvider",
    "PrinterApi",
    "PrinterFeed",
    "apply_patch",
    "round_half_up",
]
