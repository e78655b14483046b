"""Exception types raised by the drawmark engine."""
from __future__ import annotations


class DrawmarkError(Exception):
    """Base class for engine errors."""


class InvalidOrdinalError(DrawmarkError, ValueError):
    """Raised when a box number typed by the operator is out of range."""

    def __init__(self, value: object, low: int = 1, high: int = 1000):
        super().__init__(f"Box number must be between {low} and {high} (got {value!r})")
        self.value = value
        self.low = low
        self.high = high


class WorkStateLoadError(DrawmarkError, ValueError):
    """Raised when a saved work state cannot be reconstructed."""


class SaveInProgressError(DrawmarkError, RuntimeError):
    """Raised when a save is requested while another one is still pending."""


class PdfSourceError(DrawmarkError, RuntimeError):
    """Raised when positioned text cannot be read from a PDF."""
