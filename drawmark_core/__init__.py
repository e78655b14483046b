"""Headless annotation engine for measurement drawings."""
from __future__ import annotations

from .config import EngineConfig, load_config
from .errors import (
    DrawmarkError,
    InvalidOrdinalError,
    PdfSourceError,
    SaveInProgressError,
    WorkStateLoadError,
)
from .history import HistoryEntry, HistoryManager
from .interaction import ContextMenu, ControllerHooks, Interaction, InteractionController, PointerEvent
from .models import Box, Measurement, Settings, Stamp, StampData, ViewTransform
from .pdf_parser import ParseResult, TextFragment, parse_pages
from .persistence import LocalFileStore, SaveCoordinator, WorkStateRecord
from .state import DRAW, EDIT, AppState

__all__ = [
    "AppState",
    "Box",
    "ContextMenu",
    "ControllerHooks",
    "DRAW",
    "DrawmarkError",
    "EDIT",
    "EngineConfig",
    "HistoryEntry",
    "HistoryManager",
    "Interaction",
    "InteractionController",
    "InvalidOrdinalError",
    "LocalFileStore",
    "Measurement",
    "ParseResult",
    "PdfSourceError",
    "PointerEvent",
    "SaveCoordinator",
    "SaveInProgressError",
    "Settings",
    "Stamp",
    "StampData",
    "TextFragment",
    "ViewTransform",
    "WorkStateLoadError",
    "WorkStateRecord",
    "load_config",
    "parse_pages",
]

__version__ = "0.1.0"
