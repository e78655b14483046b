"""Bounded, linear undo/redo history of full-state snapshots."""
from __future__ import annotations

import copy
import itertools
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

Snapshot = Dict[str, Any]

DEFAULT_MAX_ENTRIES = 50

_sequence = itertools.count(1)


def _utc_now() -> str:
    return datetime.utcnow().isoformat() + "Z"


@dataclass(frozen=True)
class HistoryEntry:
    action: str
    snapshot: Snapshot
    id: str = field(default_factory=lambda: f"history_{int(time.time() * 1000)}_{next(_sequence)}")
    timestamp: str = field(default_factory=_utc_now)

    def asdict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "action": self.action,
            "snapshot": copy.deepcopy(self.snapshot),
        }


class HistoryManager:
    """Linear history with a cursor.

    ``record`` drops any redo branch past the cursor and evicts the oldest
    entry when ``max_entries`` is exceeded. ``undo``/``redo``/``jump_to``
    move the cursor and return a private copy of the snapshot to restore, or
    ``None`` when there is nothing to do.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = int(max_entries)
        self._entries: List[HistoryEntry] = []
        self._current = -1

    # ------------------------------------------------------------------
    @property
    def entries(self) -> List[HistoryEntry]:
        return list(self._entries)

    @property
    def current_index(self) -> int:
        return self._current

    @property
    def can_undo(self) -> bool:
        return self._current > 0

    @property
    def can_redo(self) -> bool:
        return self._current < len(self._entries) - 1

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    def record(self, action: str, snapshot: Snapshot) -> HistoryEntry:
        entry = HistoryEntry(action=action, snapshot=copy.deepcopy(snapshot))
        del self._entries[self._current + 1:]
        self._entries.append(entry)
        if len(self._entries) > self.max_entries:
            self._entries.pop(0)
        self._current = len(self._entries) - 1
        logger.debug("history: recorded %r (%d/%d)", action, self._current + 1, len(self._entries))
        return entry

    def undo(self) -> Optional[Snapshot]:
        if not self.can_undo:
            return None
        self._current -= 1
        logger.debug("history: undo to %d", self._current)
        return self._snapshot_at(self._current)

    def redo(self) -> Optional[Snapshot]:
        if not self.can_redo:
            return None
        self._current += 1
        logger.debug("history: redo to %d", self._current)
        return self._snapshot_at(self._current)

    def jump_to(self, index: int) -> Optional[Snapshot]:
        if not 0 <= index < len(self._entries):
            return None
        self._current = index
        logger.debug("history: jump to %d", index)
        return self._snapshot_at(index)

    def clear(self) -> None:
        self._entries.clear()
        self._current = -1

    def current_snapshot(self) -> Optional[Snapshot]:
        if self._current < 0:
            return None
        return self._snapshot_at(self._current)

    def describe(self) -> List[Dict[str, Any]]:
        """Rows for a history browser, oldest first."""
        return [
            {
                "index": index,
                "action": entry.action,
                "timestamp": entry.timestamp,
                "current": index == self._current,
            }
            for index, entry in enumerate(self._entries)
        ]

    def _snapshot_at(self, index: int) -> Snapshot:
        return copy.deepcopy(self._entries[index].snapshot)
