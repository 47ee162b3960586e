import time
from dataclasses import dataclass, field
from typing import List, Optional

from resume_coach.cover_letter.form_state import FormData


@dataclass(frozen=True)
class HistorySnapshot:
    data: FormData
    timestamp: float = field(default_factory=time.time)


class FormHistory:
    """Linear undo/redo log of form snapshots.

    Recording after an undo discards the entries that were undone. The cursor
    is -1 while the log is empty and otherwise points at the current entry.
    """

    def __init__(self):
        self._entries: List[HistorySnapshot] = []
        self._cursor = -1

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def entries(self) -> List[HistorySnapshot]:
        return list(self._entries)

    @property
    def current(self) -> Optional[HistorySnapshot]:
        if self._cursor < 0:
            return None
        return self._entries[self._cursor]

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return self._cursor < len(self._entries) - 1

    def record(self, data: FormData) -> HistorySnapshot:
        snapshot = HistorySnapshot(data=data)
        del self._entries[self._cursor + 1:]
        self._entries.append(snapshot)
        self._cursor = len(self._entries) - 1
        return snapshot

    def undo(self) -> Optional[HistorySnapshot]:
        if not self.can_undo:
            return None
        self._cursor -= 1
        return self._entries[self._cursor]

    def redo(self) -> Optional[HistorySnapshot]:
        if not self.can_redo:
            return None
        self._cursor += 1
        return self._entries[self._cursor]

    def clear(self) -> None:
        self._entries.clear()
        self._cursor = -1
