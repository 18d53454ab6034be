from collections import deque
from dataclasses import dataclass

from workspace_tree.entries import Forest

DEFAULT_HISTORY_LIMIT = 50


@dataclass(frozen=True)
class Snapshot:
    forest: Forest
    active_id: str | None = None


class HistoryStack:
    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        if limit < 1:
            raise ValueError("History limit must be positive")
        self.limit = limit
        self._past: deque[Snapshot] = deque(maxlen=limit)
        self._future: list[Snapshot] = []

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    def __len__(self) -> int:
        return len(self._past)

    def push(self, forest: Forest, active_id: str | None = None) -> None:
        self._past.append(Snapshot(forest, active_id))
        self._future.clear()

    def undo(self, current: Snapshot) -> Snapshot | None:
        if not self._past:
            return None
        previous = self._past.pop()
        self._future.append(current)
        return previous

    def redo(self, current: Snapshot) -> Snapshot | None:
        if not self._future:
            return None
        following = self._future.pop()
        self._past.append(current)
        return following

    def clear(self) -> None:
        self._past.clear()
        self._future.clear()
