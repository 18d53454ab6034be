import logging
import threading
from typing import Callable, Iterable

from workspace_tree import mutator
from workspace_tree.entries import Forest
from workspace_tree.flat import FlatRecord, flatten
from workspace_tree.history import DEFAULT_HISTORY_LIMIT, HistoryStack, Snapshot
from workspace_tree.reconcile import REPLACE, replace_project_files
from workspace_tree.store import FileStore

logger = logging.getLogger(__name__)

SyncCallback = Callable[[list[FlatRecord]], object]


class StoreSync:
    def __init__(self, store: FileStore, project_id: str, strategy: str = REPLACE) -> None:
        self.store = store
        self.project_id = project_id
        self.strategy = strategy

    def __call__(self, records: list[FlatRecord]) -> object:
        return replace_project_files(self.store, self.project_id, records, self.strategy)


class WorkspaceSession:
    """Editable forest owned by one client.

    Structural edits push the pre-edit forest onto the history stack; content
    edits only mark the session dirty. A dirty session sends its latest
    flattened forest to ``sync`` once ``delay_seconds`` pass without edits.
    """

    def __init__(
        self,
        forest: Forest | None = None,
        sync: SyncCallback | None = None,
        delay_seconds: float = 0.7,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.forest = forest if forest is not None else Forest()
        self.active_id: str | None = None
        self.history = HistoryStack(history_limit)
        self.sync = sync
        self.delay_seconds = delay_seconds
        self.dirty = False
        self._closed = False
        self._timer: threading.Timer | None = None
        self._lock = threading.RLock()
        self._sync_lock = threading.Lock()
        self._select_fallback()

    def _select_fallback(self) -> None:
        if self.active_id is None or self.active_id not in self.forest:
            first = self.forest.first_file()
            self.active_id = first.id if first else None

    def _apply(self, forest: Forest, active_id: str | None = None) -> bool:
        if forest is self.forest:
            return False
        self.history.push(self.forest, self.active_id)
        self.forest = forest
        if active_id is not None:
            self.active_id = active_id
        self._select_fallback()
        self.mark_dirty()
        return True

    def create_file(self, parent_id: str | None, name: str, content: str = "") -> str:
        with self._lock:
            forest, new_id = mutator.create_file(self.forest, parent_id, name, content)
            self._apply(forest, new_id)
            return new_id

    def create_folder(self, parent_id: str | None, name: str) -> str:
        with self._lock:
            forest, new_id = mutator.create_folder(self.forest, parent_id, name)
            self._apply(forest)
            return new_id

    def rename_node(self, node_id: str, new_name: str) -> bool:
        with self._lock:
            return self._apply(mutator.rename_node(self.forest, node_id, new_name))

    def move_node_to_folder(self, node_id: str, dest_folder_id: str | None = None, index: int | None = None) -> bool:
        with self._lock:
            return self._apply(mutator.move_node_to_folder(self.forest, node_id, dest_folder_id, index))

    def move_node_up(self, node_id: str) -> bool:
        with self._lock:
            return self._apply(mutator.move_node_within_siblings(self.forest, node_id, "up"))

    def move_node_down(self, node_id: str) -> bool:
        with self._lock:
            return self._apply(mutator.move_node_within_siblings(self.forest, node_id, "down"))

    def move_node_to_parent(self, node_id: str) -> bool:
        with self._lock:
            return self._apply(mutator.move_node_to_parent_folder(self.forest, node_id))

    def delete_node(self, node_id: str) -> bool:
        with self._lock:
            return self._apply(mutator.delete_node(self.forest, node_id))

    def duplicate_node(self, node_id: str, deep: bool = False) -> str:
        with self._lock:
            forest, copy_id = mutator.duplicate_node(self.forest, node_id, deep=deep)
            self._apply(forest, copy_id if not forest.nodes[copy_id].is_folder else None)
            return copy_id

    def ensure_folder_path(self, start_parent_id: str | None, segments: Iterable[str]) -> str | None:
        with self._lock:
            forest, folder_id = mutator.ensure_folder_path(self.forest, start_parent_id, segments)
            self._apply(forest)
            return folder_id

    def update_file_content(self, node_id: str, content: str) -> None:
        with self._lock:
            forest = mutator.update_file_content(self.forest, node_id, content)
            if forest is not self.forest:
                self.forest = forest
                self.mark_dirty()

    def update_file_content_by_path(self, path: str, content: str) -> None:
        with self._lock:
            forest = mutator.update_file_content_by_path(self.forest, path, content)
            if forest is not self.forest:
                self.forest = forest
                self.mark_dirty()

    def select(self, node_id: str | None) -> None:
        with self._lock:
            if node_id is not None:
                self.forest.require(node_id)
            self.active_id = node_id

    def undo(self) -> bool:
        with self._lock:
            snapshot = self.history.undo(Snapshot(self.forest, self.active_id))
            return self._restore(snapshot)

    def redo(self) -> bool:
        with self._lock:
            snapshot = self.history.redo(Snapshot(self.forest, self.active_id))
            return self._restore(snapshot)

    def _restore(self, snapshot: Snapshot | None) -> bool:
        if snapshot is None:
            return False
        self.forest = snapshot.forest
        self.active_id = snapshot.active_id
        self.mark_dirty()
        return True

    def load(self, forest: Forest, active_path: str | None = None) -> None:
        with self._lock:
            self._cancel_timer()
            self.forest = forest
            self.history.clear()
            self.dirty = False
            match = forest.find_by_path(active_path) if active_path else None
            self.active_id = match.id if match else None
            self._select_fallback()

    def mark_dirty(self) -> None:
        with self._lock:
            self.dirty = True
            if self._closed or self.sync is None:
                return
            self._cancel_timer()
            self._timer = threading.Timer(self.delay_seconds, self._on_timer)
            self._timer.daemon = True
            self._timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        try:
            self.flush()
        except Exception:
            logger.exception("Autosave failed; the next edit will retry")

    def flush(self) -> bool:
        # Saves run one at a time; each snapshots the newest forest once it
        # holds the sync lock, so an older save never lands after a newer one.
        with self._sync_lock:
            with self._lock:
                self._cancel_timer()
                if not self.dirty or self.sync is None:
                    return False
                records = flatten(self.forest)
                self.dirty = False
            try:
                self.sync(records)
            except Exception:
                with self._lock:
                    self.dirty = True
                raise
            return True

    def close(self) -> None:
        try:
            self.flush()
        finally:
            with self._lock:
                self._closed = True
                self._cancel_timer()
