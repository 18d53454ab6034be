import uuid
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Iterator, Literal, Mapping

from workspace_tree.errors import NotFoundError, ValidationError
from workspace_tree.paths import normalize_path

EntryType = Literal["file", "folder"]
FILE: EntryType = "file"
FOLDER: EntryType = "folder"
ENTRY_TYPES = (FILE, FOLDER)


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Entry:
    id: str
    name: str
    type: EntryType
    path: str
    parent_id: str | None = None
    content: str | None = None
    children: tuple[str, ...] | None = None

    @property
    def is_folder(self) -> bool:
        return self.type == FOLDER

    @classmethod
    def file(cls, name: str, path: str, content: str = "", parent_id: str | None = None, entry_id: str | None = None) -> "Entry":
        return cls(id=entry_id or new_id(), name=name, type=FILE, path=path, parent_id=parent_id, content=content or "")

    @classmethod
    def folder(cls, name: str, path: str, parent_id: str | None = None, entry_id: str | None = None) -> "Entry":
        return cls(id=entry_id or new_id(), name=name, type=FOLDER, path=path, parent_id=parent_id, children=())


@dataclass(frozen=True)
class Forest:
    """Arena of entries keyed by id plus the ordered root ids.

    Every mutation builds a new ``Forest`` that shares the untouched
    ``Entry`` objects of its predecessor, which keeps history snapshots cheap.
    """

    nodes: Mapping[str, Entry] = field(default_factory=dict)
    roots: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.nodes, MappingProxyType):
            object.__setattr__(self, "nodes", MappingProxyType(dict(self.nodes)))

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self.nodes

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Forest):
            return NotImplemented
        return self.roots == other.roots and dict(self.nodes) == dict(other.nodes)

    def __hash__(self) -> int:
        return hash(self.roots)

    def get(self, entry_id: str | None) -> Entry | None:
        if entry_id is None:
            return None
        return self.nodes.get(entry_id)

    def require(self, entry_id: str) -> Entry:
        entry = self.nodes.get(entry_id)
        if entry is None:
            raise NotFoundError(f"Entry not found: {entry_id}")
        return entry

    def require_folder(self, entry_id: str | None) -> Entry | None:
        if entry_id is None:
            return None
        entry = self.nodes.get(entry_id)
        if entry is None or not entry.is_folder:
            raise NotFoundError(f"Folder not found: {entry_id}")
        return entry

    def child_ids(self, parent_id: str | None) -> tuple[str, ...]:
        if parent_id is None:
            return self.roots
        return self.require_folder(parent_id).children or ()

    def children_of(self, parent_id: str | None) -> list[Entry]:
        return [self.nodes[child_id] for child_id in self.child_ids(parent_id)]

    def walk(self, parent_id: str | None = None) -> Iterator[Entry]:
        stack = list(reversed(self.child_ids(parent_id)))
        while stack:
            entry = self.nodes[stack.pop()]
            yield entry
            if entry.children:
                stack.extend(reversed(entry.children))

    def subtree_ids(self, entry_id: str) -> list[str]:
        self.require(entry_id)
        ids = [entry_id]
        entry = self.nodes[entry_id]
        if entry.is_folder:
            ids.extend(child.id for child in self.walk(entry_id))
        return ids

    def is_descendant(self, ancestor_id: str, candidate_id: str) -> bool:
        ancestor = self.nodes.get(ancestor_id)
        if ancestor is None or not ancestor.is_folder:
            return False
        current = self.nodes.get(candidate_id)
        while current is not None and current.parent_id is not None:
            if current.parent_id == ancestor_id:
                return True
            current = self.nodes.get(current.parent_id)
        return False

    def find_by_path(self, path: str) -> Entry | None:
        target = normalize_path(path)
        if not target or target == "/":
            return None
        for entry in self.walk():
            if entry.path == target:
                return entry
        return None

    def first_file(self) -> Entry | None:
        return next((entry for entry in self.walk() if not entry.is_folder), None)


class ForestBuilder:
    """Copy-on-write editing session over a single ``Forest``."""

    def __init__(self, forest: Forest) -> None:
        self._nodes = dict(forest.nodes)
        self._roots = list(forest.roots)

    def get(self, entry_id: str) -> Entry:
        return self._nodes[entry_id]

    def put(self, entry: Entry) -> None:
        if entry.type == FILE and entry.children is not None:
            raise ValidationError("A file cannot have children.")
        if entry.type == FOLDER and entry.content is not None:
            raise ValidationError("A folder cannot carry content.")
        self._nodes[entry.id] = entry

    def siblings(self, parent_id: str | None) -> list[str]:
        if parent_id is None:
            return list(self._roots)
        return list(self._nodes[parent_id].children or ())

    def set_siblings(self, parent_id: str | None, ids: list[str]) -> None:
        if parent_id is None:
            self._roots = ids
            return
        self._nodes[parent_id] = replace(self._nodes[parent_id], children=tuple(ids))

    def attach(self, entry: Entry, index: int | None = None) -> None:
        self.put(entry)
        ids = self.siblings(entry.parent_id)
        if index is None or index < 0 or index > len(ids):
            ids.append(entry.id)
        else:
            ids.insert(index, entry.id)
        self.set_siblings(entry.parent_id, ids)

    def detach(self, entry_id: str) -> int:
        entry = self._nodes[entry_id]
        ids = self.siblings(entry.parent_id)
        position = ids.index(entry_id)
        ids.pop(position)
        self.set_siblings(entry.parent_id, ids)
        return position

    def remove_subtree(self, entry_id: str) -> list[str]:
        removed = [entry_id]
        stack = [entry_id]
        while stack:
            entry = self._nodes.pop(stack.pop())
            for child_id in entry.children or ():
                removed.append(child_id)
                stack.append(child_id)
        return removed

    def build(self) -> Forest:
        return Forest(nodes=self._nodes, roots=tuple(self._roots))
