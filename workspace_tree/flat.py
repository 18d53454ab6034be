import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Iterable, Literal, Mapping

from workspace_tree.entries import ENTRY_TYPES, FILE, FOLDER, Entry, EntryType, Forest, ForestBuilder
from workspace_tree.errors import ValidationError
from workspace_tree.paths import base_name, normalize_path, parent_path, path_depth, split_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FlatRecord:
    name: str
    path: str
    type: EntryType
    content: str | None = None
    id: str | None = None
    parent_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "path": self.path, "type": self.type}
        if self.type == FILE:
            payload["content"] = self.content or ""
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "FlatRecord":
        if not isinstance(payload, Mapping):
            raise ValidationError("Each record must be an object")
        entry_type = payload.get("type")
        if entry_type not in ENTRY_TYPES:
            raise ValidationError(f"type must be 'file' or 'folder', got {entry_type!r}")
        raw_path = payload.get("path")
        if not isinstance(raw_path, str):
            raise ValidationError("path is required")
        path = normalize_path(raw_path)
        if not path or path == "/":
            raise ValidationError(f"Invalid path: {raw_path!r}")
        content = payload.get("content")
        if entry_type == FILE:
            content = content if isinstance(content, str) else ""
        else:
            content = None
        entry_id = payload.get("id", payload.get("_id"))
        parent_id = payload.get("parentId", payload.get("parent_id"))
        return cls(
            name=base_name(path),
            path=path,
            type=entry_type,
            content=content,
            id=str(entry_id) if entry_id is not None else None,
            parent_id=str(parent_id) if parent_id is not None else None,
        )


RecordLike = FlatRecord | Mapping[str, Any]


def coerce_records(records: Iterable[Any]) -> list[FlatRecord]:
    coerced: list[FlatRecord] = []
    for record in records:
        if isinstance(record, FlatRecord):
            coerced.append(record)
        elif isinstance(record, Mapping):
            coerced.append(FlatRecord.from_dict(record))
        elif hasattr(record, "to_flat_record"):
            coerced.append(record.to_flat_record())
        else:
            raise ValidationError(f"Unsupported record: {record!r}")
    return coerced


def depth_sorted(records: Iterable[FlatRecord]) -> list[FlatRecord]:
    return sorted(records, key=lambda record: path_depth(record.path))


def flatten(forest: Forest) -> list[FlatRecord]:
    return [
        FlatRecord(
            name=entry.name,
            path=entry.path,
            type=entry.type,
            content=(entry.content or "") if entry.type == FILE else None,
        )
        for entry in forest.walk()
    ]


def infer_folder_records(records: Iterable[RecordLike]) -> list[FlatRecord]:
    """Add a folder record for every intermediate segment lacking one."""
    items = coerce_records(records)
    known = {record.path for record in items}
    synthesized: dict[str, FlatRecord] = {}
    for record in items:
        segments = split_path(record.path)
        for depth in range(1, len(segments)):
            folder_path = "/".join(segments[:depth])
            if folder_path in known or folder_path in synthesized:
                continue
            synthesized[folder_path] = FlatRecord(name=segments[depth - 1], path=folder_path, type=FOLDER)
    return depth_sorted(synthesized.values()) + items


def records_from_files_map(files: Mapping[str, str]) -> list[FlatRecord]:
    records = []
    for raw_path, content in files.items():
        path = normalize_path(raw_path or "")
        if not path or path == "/":
            continue
        records.append(FlatRecord(name=base_name(path), path=path, type=FILE, content=content or ""))
    return infer_folder_records(records)


def _to_entry(record: FlatRecord, path: str, parent_id: str | None) -> Entry:
    name = base_name(path)
    if record.type == FOLDER:
        return Entry.folder(name, path, parent_id=parent_id, entry_id=record.id)
    return Entry.file(name, path, content=record.content or "", parent_id=parent_id, entry_id=record.id)


def hydrate_by_path(records: Iterable[RecordLike], synthesize_folders: bool = False) -> Forest:
    items = coerce_records(records)
    if synthesize_folders:
        items = infer_folder_records(items)
    builder = ForestBuilder(Forest())
    folders: dict[str, str] = {}
    seen: set[str] = set()
    for record in depth_sorted(items):
        path = normalize_path(record.path)
        if path.lower() in seen:
            logger.warning("Skipping duplicate record for %s", path)
            continue
        seen.add(path.lower())
        entry = _to_entry(record, path, folders.get(parent_path(path)))
        builder.attach(entry)
        if entry.is_folder:
            folders[path] = entry.id
    return builder.build()


def hydrate_by_parent(records: Iterable[RecordLike]) -> Forest:
    items = depth_sorted(coerce_records(records))
    if any(record.id is None for record in items):
        raise ValidationError("Every record needs an id to be linked by parent")
    ids = {record.id for record in items if record.type == FOLDER}
    children: dict[str | None, list[FlatRecord]] = {}
    for record in items:
        parent = record.parent_id if record.parent_id in ids else None
        children.setdefault(parent, []).append(record)

    builder = ForestBuilder(Forest())
    seen: set[str] = set()
    queue = deque((None, record) for record in children.get(None, []))
    while queue:
        parent_id, record = queue.popleft()
        if record.id in seen:
            logger.warning("Skipping duplicate record id %s", record.id)
            continue
        entry = _to_entry(record, normalize_path(record.path), parent_id)
        builder.attach(entry)
        seen.add(entry.id)
        if entry.is_folder:
            queue.extend((entry.id, child) for child in children.get(record.id, []))
    return builder.build()


def hydrate(
    records: Iterable[RecordLike],
    strategy: Literal["auto", "path", "parent"] = "auto",
    synthesize_folders: bool = False,
) -> Forest:
    items = coerce_records(records)
    if strategy == "auto":
        linked = bool(items) and all(record.id for record in items) and any(record.parent_id for record in items)
        strategy = "parent" if linked else "path"
    if strategy == "parent":
        return hydrate_by_parent(items)
    return hydrate_by_path(items, synthesize_folders=synthesize_folders)


def forest_to_nested(forest: Forest) -> list[dict[str, Any]]:
    def build_node(entry: Entry) -> dict[str, Any]:
        node: dict[str, Any] = {"id": entry.id, "name": entry.name, "type": entry.type, "path": entry.path}
        if entry.is_folder:
            node["children"] = [build_node(forest.nodes[child_id]) for child_id in entry.children or ()]
        else:
            node["content"] = entry.content or ""
        return node

    return [build_node(forest.nodes[root_id]) for root_id in forest.roots]


def forest_from_nested(nodes: Iterable[Mapping[str, Any]]) -> Forest:
    builder = ForestBuilder(Forest())

    def add_node(node: Mapping[str, Any], parent_id: str | None) -> None:
        record = FlatRecord.from_dict(node)
        entry = _to_entry(record, record.path, parent_id)
        builder.attach(entry)
        if entry.is_folder:
            for child in node.get("children") or []:
                add_node(child, entry.id)

    for node in nodes or []:
        add_node(node, None)
    return builder.build()
