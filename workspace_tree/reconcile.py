"""Make the persisted entries of a project match a submitted flat list.

``replace`` is the baseline contract: wipe the project, then recreate every
record shallowest-first so each parent id is known before its children are
written. ``diff`` reaches the same final shape but keeps the ids of entries
whose path survives. Both run inside the caller's transaction.
"""

import logging
from collections import Counter
from typing import Any, Iterable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from workspace_tree.entries import FILE, FOLDER, new_id
from workspace_tree.errors import ConflictError, ValidationError
from workspace_tree.flat import FlatRecord, coerce_records, depth_sorted
from workspace_tree.paths import base_name, parent_path
from workspace_tree.store import FileEntry, FileStore, StoredEntry, StoredProject, utcnow

logger = logging.getLogger(__name__)

REPLACE = "replace"
DIFF = "diff"
STRATEGIES = (REPLACE, DIFF)


def prepare_records(records: Iterable[Any]) -> list[FlatRecord]:
    prepared = [
        FlatRecord(
            name=base_name(record.path),
            path=record.path,
            type=record.type,
            content=(record.content or "") if record.type == FILE else None,
        )
        for record in coerce_records(records)
    ]
    # Sibling names are unique regardless of case, so paths are compared lowercased.
    counts = Counter(record.path.lower() for record in prepared)
    duplicates = sorted({record.path for record in prepared if counts[record.path.lower()] > 1})
    if duplicates:
        raise ConflictError(f"Duplicate paths in submitted records: {', '.join(duplicates)}")
    return depth_sorted(prepared)


def _resolve_parent(ids_by_path: dict[str, str], path: str) -> str | None:
    folder_path = parent_path(path)
    if not folder_path:
        return None
    return ids_by_path.get(folder_path)


def _replace(session: Session, project_id: str, records: list[FlatRecord]) -> None:
    deleted = session.execute(delete(FileEntry).where(FileEntry.project_id == project_id)).rowcount
    ids_by_path: dict[str, str] = {}
    for record in records:
        row = FileEntry(
            id=new_id(),
            project_id=project_id,
            parent_id=_resolve_parent(ids_by_path, record.path),
            name=record.name,
            type=record.type,
            path=record.path,
            content=record.content or "",
        )
        session.add(row)
        if record.type == FOLDER:
            ids_by_path[record.path] = row.id
    session.flush()
    logger.info("Replaced project %s: deleted=%d created=%d", project_id, deleted, len(records))


def _diff(session: Session, project_id: str, records: list[FlatRecord]) -> None:
    current = {row.path: row for row in session.scalars(select(FileEntry).where(FileEntry.project_id == project_id))}
    incoming = {record.path: record for record in records}
    stale = [row for path, row in current.items() if path not in incoming or incoming[path].type != row.type]
    for row in stale:
        session.delete(row)
        current.pop(row.path)
    session.flush()

    created = updated = 0
    ids_by_path: dict[str, str] = {}
    for record in records:
        parent_id = _resolve_parent(ids_by_path, record.path)
        content = record.content or ""
        row = current.get(record.path)
        if row is None:
            row = FileEntry(
                id=new_id(),
                project_id=project_id,
                parent_id=parent_id,
                name=record.name,
                type=record.type,
                path=record.path,
                content=content,
            )
            session.add(row)
            created += 1
        elif row.parent_id != parent_id or row.name != record.name or row.content != content:
            row.parent_id = parent_id
            row.name = record.name
            row.content = content
            updated += 1
        if record.type == FOLDER:
            ids_by_path[record.path] = row.id
    session.flush()
    logger.info(
        "Reconciled project %s: deleted=%d created=%d updated=%d",
        project_id,
        len(stale),
        created,
        updated,
    )


def reconcile(session: Session, project_id: str, records: Iterable[Any], strategy: str = REPLACE) -> list[StoredEntry]:
    if strategy not in STRATEGIES:
        raise ValidationError(f"Unknown reconcile strategy: {strategy!r}")
    project = FileStore.require_project(session, project_id)
    prepared = prepare_records(records)
    if strategy == DIFF:
        _diff(session, project_id, prepared)
    else:
        _replace(session, project_id, prepared)
    project.updated_at = utcnow()
    session.flush()
    return FileStore.query_entries(session, project_id)


def replace_project_files(
    store: FileStore,
    project_id: str,
    records: Iterable[Any],
    strategy: str = REPLACE,
) -> list[StoredEntry]:
    with store.transaction() as session:
        return reconcile(session, project_id, records, strategy)


def update_project_files(
    store: FileStore,
    project_id: str,
    name: str | None = None,
    records: Iterable[Any] | None = None,
    strategy: str = REPLACE,
) -> tuple[StoredProject, list[StoredEntry]]:
    """Rename a project and reconcile its files in one transaction."""
    with store.transaction() as session:
        project = FileStore.require_project(session, project_id)
        if name and name.strip():
            project.name = name.strip()
        if records is None:
            entries = FileStore.query_entries(session, project_id)
        else:
            entries = reconcile(session, project_id, records, strategy)
        project.updated_at = utcnow()
        session.flush()
        return StoredProject.from_row(project), entries
