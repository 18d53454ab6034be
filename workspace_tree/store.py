import logging
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Iterator

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, UniqueConstraint, create_engine, delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from workspace_tree.entries import ENTRY_TYPES, FILE, FOLDER, new_id
from workspace_tree.errors import ConflictError, NotFoundError, ValidationError
from workspace_tree.flat import FlatRecord
from workspace_tree.paths import join_path, validate_name

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255))
    provider: Mapped[str | None] = mapped_column(String(32), nullable=True)
    remote_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class FileEntry(Base):
    __tablename__ = "file_entries"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), index=True)
    parent_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    name: Mapped[str] = mapped_column(String(255))
    type: Mapped[str] = mapped_column(String(16))
    path: Mapped[str] = mapped_column(String(2048))
    content: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("project_id", "path", name="uq_file_entries_project_path"),
        Index("ix_file_entries_project_parent", "project_id", "parent_id"),
    )


@dataclass(frozen=True)
class StoredProject:
    id: str
    name: str
    provider: str | None
    remote_url: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: Project) -> "StoredProject":
        return cls(
            id=row.id,
            name=row.name,
            provider=row.provider,
            remote_url=row.remote_url,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "provider": self.provider,
            "remoteUrl": self.remote_url,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class StoredEntry:
    id: str
    project_id: str
    parent_id: str | None
    name: str
    type: str
    path: str
    content: str

    @classmethod
    def from_row(cls, row: FileEntry) -> "StoredEntry":
        return cls(
            id=row.id,
            project_id=row.project_id,
            parent_id=row.parent_id,
            name=row.name,
            type=row.type,
            path=row.path,
            content=row.content or "",
        )

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["projectId"] = payload.pop("project_id")
        payload["parentId"] = payload.pop("parent_id")
        return payload

    def to_flat_record(self) -> FlatRecord:
        return FlatRecord(
            name=self.name,
            path=self.path,
            type=self.type,
            content=self.content if self.type == FILE else None,
            id=self.id,
            parent_id=self.parent_id,
        )


class FileStore:
    def __init__(self, database_url: str) -> None:
        options: dict[str, Any] = {}
        if database_url in {"sqlite://", "sqlite:///:memory:"}:
            options = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
        self.engine = create_engine(database_url, **options)
        Base.metadata.create_all(self.engine)
        self._sessions = sessionmaker(self.engine, expire_on_commit=False)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError(f"Conflicting file entries: {exc.orig}") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()

    @staticmethod
    def require_project(session: Session, project_id: str) -> Project:
        project = session.get(Project, project_id)
        if project is None:
            raise NotFoundError(f"Project not found: {project_id}")
        return project

    def create_project(self, name: str, provider: str | None = None, remote_url: str | None = None) -> StoredProject:
        if not name or not name.strip():
            raise ValidationError("Project name is required")
        with self.transaction() as session:
            project = Project(id=new_id(), name=name.strip(), provider=provider, remote_url=remote_url)
            session.add(project)
            session.flush()
            return StoredProject.from_row(project)

    def get_project(self, project_id: str) -> StoredProject:
        with self.transaction() as session:
            return StoredProject.from_row(self.require_project(session, project_id))

    def list_projects(self) -> list[StoredProject]:
        with self.transaction() as session:
            rows = session.scalars(select(Project).order_by(Project.updated_at.desc()))
            return [StoredProject.from_row(row) for row in rows]

    def update_project(self, project_id: str, name: str | None = None) -> StoredProject:
        with self.transaction() as session:
            project = self.require_project(session, project_id)
            if name and name.strip():
                project.name = name.strip()
            project.updated_at = utcnow()
            session.flush()
            return StoredProject.from_row(project)

    def delete_project(self, project_id: str) -> None:
        with self.transaction() as session:
            project = self.require_project(session, project_id)
            session.execute(delete(FileEntry).where(FileEntry.project_id == project_id))
            session.delete(project)

    def list_entries(self, project_id: str) -> list[StoredEntry]:
        with self.transaction() as session:
            self.require_project(session, project_id)
            return self.query_entries(session, project_id)

    @staticmethod
    def query_entries(session: Session, project_id: str) -> list[StoredEntry]:
        rows = session.scalars(select(FileEntry).where(FileEntry.project_id == project_id).order_by(FileEntry.path))
        return [StoredEntry.from_row(row) for row in rows]

    @staticmethod
    def _ensure_unique_name(session: Session, project_id: str, parent_id: str | None, name: str, exclude_id: str | None = None) -> None:
        parent_clause = FileEntry.parent_id.is_(None) if parent_id is None else FileEntry.parent_id == parent_id
        query = select(FileEntry.id).where(
            FileEntry.project_id == project_id,
            parent_clause,
            func.lower(FileEntry.name) == name.lower(),
        )
        if exclude_id is not None:
            query = query.where(FileEntry.id != exclude_id)
        if session.scalars(query).first() is not None:
            raise ValidationError(f"An item named {name!r} already exists here.")

    def create_entry(
        self,
        project_id: str,
        parent_id: str | None,
        name: str,
        entry_type: str,
        content: str | None = None,
    ) -> StoredEntry:
        if entry_type not in ENTRY_TYPES:
            raise ValidationError("type must be 'file' or 'folder'")
        name = validate_name(name)
        with self.transaction() as session:
            self.require_project(session, project_id)
            parent = None
            if parent_id:
                parent = session.get(FileEntry, parent_id)
                if parent is None or parent.project_id != project_id:
                    raise NotFoundError(f"Parent not found: {parent_id}")
                if parent.type != FOLDER:
                    raise ValidationError("Cannot create children under a file")
            self._ensure_unique_name(session, project_id, parent.id if parent else None, name)
            row = FileEntry(
                id=new_id(),
                project_id=project_id,
                parent_id=parent.id if parent else None,
                name=name,
                type=entry_type,
                path=join_path(parent.path if parent else None, name),
                content=(content or "") if entry_type == FILE else "",
            )
            session.add(row)
            session.flush()
            return StoredEntry.from_row(row)

    def update_entry(self, entry_id: str, name: str | None = None, content: str | None = None) -> StoredEntry:
        with self.transaction() as session:
            row = session.get(FileEntry, entry_id)
            if row is None:
                raise NotFoundError(f"File not found: {entry_id}")
            if content is not None:
                if row.type != FILE:
                    raise ValidationError("Folders do not support content")
                row.content = content
            if name is not None and name != row.name:
                name = validate_name(name)
                self._ensure_unique_name(session, row.project_id, row.parent_id, name, exclude_id=row.id)
                parent = session.get(FileEntry, row.parent_id) if row.parent_id else None
                row.name = name
                row.path = join_path(parent.path if parent else None, name)
                if row.type == FOLDER:
                    self._cascade_paths(session, row)
            session.flush()
            return StoredEntry.from_row(row)

    @staticmethod
    def _cascade_paths(session: Session, folder: FileEntry) -> None:
        pending = [folder]
        while pending:
            parent = pending.pop()
            for child in session.scalars(select(FileEntry).where(FileEntry.parent_id == parent.id)):
                child.path = join_path(parent.path, child.name)
                if child.type == FOLDER:
                    pending.append(child)

    def delete_entry(self, entry_id: str) -> int:
        with self.transaction() as session:
            row = session.get(FileEntry, entry_id)
            if row is None:
                raise NotFoundError(f"File not found: {entry_id}")
            result = session.execute(
                delete(FileEntry).where(
                    FileEntry.project_id == row.project_id,
                    or_(FileEntry.path == row.path, FileEntry.path.startswith(f"{row.path}/", autoescape=True)),
                )
            )
            logger.debug("Deleted %d entries under %s", result.rowcount, row.path)
            return result.rowcount
