import abc
import base64
import logging
import tarfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Iterator

from workspace_tree.entries import FILE
from workspace_tree.errors import ImportLimitError, ValidationError
from workspace_tree.flat import FlatRecord, infer_folder_records
from workspace_tree.paths import base_name, normalize_path, split_path

logger = logging.getLogger(__name__)

IGNORED_DIRECTORIES = {".git", ".hg", ".svn"}


@dataclass(frozen=True)
class SourceFile:
    path: str
    size: int
    read: Callable[[], bytes]


class ImportSource(abc.ABC):
    @abc.abstractmethod
    def iter_files(self) -> Iterator[SourceFile]:
        """Yield files whose ``read`` is valid until the next item is requested."""
        raise NotImplementedError


class TarballSource(ImportSource):
    """Gzipped tar archive as served by code hosts.

    Hosted archives wrap every member in a single ``<repo>-<ref>/`` folder;
    that prefix is removed when ``strip_top_level`` is set.
    """

    def __init__(self, stream: BinaryIO, strip_top_level: bool = True) -> None:
        self.stream = stream
        self.strip_top_level = strip_top_level

    def iter_files(self) -> Iterator[SourceFile]:
        try:
            archive = tarfile.open(fileobj=self.stream, mode="r:*")
        except tarfile.TarError as exc:
            raise ValidationError(f"Unreadable archive: {exc}") from exc
        with archive:
            for member in archive:
                segments = split_path(member.name)
                if self.strip_top_level:
                    segments = segments[1:]
                if not segments or not member.isfile():
                    logger.debug("Skipping archive member %s", member.name)
                    continue
                yield SourceFile("/".join(segments), member.size, lambda member=member: self._read(archive, member))

    @staticmethod
    def _read(archive: tarfile.TarFile, member: tarfile.TarInfo) -> bytes:
        handle = archive.extractfile(member)
        if handle is None:
            return b""
        with handle:
            return handle.read()


class DirectorySource(ImportSource):
    def __init__(self, root: Path) -> None:
        self.root = root

    def iter_files(self) -> Iterator[SourceFile]:
        if not self.root.is_dir():
            raise ValidationError(f"Path does not exist: {self.root}")
        stack = [self.root]
        while stack:
            directory = stack.pop()
            for entry in sorted(directory.iterdir(), key=lambda item: item.name.lower()):
                if entry.is_dir():
                    if entry.name not in IGNORED_DIRECTORIES:
                        stack.append(entry)
                elif entry.is_file():
                    yield SourceFile(entry.relative_to(self.root).as_posix(), entry.stat().st_size, entry.read_bytes)


def decode_content(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return base64.b64encode(data).decode("ascii")


def collect_records(source: ImportSource, max_files: int = 1000, max_bytes: int = 20 * 1024 * 1024) -> list[FlatRecord]:
    files: dict[str, FlatRecord] = {}
    total_bytes = 0
    for item in source.iter_files():
        path = normalize_path(item.path)
        if not path or path == "/":
            continue
        # Declared sizes are checked before anything is read into memory.
        if total_bytes + item.size > max_bytes:
            raise ImportLimitError(f"Repository content too large (> {max_bytes} bytes)")
        data = item.read()
        total_bytes += len(data)
        if total_bytes > max_bytes:
            raise ImportLimitError(f"Repository content too large (> {max_bytes} bytes)")
        files[path] = FlatRecord(name=base_name(path), path=path, type=FILE, content=decode_content(data))
        if len(files) > max_files:
            raise ImportLimitError(f"Repository too large to import (> {max_files} files)")
    logger.info("Collected %d files (%d bytes) for import", len(files), total_bytes)
    return infer_folder_records(files.values())
