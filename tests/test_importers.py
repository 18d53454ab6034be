"""Tests for archive and directory imports."""

from __future__ import annotations

import base64
import io
import tarfile
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from workspace_tree.errors import ImportLimitError, ValidationError
from workspace_tree.importers import DirectorySource, TarballSource, collect_records, decode_content


def build_tarball(files: dict[str, bytes], top_level: str = "repo-main") -> io.BytesIO:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        folder = tarfile.TarInfo(top_level)
        folder.type = tarfile.DIRTYPE
        archive.addfile(folder)
        for path, data in files.items():
            info = tarfile.TarInfo(f"{top_level}/{path}")
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    buffer.seek(0)
    return buffer


class TarballSourceTests(unittest.TestCase):
    def test_strips_top_level_folder_and_infers_folders(self) -> None:
        stream = build_tarball({"src/App.jsx": b"app", "src/lib/util.js": b"util", "README.md": b"hi"})

        records = collect_records(TarballSource(stream))

        by_path = {record.path: record for record in records}
        self.assertEqual(sorted(by_path), ["README.md", "src", "src/App.jsx", "src/lib", "src/lib/util.js"])
        self.assertEqual(by_path["src"].type, "folder")
        self.assertEqual(by_path["src/lib"].name, "lib")
        self.assertEqual(by_path["src/lib/util.js"].content, "util")
        self.assertEqual([record.path for record in records[:2]], ["src", "src/lib"])

    def test_keeps_top_level_when_asked(self) -> None:
        stream = build_tarball({"a.txt": b"a"}, top_level="pkg")
        paths = [record.path for record in collect_records(TarballSource(stream, strip_top_level=False))]
        self.assertEqual(paths, ["pkg", "pkg/a.txt"])

    def test_unreadable_archive(self) -> None:
        with self.assertRaises(ValidationError):
            collect_records(TarballSource(io.BytesIO(b"definitely not a tarball")))

    def test_file_limit(self) -> None:
        stream = build_tarball({f"f{index}.txt": b"x" for index in range(4)})
        with self.assertRaises(ImportLimitError):
            collect_records(TarballSource(stream), max_files=3)

    def test_byte_limit(self) -> None:
        stream = build_tarball({"big.bin": b"x" * 64})
        with self.assertRaises(ImportLimitError):
            collect_records(TarballSource(stream), max_bytes=63)

    def test_oversized_member_is_rejected_before_it_is_read(self) -> None:
        stream = build_tarball({"small.txt": b"ok", "huge.bin": b"x" * 4096})
        with mock.patch.object(tarfile.TarFile, "extractfile", autospec=True, return_value=io.BytesIO(b"ok")) as extract:
            with self.assertRaises(ImportLimitError):
                collect_records(TarballSource(stream), max_bytes=1024)
        self.assertEqual([call.args[1].name for call in extract.call_args_list], ["repo-main/small.txt"])


class DecodeContentTests(unittest.TestCase):
    def test_text_and_binary(self) -> None:
        self.assertEqual(decode_content("héllo".encode("utf-8")), "héllo")
        binary = b"\xff\xfe\x00\x01"
        self.assertEqual(decode_content(binary), base64.b64encode(binary).decode("ascii"))


class DirectorySourceTests(unittest.TestCase):
    def test_walks_directory_and_skips_vcs(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "src").mkdir()
            (root / "src" / "main.py").write_text("print('hi')\n", encoding="utf-8")
            (root / ".git").mkdir()
            (root / ".git" / "HEAD").write_text("ref", encoding="utf-8")
            (root / "empty").mkdir()

            records = collect_records(DirectorySource(root))

        self.assertEqual(sorted(record.path for record in records), ["src", "src/main.py"])

    def test_missing_root(self) -> None:
        with self.assertRaises(ValidationError):
            list(DirectorySource(Path("/nonexistent/workspace/root")).iter_files())


if __name__ == "__main__":
    unittest.main()
