"""Tests for tree <-> flat list conversion."""

from __future__ import annotations

import unittest

from workspace_tree.entries import Forest
from workspace_tree.errors import ValidationError
from workspace_tree.flat import (
    FlatRecord,
    flatten,
    forest_from_nested,
    forest_to_nested,
    hydrate,
    hydrate_by_parent,
    hydrate_by_path,
    infer_folder_records,
    records_from_files_map,
)
from workspace_tree.mutator import create_file, create_folder


def shape(forest: Forest) -> set[tuple[str, str, str | None]]:
    return {(entry.path, entry.type, entry.content) for entry in forest.walk()}


def sample_forest() -> Forest:
    forest, src_id = create_folder(Forest(), None, "src")
    forest, lib_id = create_folder(forest, src_id, "lib")
    forest, _ = create_file(forest, lib_id, "util.js", "export {}")
    forest, _ = create_file(forest, src_id, "App.jsx", "app")
    forest, _ = create_folder(forest, None, "empty")
    forest, _ = create_file(forest, None, "package.json", "{}")
    return forest


class FlattenTests(unittest.TestCase):
    def test_flatten_is_depth_first_and_omits_folder_content(self) -> None:
        records = flatten(sample_forest())
        self.assertEqual(
            [record.path for record in records],
            ["src", "src/lib", "src/lib/util.js", "src/App.jsx", "empty", "package.json"],
        )
        self.assertEqual(records[0].to_dict(), {"name": "src", "path": "src", "type": "folder"})
        self.assertEqual(
            records[2].to_dict(),
            {"name": "util.js", "path": "src/lib/util.js", "type": "file", "content": "export {}"},
        )

    def test_round_trip_preserves_shape(self) -> None:
        forest = sample_forest()
        rebuilt = hydrate(flatten(forest))
        self.assertEqual(shape(rebuilt), shape(forest))
        self.assertEqual([forest.nodes[root].name for root in forest.roots], [rebuilt.nodes[root].name for root in rebuilt.roots])

    def test_round_trip_through_wire_dicts(self) -> None:
        forest = sample_forest()
        rebuilt = hydrate([record.to_dict() for record in flatten(forest)])
        self.assertEqual(shape(rebuilt), shape(forest))


class HydrateByPathTests(unittest.TestCase):
    def test_unsorted_input_is_attached_to_parents(self) -> None:
        forest = hydrate_by_path(
            [
                {"path": "src/a.js", "type": "file", "content": "1"},
                {"path": "src", "type": "folder"},
            ]
        )
        (src,) = forest.children_of(None)
        self.assertEqual(src.path, "src")
        self.assertEqual([child.path for child in forest.children_of(src.id)], ["src/a.js"])

    def test_missing_intermediate_folder_produces_sibling_roots(self) -> None:
        forest = hydrate_by_path([{"path": "a/b/c.txt", "type": "file"}, {"path": "x.txt", "type": "file"}])
        self.assertEqual(len(forest.roots), 2)

    def test_synthesized_folders_fill_the_gaps(self) -> None:
        forest = hydrate_by_path([{"path": "a/b/c.txt", "type": "file"}], synthesize_folders=True)
        self.assertEqual([entry.path for entry in forest.walk()], ["a", "a/b", "a/b/c.txt"])

    def test_paths_are_normalized(self) -> None:
        forest = hydrate_by_path([{"path": "/src/./", "type": "folder"}, {"path": "src//a.js", "type": "file"}])
        self.assertEqual([entry.path for entry in forest.walk()], ["src", "src/a.js"])

    def test_invalid_records_are_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            hydrate_by_path([{"path": "a", "type": "symlink"}])
        with self.assertRaises(ValidationError):
            hydrate_by_path([{"path": "/", "type": "file"}])

    def test_case_only_duplicates_are_skipped_with_a_warning(self) -> None:
        with self.assertLogs("workspace_tree.flat", level="WARNING") as captured:
            forest = hydrate_by_path([{"path": "src", "type": "folder"}, {"path": "SRC", "type": "folder"}])
        self.assertEqual([entry.path for entry in forest.walk()], ["src"])
        self.assertIn("SRC", captured.output[0])

    def test_name_is_taken_from_the_path(self) -> None:
        record = FlatRecord.from_dict({"name": "other.js", "path": "src/a.js", "type": "file"})
        self.assertEqual(record.name, "a.js")
        forest = hydrate_by_path([{"path": "src", "type": "folder"}, record])
        self.assertEqual(forest.find_by_path("src/a.js").name, "a.js")


class HydrateByParentTests(unittest.TestCase):
    def test_links_by_parent_id(self) -> None:
        records = [
            {"id": "f1", "parentId": None, "name": "src", "path": "src", "type": "folder"},
            {"id": "f2", "parentId": "f1", "name": "lib", "path": "src/lib", "type": "folder"},
            {"id": "f3", "parentId": "f2", "name": "a.js", "path": "src/lib/a.js", "type": "file", "content": "x"},
        ]
        forest = hydrate_by_parent(records)
        self.assertEqual(forest.roots, ("f1",))
        self.assertEqual(forest.nodes["f2"].children, ("f3",))
        self.assertEqual(forest.nodes["f3"].parent_id, "f2")
        self.assertEqual(hydrate(records), forest)

    def test_unknown_parent_becomes_root(self) -> None:
        forest = hydrate_by_parent([{"id": "x", "parentId": "gone", "path": "gone/x.txt", "type": "file"}])
        self.assertEqual(forest.roots, ("x",))

    def test_requires_ids(self) -> None:
        with self.assertRaises(ValidationError):
            hydrate_by_parent([{"path": "a.txt", "type": "file"}])

    def test_name_disagreeing_with_path_follows_the_path(self) -> None:
        forest = hydrate_by_parent(
            [
                {"id": "f1", "name": "src", "path": "src", "type": "folder"},
                {"id": "f2", "parentId": "f1", "name": "renamed.js", "path": "src/a.js", "type": "file"},
            ]
        )
        self.assertEqual(forest.nodes["f2"].name, "a.js")


class FolderInferenceTests(unittest.TestCase):
    def test_infer_folder_records(self) -> None:
        records = infer_folder_records([FlatRecord(name="c.txt", path="a/b/c.txt", type="file", content="")])
        self.assertEqual([(record.path, record.type) for record in records], [("a", "folder"), ("a/b", "folder"), ("a/b/c.txt", "file")])

    def test_files_map(self) -> None:
        records = records_from_files_map({"/src/App.jsx": "app", "index.html": "<html>", "/": "ignored"})
        self.assertEqual(
            sorted(record.path for record in records),
            ["index.html", "src", "src/App.jsx"],
        )


class NestedTests(unittest.TestCase):
    def test_nested_round_trip_keeps_ids(self) -> None:
        forest = sample_forest()
        nested = forest_to_nested(forest)
        self.assertEqual(nested[0]["children"][0]["children"][0]["content"], "export {}")
        self.assertNotIn("content", nested[0])
        self.assertEqual(forest_from_nested(nested), forest)


if __name__ == "__main__":
    unittest.main()
