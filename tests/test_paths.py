"""Tests for path canonicalization and name rules."""

from __future__ import annotations

import unittest

from workspace_tree.errors import ValidationError
from workspace_tree.paths import (
    join_path,
    normalize_path,
    parent_path,
    path_depth,
    split_extension,
    validate_name,
)


class NormalizePathTests(unittest.TestCase):
    def test_collapses_dots_and_duplicate_separators(self) -> None:
        self.assertEqual(normalize_path("src//./lib/../app.js"), "src/app.js")
        self.assertEqual(normalize_path("a/b/c/"), "a/b/c")

    def test_parent_segments_past_root_are_absorbed(self) -> None:
        self.assertEqual(normalize_path("../../a"), "a")
        self.assertEqual(normalize_path("a/../../b"), "b")

    def test_leading_slash_only_survives_as_root_sentinel(self) -> None:
        self.assertEqual(normalize_path("/src/app.js"), "src/app.js")
        self.assertEqual(normalize_path("/"), "/")
        self.assertEqual(normalize_path("/./.."), "/")
        self.assertEqual(normalize_path(""), "")
        self.assertEqual(normalize_path("./"), "")

    def test_does_not_validate_characters(self) -> None:
        self.assertEqual(normalize_path("a:b/c*d"), "a:b/c*d")


class PathHelperTests(unittest.TestCase):
    def test_join_and_parent(self) -> None:
        self.assertEqual(join_path(None, "a.txt"), "a.txt")
        self.assertEqual(join_path("src", "a.txt"), "src/a.txt")
        self.assertEqual(parent_path("src/lib/a.txt"), "src/lib")
        self.assertEqual(parent_path("a.txt"), "")
        self.assertEqual(path_depth("src/lib/a.txt"), 3)

    def test_split_extension_keeps_dotfiles_whole(self) -> None:
        self.assertEqual(split_extension("a.txt"), ("a", ".txt"))
        self.assertEqual(split_extension("archive.tar.gz"), ("archive.tar", ".gz"))
        self.assertEqual(split_extension(".env"), (".env", ""))
        self.assertEqual(split_extension("Makefile"), ("Makefile", ""))


class ValidateNameTests(unittest.TestCase):
    def test_rejects_reserved_characters(self) -> None:
        for name in ["a/b", "a\\b", "a:b", "a*b", "a?b", 'a"b', "a<b", "a>b", "a|b"]:
            with self.subTest(name=name):
                with self.assertRaises(ValidationError):
                    validate_name(name)

    def test_rejects_empty_and_dot_names(self) -> None:
        for name in ["", "   ", ".", ".."]:
            with self.subTest(name=name):
                with self.assertRaises(ValidationError):
                    validate_name(name)

    def test_trims_surrounding_whitespace(self) -> None:
        self.assertEqual(validate_name("  main.py "), "main.py")


if __name__ == "__main__":
    unittest.main()
