from __future__ import annotations

from pathlib import Path
import tempfile
import unittest

from colb.config_loader import (
    candidate_names,
    find_config_files,
    load_config_file,
    normalize_string_list,
    require_int,
)


class ConfigLoaderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_candidate_names_prefer_toml(self) -> None:
        self.assertEqual(candidate_names(".colb")[0], ".colb.toml")

    def test_find_config_files_lists_existing_candidates(self) -> None:
        (self.root / ".colb.json").write_text("{}")
        (self.root / ".colb.ini").write_text("")
        self.assertEqual(find_config_files(self.root, ".colb"), [self.root / ".colb.json"])

    def test_rejects_unsupported_suffix(self) -> None:
        path = self.root / "settings.ini"
        path.write_text("")
        with self.assertRaises(ValueError):
            load_config_file(path)

    def test_rejects_non_mapping_root(self) -> None:
        path = self.root / "settings.json"
        path.write_text("[1, 2]")
        with self.assertRaises(TypeError):
            load_config_file(path)

    def test_empty_toml_is_empty_mapping(self) -> None:
        path = self.root / "settings.toml"
        path.write_text("")
        self.assertEqual(load_config_file(path), {})

    def test_normalize_string_list(self) -> None:
        self.assertEqual(normalize_string_list(None), [])
        self.assertEqual(normalize_string_list(" -j4 "), ["-j4"])
        self.assertEqual(normalize_string_list(["a", " ", "b "]), ["a", "b"])
        with self.assertRaises(TypeError):
            normalize_string_list([1], field_name="cmake_args")

    def test_require_int_rejects_bools_and_negatives(self) -> None:
        with self.assertRaises(TypeError):
            require_int(True, field_name="parallel_jobs")
        with self.assertRaises(ValueError):
            require_int(-1, field_name="parallel_jobs")
        self.assertEqual(require_int(0, field_name="parallel_jobs"), 0)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
