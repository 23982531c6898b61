"""Tests for the shared helpers: filenames, directories, JSON files, ranges, log."""

import json
import os

import hr_common
from hr_common import (
    clean_text,
    ensure_dir,
    filename_from_url,
    hashed_filename,
    parse_range_string,
    safe_json_load,
    safe_json_save,
    url_extension,
)


class TestFilenames:
    def test_basename_of_url_path(self):
        url = "https://www.oas.org/es/cidh/decisiones/2020/USPU13.045ES.pdf"
        assert filename_from_url(url) == "USPU13.045ES.pdf"

    def test_query_string_is_dropped(self):
        assert filename_from_url("https://example.org/docs/seriea_01_esp.pdf?v=2") == "seriea_01_esp.pdf"

    def test_url_without_basename_falls_back_to_hash(self):
        url = "https://example.org/docs/"
        assert filename_from_url(url) == hashed_filename(url)

    def test_same_url_gives_same_name(self):
        url = "http://hrlibrary.umn.edu/instree/Sb1udhr.htm"
        assert hashed_filename(url) == hashed_filename(url)
        assert filename_from_url(url) == filename_from_url(url)

    def test_hash_is_sha256_hex(self):
        assert hashed_filename("abc") == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )

    def test_different_urls_give_different_hashes(self):
        assert hashed_filename("https://a.org/1.pdf") != hashed_filename("https://a.org/2.pdf")

    def test_url_extension(self):
        assert url_extension("http://hrlibrary.umn.edu/instree/Sainstls1.htm") == ".htm"
        assert url_extension("https://x.org/A.PDF?download=1") == ".pdf"
        assert url_extension("https://dialnet.unirioja.es/servlet/articulo?codigo=1") == ""


class TestEnsureDir:
    def test_creates_then_reports_existing(self, tmp_path):
        target = tmp_path / "a" / "b"
        assert ensure_dir(str(target)) is True
        assert target.is_dir()
        assert ensure_dir(str(target)) is False


class TestJsonFiles:
    def test_missing_file_loads_empty(self, tmp_path):
        assert safe_json_load(str(tmp_path / "nope.json")) == {}

    def test_save_keeps_non_ascii_and_leaves_no_tmp(self, tmp_path):
        path = tmp_path / "m.json"
        safe_json_save(str(path), {"k": {"title": "Psicología"}})

        assert "Psicología" in path.read_text(encoding="utf-8")
        assert not os.path.exists(str(path) + ".tmp")
        assert safe_json_load(str(path)) == {"k": {"title": "Psicología"}}

    def test_corrupt_file_is_moved_aside(self, tmp_path):
        path = tmp_path / "m.json"
        path.write_text("{not json", encoding="utf-8")

        assert safe_json_load(str(path)) == {}
        assert not path.exists()
        assert (tmp_path / "m.json.corrupt").exists()


class TestParseRangeString:
    def test_mixed_values_and_ranges(self):
        assert parse_range_string("1990,1993-1995", range(1973, 2030)) == [1990, 1993, 1994, 1995]

    def test_reversed_range(self):
        assert parse_range_string("5-3", range(1, 10)) == [3, 4, 5]

    def test_values_outside_allowed_are_dropped(self):
        assert parse_range_string("1, 50, 3-4", range(1, 5)) == [1, 3, 4]

    def test_junk_and_empty(self):
        assert parse_range_string("abc,,x-y", range(1, 5)) == []
        assert parse_range_string("", range(1, 5)) == []


class TestCleanText:
    def test_whitespace_is_collapsed(self):
        assert clean_text("  Caso\n  Velásquez   Rodríguez ") == "Caso Velásquez Rodríguez"

    def test_default_for_empty(self):
        assert clean_text(None, "x") == "x"
        assert clean_text("   ", "x") == "x"


class TestLog:
    def test_log_appends_timestamped_line(self, log_file, capsys):
        hr_common.log("hello")
        hr_common.log("again")

        lines = log_file.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        assert lines[0].startswith("[") and lines[0].endswith("] hello")
        assert "hello" in capsys.readouterr().out


def test_saved_json_is_indented(tmp_path):
    path = tmp_path / "m.json"
    safe_json_save(str(path), {"a": 1})
    assert json.loads(path.read_text(encoding="utf-8")) == {"a": 1}
    assert "\n  " in path.read_text(encoding="utf-8")
