"""Tests for the success/failure ledger."""

import json

from hr_ledger import FAILED_FILE, SUCCESS_FILE, Ledger


class TestLedgerPersistence:
    def test_fresh_ledger_is_empty(self, out_dir):
        ledger = Ledger.open(str(out_dir))
        assert ledger.success == {}
        assert ledger.failed == {}
        assert ledger.success_path.endswith(SUCCESS_FILE)
        assert ledger.failed_path.endswith(FAILED_FILE)

    def test_saved_entries_have_the_mapping_shape(self, out_dir):
        ledger = Ledger.open(str(out_dir))
        ledger.record_success("a.pdf", "https://x.org/a.pdf", "Case A", "1999")
        ledger.record_failure("b.pdf", "https://x.org/b.pdf", "Case B", "1999", error="HTTP 404")
        ledger.save()

        success = json.loads((out_dir / SUCCESS_FILE).read_text(encoding="utf-8"))
        failed = json.loads((out_dir / FAILED_FILE).read_text(encoding="utf-8"))

        assert success["a.pdf"]["url"] == "https://x.org/a.pdf"
        assert success["a.pdf"]["title"] == "Case A"
        assert success["a.pdf"]["category"] == "1999"
        assert failed["b.pdf"]["error"] == "HTTP 404"
        assert failed["b.pdf"]["attempts"] == 1

    def test_reopen_resumes(self, out_dir):
        ledger = Ledger.open(str(out_dir))
        ledger.record_success("a.pdf", "u", "t", "c")
        ledger.save()

        again = Ledger.open(str(out_dir))
        assert "a.pdf" in again
        assert again.success["a.pdf"]["title"] == "t"

    def test_resume_false_ignores_existing_files(self, out_dir):
        ledger = Ledger.open(str(out_dir))
        ledger.record_success("a.pdf", "u", "t", "c")
        ledger.save()

        assert Ledger.open(str(out_dir), resume=False).success == {}

    def test_custom_file_names(self, out_dir):
        ledger = Ledger.open(str(out_dir), success_name="documents.json", failed_name="failed_documents.json")
        ledger.save()
        assert (out_dir / "documents.json").exists()
        assert (out_dir / "failed_documents.json").exists()

    def test_plain_string_mappings_are_loaded_as_titles(self, out_dir):
        (out_dir / SUCCESS_FILE).write_text(json.dumps({"x.pdf": "Caso X"}), encoding="utf-8")
        ledger = Ledger.open(str(out_dir))
        assert ledger.success["x.pdf"]["title"] == "Caso X"


class TestLedgerRecords:
    def test_failure_attempts_accumulate(self, out_dir):
        ledger = Ledger.open(str(out_dir))
        ledger.record_failure("k", "u", "t", "c", error="boom")
        ledger.record_failure("k", "u", "t", "c", error="boom again")

        assert ledger.failed["k"]["attempts"] == 2
        assert ledger.failed["k"]["error"] == "boom again"
        assert ledger.is_failed("k")

    def test_success_clears_previous_failure(self, out_dir):
        ledger = Ledger.open(str(out_dir))
        ledger.record_failure("k", "u", "t", "c", error="boom")
        ledger.record_success("k", "u", "t", "c")

        assert "k" in ledger.success
        assert not ledger.is_failed("k")

    def test_file_for_prefers_recorded_file(self, out_dir):
        ledger = Ledger.open(str(out_dir))
        ledger.record_success("page.htm", "u", "t", "c", extra={"file": "page.htm.pdf"})
        ledger.record_success("doc.pdf", "u", "t", "c")

        assert ledger.file_for("page.htm") == "page.htm.pdf"
        assert ledger.file_for("doc.pdf") == "doc.pdf"
        assert ledger.file_for("missing") is None

    def test_extra_none_values_are_dropped(self, out_dir):
        ledger = Ledger.open(str(out_dir))
        entry = ledger.record_success("k", "u", "t", "c", extra={"date": None, "symbol": "A/HRC/1"})
        assert "date" not in entry
        assert entry["symbol"] == "A/HRC/1"

    def test_summary(self, out_dir):
        ledger = Ledger.open(str(out_dir))
        ledger.record_success("a", "u", "t", "c")
        assert ledger.summary() == "1 ok / 0 failed"
