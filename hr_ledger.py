import os
from dataclasses import dataclass, field
from typing import Dict, Any, Optional

from hr_common import log, now_iso, safe_json_load, safe_json_save, merge_entry

SUCCESS_FILE = "case_mapping_success.json"
FAILED_FILE = "case_mapping_failed.json"


@dataclass
class Ledger:
    """
    Success + failure mappings for one crawl target.

    Both sides map a document key (URL hash or derived filename) to
    {"url", "title", "category"} plus optional extras; failure entries
    also carry "error" and "attempts".
    """

    success_path: str
    failed_path: str
    success: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    failed: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def open(
        cls,
        directory: str,
        success_name: str = SUCCESS_FILE,
        failed_name: str = FAILED_FILE,
        resume: bool = True,
    ) -> "Ledger":
        ledger = cls(
            success_path=os.path.join(directory, success_name),
            failed_path=os.path.join(directory, failed_name),
        )
        if resume:
            ledger.success = _as_mapping(safe_json_load(ledger.success_path))
            ledger.failed = _as_mapping(safe_json_load(ledger.failed_path))
            if ledger.success or ledger.failed:
                log(
                    f"Ledger resumed: {len(ledger.success)} ok / {len(ledger.failed)} failed "
                    f"({ledger.success_path})"
                )
        return ledger

    def __contains__(self, key: str) -> bool:
        return key in self.success or key in self.failed

    def is_failed(self, key: str) -> bool:
        return key in self.failed

    def file_for(self, key: str) -> Optional[str]:
        entry = self.success.get(key)
        if not entry:
            return None
        return entry.get("file") or key

    def record_success(
        self,
        key: str,
        url: str,
        title: str,
        category: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        entry = merge_entry(
            {"url": url, "title": title, "category": category, "recorded_at": now_iso()},
            extra or {},
        )
        self.success[key] = entry
        # a later success clears an earlier failure for the same key
        self.failed.pop(key, None)
        return entry

    def record_failure(
        self,
        key: str,
        url: str,
        title: str,
        category: str,
        error: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        attempts = int(self.failed.get(key, {}).get("attempts", 0)) + 1
        entry = merge_entry(
            {
                "url": url,
                "title": title,
                "category": category,
                "error": error,
                "attempts": attempts,
                "recorded_at": now_iso(),
            },
            extra or {},
        )
        self.failed[key] = entry
        return entry

    def save(self) -> None:
        safe_json_save(self.success_path, self.success)
        safe_json_save(self.failed_path, self.failed)

    def summary(self) -> str:
        return f"{len(self.success)} ok / {len(self.failed)} failed"


def _as_mapping(data: Any) -> Dict[str, Dict[str, Any]]:
    # old runs of some crawlers wrote plain "filename": "title" pairs
    if not isinstance(data, dict):
        return {}
    out = {}
    for k, v in data.items():
        if isinstance(v, dict):
            out[k] = v
        else:
            out[k] = {"url": "", "title": str(v), "category": ""}
    return out
