import os
import json
import hashlib
from urllib.parse import urlparse
from datetime import datetime
from typing import Dict, Any, Iterable, List

# ================= CONFIG =================

DATA_ROOT = os.environ.get("HR_DATA_DIR", ".")
LOG_FILE = os.environ.get("HR_LOG_FILE", "download.log")

# =========================================


def log(msg: str) -> None:
    ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    line = f"[{ts}] {msg}"
    print(line)
    with open(LOG_FILE, "a", encoding="utf-8") as f:
        f.write(line + "\n")


def now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


def data_path(*parts: str) -> str:
    return os.path.join(DATA_ROOT, *parts)


def ensure_dir(path: str) -> bool:
    """
    Create a directory (and parents) if missing.
    Returns True if it was created by this call.
    """
    if os.path.isdir(path):
        log(f"Directory already exists: {path}")
        return False
    os.makedirs(path, exist_ok=True)
    log(f"Created directory: {path}")
    return True


def hashed_filename(url: str) -> str:
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


def filename_from_url(url: str) -> str:
    """
    Last path segment of the URL (query string dropped).
    URLs ending in '/' have no basename, those fall back to the hash.
    """
    name = os.path.basename(urlparse(url).path)
    return name or hashed_filename(url)


def url_extension(url: str) -> str:
    return os.path.splitext(urlparse(url).path)[1].lower()


def safe_json_load(path: str) -> Any:
    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        # corrupted ledger -> rename and start fresh
        bad = path + ".corrupt"
        try:
            os.replace(path, bad)
            log(f"WARNING: {path} is corrupted, moved to {bad} and starting fresh.")
        except OSError:
            log(f"WARNING: {path} is corrupted and could not be moved. Starting fresh.")
        return {}


def safe_json_save(path: str, data: Any) -> None:
    tmp = path + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    os.replace(tmp, path)


def parse_range_string(raw: str, allowed: Iterable[int]) -> List[int]:
    """
    Parse '1990,1993-1995' style selections into a sorted list,
    keeping only values present in `allowed`.
    """
    allowed = set(allowed)
    raw = (raw or "").strip()
    if not raw:
        return []

    selected = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            try:
                a, b = map(int, part.split("-", 1))
            except ValueError:
                continue
            if a > b:
                a, b = b, a
            selected.update(n for n in range(a, b + 1) if n in allowed)
        else:
            try:
                n = int(part)
            except ValueError:
                continue
            if n in allowed:
                selected.add(n)

    return sorted(selected)


def clean_text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = " ".join(str(value).split())
    return text or default


def merge_entry(base: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in (extra or {}).items():
        if v is not None:
            out[k] = v
    return out
