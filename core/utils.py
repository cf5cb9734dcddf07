"""
core/utils.py
--------------
Project-wide utilities:
- Project paths (ROOT, DATA_DIR) + ensure_dirs()
- JSON object files: tolerant reads, atomic writes
- Tiny env readers (int/csv)
- Small text helpers for chat replies (short, chunk_by_len)
"""

from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator
import json
import logging
import os
import tempfile

log = logging.getLogger("babble.utils")

# -------- Paths --------

ROOT: Path = Path(__file__).resolve().parents[1]
DATA_DIR: Path = ROOT / "data"

def ensure_dirs(data_dir: str | Path = DATA_DIR) -> None:
    """Create the data folder and its brains/ subfolder if missing."""
    base = Path(data_dir)
    for d in (base, base / "brains"):
        d.mkdir(parents=True, exist_ok=True)

# -------- Env helpers --------

def env_int(key: str, default: int = 0) -> int:
    v = os.getenv(key)
    if v is None:
        return default
    try:
        return int(v.strip())
    except ValueError:
        return default

def env_csv(key: str, default: Iterable[str] | None = None) -> list[str]:
    v = os.getenv(key)
    if not v:
        return list(default) if default is not None else []
    return [tok.strip() for tok in v.split(",") if tok.strip()]

# -------- JSON I/O --------

def load_json_object(path: str | Path) -> Dict[str, Any]:
    """
    Read a JSON object from `path`. A missing file gives {}; an unreadable
    file or one that does not hold an object is logged and also gives {}.
    """
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as e:
        log.warning("Ignoring unreadable %s: %s", p, e)
        return {}
    if not isinstance(data, dict):
        log.warning("Ignoring %s: expected a JSON object, got %s", p, type(data).__name__)
        return {}
    return data

def save_json_atomic(path: str | Path, obj: Any) -> None:
    """Write `obj` next to `path` in a temp file, then swap it in with os.replace."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{p.name}.", dir=str(p.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(obj, f, indent=2, ensure_ascii=False, sort_keys=True)
        os.replace(tmp, p)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise

# -------- Text helpers --------

def short(s: str, n: int) -> str:
    s = (s or "").replace("\n", " ").strip()
    return s if len(s) <= n else s[:n-1] + "…"

def chunk_by_len(s: str, maxlen: int) -> Iterator[str]:
    """Yield string chunks at most maxlen long."""
    i = 0
    while i < len(s):
        yield s[i:i+maxlen]
        i += maxlen
