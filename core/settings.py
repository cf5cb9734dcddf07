"""
core/settings.py
----------------
Bot settings the brains consult: word/phrase blacklist, ignored users,
channels (enabled flag, message count, reply interval, global-brain mode).

Data shape in data/settings.json:
{
  "message_interval": 35,
  "blacklist": ["badword", "some phrase"],
  "user_blacklist": ["spambot"],
  "channels": {
    "<channel>": {"enabled": true, "message_count": 0,
                  "message_interval": 0, "use_global_brain": false}
  }
}

A channel interval of 0 means "use the global default". Words and user names
are stored lower-case. Extra blacklist words can be supplied through the
BLACKLIST_AUTOFILL env var (comma-separated); they are never written to disk.

Writes: admin changes are saved right away. Message counts change on every
chat line, so they only mark the store dirty and reach disk on the next save
or flush() (bot.py flushes on a timer and at shutdown). The file is written
from a snapshot outside the data lock, so chat lookups never wait on disk.

Implements markov.brain.BrainSettings. Safe to share between threads.
"""

from __future__ import annotations
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, List, Tuple
import logging
import threading

from core.utils import DATA_DIR, env_csv, load_json_object, save_json_atomic

log = logging.getLogger("babble.settings")

SETTINGS_FILE: Path = DATA_DIR / "settings.json"

MIN_INTERVAL = 1
MAX_INTERVAL = 100

def _clamp(v: int) -> int:
    return max(MIN_INTERVAL, min(MAX_INTERVAL, int(v)))

def _norm(s: str) -> str:
    return " ".join((s or "").lower().split())

def _new_channel() -> Dict[str, Any]:
    return {"enabled": True, "message_count": 0, "message_interval": 0, "use_global_brain": False}

class SettingsStore:
    def __init__(self, path: str | Path = SETTINGS_FILE, default_message_interval: int = 35):
        self.path = Path(path)
        self.default_message_interval = _clamp(default_message_interval) if default_message_interval > 0 else 35
        self._lock = threading.RLock()     # guards _data / _dirty
        self._io_lock = threading.Lock()   # orders file writes
        self._dirty = False
        self._data = self._load()

    # -------- Persistence --------

    def _load(self) -> Dict[str, Any]:
        raw = load_json_object(self.path)
        channels: Dict[str, Dict[str, Any]] = {}
        for name, ch in (raw.get("channels") or {}).items():
            if not isinstance(ch, dict):
                continue
            merged = _new_channel()
            merged.update({k: ch[k] for k in merged if k in ch})
            channels[_norm(name)] = merged
        return {
            "message_interval": int(raw.get("message_interval") or 0),
            "blacklist": sorted({_norm(w) for w in raw.get("blacklist", []) if _norm(w)}),
            "user_blacklist": sorted({_norm(u) for u in raw.get("user_blacklist", []) if _norm(u)}),
            "channels": channels,
        }

    def _save(self) -> None:
        """Snapshot under the data lock, write under the I/O lock only."""
        with self._io_lock:
            with self._lock:
                snapshot = deepcopy(self._data)
                self._dirty = False
            try:
                save_json_atomic(self.path, snapshot)
            except OSError as e:
                with self._lock:
                    self._dirty = True
                log.error("Failed to write %s: %s", self.path, e)

    def flush(self) -> bool:
        """Write pending message counts. Returns True if anything was written."""
        with self._lock:
            if not self._dirty:
                return False
        self._save()
        return True

    def _autofill_words(self) -> List[str]:
        return [_norm(w) for w in env_csv("BLACKLIST_AUTOFILL") if _norm(w)]

    # -------- Word / phrase blacklist --------

    def get_blacklisted_words(self) -> List[str]:
        with self._lock:
            words = set(self._data["blacklist"])
        return sorted(words | set(self._autofill_words()))

    def is_blacklisted_word(self, word: str) -> bool:
        return _norm(word) in self.get_blacklisted_words()

    def add_blacklisted_word(self, word: str) -> bool:
        w = _norm(word)
        if not w:
            return False
        with self._lock:
            if w in self._data["blacklist"]:
                return False
            self._data["blacklist"] = sorted(set(self._data["blacklist"]) | {w})
        self._save()
        return True

    def remove_blacklisted_word(self, word: str) -> bool:
        w = _norm(word)
        with self._lock:
            if w not in self._data["blacklist"]:
                return False
            self._data["blacklist"].remove(w)
        self._save()
        return True

    def clear_blacklist(self) -> int:
        """Drop every stored entry (env autofill words stay). Returns how many went."""
        with self._lock:
            removed = len(self._data["blacklist"])
            self._data["blacklist"] = []
        if removed:
            self._save()
        return removed

    # -------- Ignored users --------

    def get_blacklisted_users(self) -> List[str]:
        with self._lock:
            return list(self._data["user_blacklist"])

    def is_blacklisted_user(self, name: str) -> bool:
        with self._lock:
            return _norm(name) in self._data["user_blacklist"]

    def add_blacklisted_user(self, name: str) -> bool:
        u = _norm(name)
        if not u:
            return False
        with self._lock:
            if u in self._data["user_blacklist"]:
                return False
            self._data["user_blacklist"] = sorted(set(self._data["user_blacklist"]) | {u})
        self._save()
        return True

    def remove_blacklisted_user(self, name: str) -> bool:
        u = _norm(name)
        with self._lock:
            if u not in self._data["user_blacklist"]:
                return False
            self._data["user_blacklist"].remove(u)
        self._save()
        return True

    # -------- Channels --------

    def add_channel(self, channel: str) -> None:
        key = _norm(channel)
        with self._lock:
            ch = self._data["channels"].setdefault(key, _new_channel())
            ch["enabled"] = True
        self._save()

    def remove_channel(self, channel: str) -> bool:
        with self._lock:
            if self._data["channels"].pop(_norm(channel), None) is None:
                return False
        self._save()
        return True

    def set_channel_enabled(self, channel: str, enabled: bool) -> bool:
        with self._lock:
            ch = self._data["channels"].get(_norm(channel))
            if ch is None:
                return False
            ch["enabled"] = bool(enabled)
        self._save()
        return True

    def is_channel_enabled(self, channel: str) -> bool:
        with self._lock:
            ch = self._data["channels"].get(_norm(channel))
            return bool(ch and ch["enabled"])

    def get_channels(self, enabled_only: bool = True) -> List[str]:
        with self._lock:
            return sorted(
                name for name, ch in self._data["channels"].items()
                if ch["enabled"] or not enabled_only
            )

    def increment_channel_messages(self, channel: str) -> None:
        """In-memory only; persisted by the next save or flush()."""
        with self._lock:
            ch = self._data["channels"].get(_norm(channel))
            if ch is None:
                return
            ch["message_count"] = int(ch["message_count"]) + 1
            self._dirty = True

    def get_channel_stats(self, channel: str) -> Tuple[int, bool]:
        """(message_count, enabled); unknown channels are (0, False)."""
        with self._lock:
            ch = self._data["channels"].get(_norm(channel))
            if ch is None:
                return 0, False
            return int(ch["message_count"]), bool(ch["enabled"])

    # -------- Reply interval --------

    def get_message_interval(self) -> int:
        with self._lock:
            v = int(self._data["message_interval"] or 0)
        return _clamp(v) if v > 0 else self.default_message_interval

    def set_message_interval(self, interval: int) -> int:
        v = _clamp(interval)
        with self._lock:
            self._data["message_interval"] = v
        self._save()
        return v

    def get_channel_message_interval(self, channel: str) -> int:
        with self._lock:
            ch = self._data["channels"].get(_norm(channel))
            v = int(ch["message_interval"]) if ch else 0
        return _clamp(v) if v > 0 else self.get_message_interval()

    def set_channel_message_interval(self, channel: str, interval: int) -> int | None:
        """Clamp to 1..100 and store; 0 resets to the global default. None if unknown channel."""
        v = 0 if interval == 0 else _clamp(interval)
        with self._lock:
            ch = self._data["channels"].get(_norm(channel))
            if ch is None:
                return None
            ch["message_interval"] = v
        self._save()
        return v

    # -------- Global brain --------

    def get_channel_use_global_brain(self, channel: str) -> bool:
        with self._lock:
            ch = self._data["channels"].get(_norm(channel))
            return bool(ch and ch["use_global_brain"])

    def set_channel_use_global_brain(self, channel: str, use_global: bool) -> bool:
        with self._lock:
            ch = self._data["channels"].get(_norm(channel))
            if ch is None:
                return False
            ch["use_global_brain"] = bool(use_global)
        self._save()
        return True
