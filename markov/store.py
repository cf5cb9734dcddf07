"""
markov/store.py
---------------
Transition store: the weighted (word1, word2) -> next_word table for ONE channel.

Storage shape (one SQLite file per channel, WAL journal):
  transitions(word1, word2, next_word, count)   PK (word1, word2, next_word)
  state(key, value, value_text)                 'msg_counter', 'last_message'

Every SQLite failure is re-raised as StoreError so callers decide explicitly
whether to degrade (chat path) or report (admin path). The store serialises
use of its single connection; callers still do their own per-channel locking.
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple
import random
import sqlite3
import threading

SCHEMA = """
CREATE TABLE IF NOT EXISTS transitions (
    word1 TEXT NOT NULL,
    word2 TEXT NOT NULL,
    next_word TEXT NOT NULL,
    count INTEGER DEFAULT 1,
    PRIMARY KEY (word1, word2, next_word)
);
CREATE INDEX IF NOT EXISTS idx_word1_word2 ON transitions(word1, word2);

CREATE TABLE IF NOT EXISTS state (
    key TEXT PRIMARY KEY,
    value INTEGER DEFAULT 0,
    value_text TEXT DEFAULT ''
);
"""

SIDECAR_SUFFIXES = ("-wal", "-shm")

class StoreError(Exception):
    """A channel store could not be opened, queried or written."""

@dataclass(frozen=True)
class Transition:
    word1: str
    word2: str
    next_word: str
    count: int = 1

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

@dataclass
class TransitionPage:
    transitions: List[Transition] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 50

    def as_dict(self) -> Dict[str, Any]:
        return {
            "transitions": [t.as_dict() for t in self.transitions],
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
        }

def _like_pattern(search: str) -> str:
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"

class TransitionStore:
    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._conn: Optional[sqlite3.Connection] = sqlite3.connect(
                str(self.path), timeout=5.0, check_same_thread=False
            )
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA busy_timeout=5000")
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise StoreError(f"cannot open store {self.path}: {e}") from e

    @contextmanager
    def _db(self, op: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            if self._conn is None:
                raise StoreError(f"{op}: store {self.path} is closed")
            try:
                yield self._conn
            except sqlite3.Error as e:
                raise StoreError(f"{op} failed on {self.path}: {e}") from e

    @property
    def closed(self) -> bool:
        return self._conn is None

    # -------- Learning --------

    def record_transition(self, w1: str, w2: str, next_word: str) -> None:
        self.record_transitions([(w1, w2, next_word)])

    def record_transitions(self, triples: Iterable[Tuple[str, str, str]]) -> None:
        """Insert-or-increment every triple inside one transaction."""
        rows = list(triples)
        if not rows:
            return
        with self._db("record_transitions") as conn:
            with conn:
                conn.executemany(
                    """
                    INSERT INTO transitions (word1, word2, next_word, count)
                    VALUES (?, ?, ?, 1)
                    ON CONFLICT(word1, word2, next_word) DO UPDATE SET count = count + 1
                    """,
                    rows,
                )

    # -------- Sampling --------

    def candidates(self, w1: str, w2: str) -> List[Tuple[str, int]]:
        with self._db("candidates") as conn:
            cur = conn.execute(
                "SELECT next_word, count FROM transitions WHERE word1 = ? AND word2 = ?",
                (w1, w2),
            )
            return [(row[0], int(row[1])) for row in cur.fetchall()]

    def sample_next_token(self, w1: str, w2: str, rng: Optional[random.Random] = None) -> Optional[str]:
        """Pick one next word for (w1, w2) with probability proportional to its count."""
        cands = self.candidates(w1, w2)
        if not cands:
            return None
        rng = rng or random
        words = [w for w, _ in cands]
        weights = [c for _, c in cands]
        return rng.choices(words, weights=weights, k=1)[0]

    def sample_random_context(self, rng: Optional[random.Random] = None) -> Optional[Tuple[str, str]]:
        """Uniformly random existing (word1, word2) pair, or None when empty."""
        rng = rng or random
        with self._db("sample_random_context") as conn:
            (pairs,) = conn.execute(
                "SELECT COUNT(*) FROM (SELECT DISTINCT word1, word2 FROM transitions)"
            ).fetchone()
            if not pairs:
                return None
            row = conn.execute(
                """
                SELECT DISTINCT word1, word2 FROM transitions
                ORDER BY word1, word2 LIMIT 1 OFFSET ?
                """,
                (rng.randrange(pairs),),
            ).fetchone()
            return (row[0], row[1]) if row else None

    # -------- Editing --------

    def delete_transition(self, w1: str, w2: str, next_word: str) -> int:
        with self._db("delete_transition") as conn:
            with conn:
                cur = conn.execute(
                    "DELETE FROM transitions WHERE word1 = ? AND word2 = ? AND next_word = ?",
                    (w1, w2, next_word),
                )
            return cur.rowcount

    def set_transition_count(self, w1: str, w2: str, next_word: str, count: int) -> int:
        if count < 1:
            return self.delete_transition(w1, w2, next_word)
        with self._db("set_transition_count") as conn:
            with conn:
                cur = conn.execute(
                    "UPDATE transitions SET count = ? WHERE word1 = ? AND word2 = ? AND next_word = ?",
                    (count, w1, w2, next_word),
                )
            return cur.rowcount

    def get_count(self, w1: str, w2: str, next_word: str) -> int:
        with self._db("get_count") as conn:
            row = conn.execute(
                "SELECT count FROM transitions WHERE word1 = ? AND word2 = ? AND next_word = ?",
                (w1, w2, next_word),
            ).fetchone()
            return int(row[0]) if row else 0

    def purge_matching(self, predicate: Callable[[Transition], bool]) -> int:
        """Delete every transition for which `predicate` is true. Returns rows removed."""
        with self._db("purge_matching") as conn:
            rows = conn.execute(
                "SELECT rowid, word1, word2, next_word, count FROM transitions"
            ).fetchall()
            doomed = [
                (rowid,)
                for rowid, w1, w2, nxt, cnt in rows
                if predicate(Transition(w1, w2, nxt, int(cnt)))
            ]
            if not doomed:
                return 0
            with conn:
                conn.executemany("DELETE FROM transitions WHERE rowid = ?", doomed)
            return len(doomed)

    def clear(self) -> None:
        with self._db("clear") as conn:
            with conn:
                conn.execute("DELETE FROM transitions")
                conn.execute("DELETE FROM state")

    # -------- Queries --------

    def stats(self) -> Tuple[int, int]:
        """(distinct context pairs, total transition rows)."""
        with self._db("stats") as conn:
            (pairs,) = conn.execute(
                "SELECT COUNT(*) FROM (SELECT DISTINCT word1, word2 FROM transitions)"
            ).fetchone()
            (total,) = conn.execute("SELECT COUNT(*) FROM transitions").fetchone()
            return int(pairs), int(total)

    def get_transitions(self, search: str = "", page: int = 1, page_size: int = 50) -> TransitionPage:
        """Rows ordered by count DESC, optionally filtered by substring on any column."""
        result = TransitionPage(page=page, page_size=page_size)
        offset = (page - 1) * page_size
        where, args = "", ()
        if search:
            pattern = _like_pattern(search)
            where = (
                "WHERE word1 LIKE ? ESCAPE '\\' OR word2 LIKE ? ESCAPE '\\' "
                "OR next_word LIKE ? ESCAPE '\\'"
            )
            args = (pattern, pattern, pattern)
        with self._db("get_transitions") as conn:
            (result.total,) = conn.execute(f"SELECT COUNT(*) FROM transitions {where}", args).fetchone()
            cur = conn.execute(
                f"""
                SELECT word1, word2, next_word, count FROM transitions {where}
                ORDER BY count DESC LIMIT ? OFFSET ?
                """,
                args + (page_size, offset),
            )
            result.transitions = [Transition(r[0], r[1], r[2], int(r[3])) for r in cur.fetchall()]
        return result

    # -------- Key/value state --------

    def get_state_int(self, key: str, default: int = 0) -> int:
        with self._db("get_state_int") as conn:
            row = conn.execute("SELECT value FROM state WHERE key = ?", (key,)).fetchone()
            return int(row[0]) if row and row[0] is not None else default

    def set_state_int(self, key: str, value: int) -> None:
        with self._db("set_state_int") as conn:
            with conn:
                conn.execute(
                    """
                    INSERT INTO state (key, value) VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """,
                    (key, value),
                )

    def get_state_text(self, key: str, default: str = "") -> str:
        with self._db("get_state_text") as conn:
            row = conn.execute("SELECT value_text FROM state WHERE key = ?", (key,)).fetchone()
            return row[0] if row and row[0] is not None else default

    def set_state_text(self, key: str, value: str) -> None:
        with self._db("set_state_text") as conn:
            with conn:
                conn.execute(
                    """
                    INSERT INTO state (key, value_text) VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value_text = excluded.value_text
                    """,
                    (key, value),
                )

    # -------- Housekeeping --------

    def vacuum(self) -> None:
        with self._db("vacuum") as conn:
            conn.execute("VACUUM")

    def size_bytes(self) -> int:
        total = 0
        for p in (self.path, Path(f"{self.path}-wal")):
            try:
                total += p.stat().st_size
            except OSError:
                continue
        return total

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                try:
                    self._conn.close()
                except sqlite3.Error as e:
                    raise StoreError(f"close failed on {self.path}: {e}") from e
                finally:
                    self._conn = None

    @staticmethod
    def delete_files(path: str | Path) -> None:
        """Remove a store's database file and its WAL/SHM sidecars."""
        path = Path(path)
        for suffix in SIDECAR_SUFFIXES:
            Path(f"{path}{suffix}").unlink(missing_ok=True)
        try:
            path.unlink()
        except OSError as e:
            raise StoreError(f"cannot delete store {path}: {e}") from e
