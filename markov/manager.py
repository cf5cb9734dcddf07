"""
markov/manager.py
-----------------
BrainManager: the registry of per-channel brains.

What this file does:
- Lazily opens one Brain per channel (double-checked under a read/write lock).
- Evicts, erases and deletes brains (including never-loaded ones).
- Lists every brain found on disk and rolls up database statistics.
- Fans maintenance out over all brains (clean, non-ASCII sweep, optimize).
- Global generation: a walk that pools candidates from every loaded brain.

One manager is created at start-up and handed to whoever needs it
(transport, admin commands). Nothing here is a module-level singleton.

A failing channel never stops the others: creation failures give None,
fan-out operations log and move on.
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import logging
import random
import re

from markov.brain import (
    Brain,
    BrainError,
    BrainSettings,
    BrainStats,
    CleanResult,
    GenerationResult,
    MAX_GENERATED_TOKENS,
    resolve_interval,
)
from markov.generators import GlobalGenerator, LocalGenerator, TokenGenerator
from markov.locks import ReadWriteLock
from markov.store import StoreError, TransitionStore

log = logging.getLogger("babble.manager")

_CHANNEL_RE = re.compile(r"^[a-z0-9_][a-z0-9_.\-]*$")

@dataclass
class DatabaseStats:
    total_transitions: int = 0
    unique_channels: int = 0
    total_size: int = 0
    blacklisted_words: int = 0
    data_directory: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

def normalize_channel(channel: str) -> str:
    return (channel or "").strip().lower()

class BrainManager:
    def __init__(self, settings: BrainSettings, data_dir: str | Path, rng: Optional[random.Random] = None):
        self.settings = settings
        self.brains_dir = Path(data_dir) / "brains"
        self.rng = rng or random.Random()
        self._brains: Dict[str, Brain] = {}
        self._lock = ReadWriteLock()
        self.global_generator = GlobalGenerator(self)

    def _path(self, channel: str) -> Path:
        return self.brains_dir / f"{channel}.db"

    # -------- Lifecycle --------

    def get_brain(self, channel: str) -> Optional[Brain]:
        """Cached brain for `channel`, opening it on first use. None if it cannot be opened."""
        key = normalize_channel(channel)
        if not _CHANNEL_RE.match(key):
            log.warning("Refusing brain for invalid channel name %r", channel)
            return None

        with self._lock.read():
            brain = self._brains.get(key)
        if brain is not None:
            return brain

        with self._lock.write():
            brain = self._brains.get(key)
            if brain is not None:
                return brain
            try:
                brain = Brain(key, self.settings, self.brains_dir,
                              rng=random.Random(self.rng.getrandbits(64)))
            except StoreError as e:
                log.error("Error creating brain for %s: %s", key, e)
                return None
            self._brains[key] = brain
            log.debug("Loaded brain for %s", key)
            return brain

    def loaded_brains(self) -> List[Brain]:
        with self._lock.read():
            return list(self._brains.values())

    def is_loaded(self, channel: str) -> bool:
        with self._lock.read():
            return normalize_channel(channel) in self._brains

    def remove_brain(self, channel: str) -> None:
        """Close and forget a brain; its data stays on disk."""
        key = normalize_channel(channel)
        with self._lock.write():
            brain = self._brains.pop(key, None)
        if brain is not None:
            brain.close()

    def delete_brain(self, channel: str) -> None:
        """
        Evict and delete the channel's data, loaded or not. Raises BrainError.
        The registry stays write-locked until the files are gone so no
        get_brain() can reopen the channel mid-delete.
        """
        key = normalize_channel(channel)
        with self._lock.write():
            brain = self._brains.pop(key, None)
            if brain is not None:
                brain.delete()
                return

            path = self._path(key)
            if not _CHANNEL_RE.match(key) or not path.exists():
                raise BrainError(f"no brain data for channel {key!r}")
            try:
                TransitionStore.delete_files(path)
            except StoreError as e:
                raise BrainError(str(e)) from e
        log.info("[%s] brain deleted (was not loaded)", key)

    def erase_brain(self, channel: str) -> None:
        brain = self.get_brain(channel)
        if brain is None:
            raise BrainError(f"brain for {normalize_channel(channel)!r} is unavailable")
        brain.erase()

    def close(self) -> None:
        with self._lock.write():
            brains = list(self._brains.values())
            self._brains = {}
        for brain in brains:
            brain.close()

    # -------- Chat path --------

    def generator_for(self, channel: str, brain: Brain) -> TokenGenerator:
        """The channel's own walk, or the pooled one when use_global_brain is set."""
        if self.settings.get_channel_use_global_brain(normalize_channel(channel)):
            return self.global_generator
        return LocalGenerator(brain)

    def process_message(self, channel: str, text: str, sender: str, bot_identity: str) -> GenerationResult:
        """
        Transport entry point. The bot's own channel never gets a brain and a
        channel whose brain cannot be opened is silently skipped.
        """
        key = normalize_channel(channel)
        if key == normalize_channel(bot_identity):
            return GenerationResult()
        brain = self.get_brain(key)
        if brain is None:
            return GenerationResult()
        return brain.process_message_with_info(text, sender, bot_identity, self.generator_for(key, brain))

    def get_channel_countdown(self, channel: str) -> Tuple[int, int]:
        """(messages until the next response, interval) for a channel."""
        key = normalize_channel(channel)
        interval = resolve_interval(self.settings, key)
        with self._lock.read():
            brain = self._brains.get(key)
        if brain is None:
            return interval, interval
        return max(0, interval - brain.get_message_counter()), interval

    def get_last_message(self, channel: str) -> str:
        with self._lock.read():
            brain = self._brains.get(normalize_channel(channel))
        return brain.get_last_message() if brain is not None else ""

    # -------- Global generation --------

    @staticmethod
    def pooled_candidates(brains: List[Brain], w1: str, w2: str) -> Dict[str, int]:
        """Next-word counts for (w1, w2) summed across `brains`."""
        pooled: Dict[str, int] = defaultdict(int)
        for brain in brains:
            for word, count in brain.candidates(w1, w2):
                pooled[word] += count
        return dict(pooled)

    def generate_global(self, max_tokens: int = MAX_GENERATED_TOKENS) -> str:
        """
        Seed from one loaded brain picked uniformly, then sample every next
        word from the candidates of all loaded brains, weighted by their
        summed counts. The set of brains is a snapshot taken at call time.
        """
        brains = self.loaded_brains()
        if not brains:
            return ""

        seed = self.rng.choice(brains).random_context()
        if seed is None:
            return ""

        w1, w2 = seed
        words = [w1, w2]
        for _ in range(max_tokens):
            pooled = self.pooled_candidates(brains, w1, w2)
            if not pooled:
                break
            nxt = self.rng.choices(list(pooled), weights=list(pooled.values()), k=1)[0]
            words.append(nxt)
            w1, w2 = w2, nxt
        return " ".join(words)

    # -------- Listing & stats --------

    def known_channels(self) -> List[str]:
        """Channels with a brain file on disk."""
        if not self.brains_dir.is_dir():
            return []
        return sorted(p.stem for p in self.brains_dir.glob("*.db") if p.is_file())

    def list_brains(self) -> List[BrainStats]:
        stats: List[BrainStats] = []
        for channel in self.known_channels():
            brain = self.get_brain(channel)
            if brain is not None:
                stats.append(brain.stats())
        return stats

    def get_database_stats(self) -> DatabaseStats:
        out = DatabaseStats(data_directory=str(self.brains_dir))
        for bs in self.list_brains():
            out.total_transitions += bs.total_entries
            out.total_size += bs.db_size
            out.unique_channels += 1
        out.blacklisted_words = len(self.settings.get_blacklisted_words() or [])
        return out

    # -------- Maintenance fan-out --------

    def clean_brain(self, channel: str) -> CleanResult:
        brain = self.get_brain(channel)
        if brain is None:
            return CleanResult(channel=normalize_channel(channel))
        return brain.clean()

    def clean_all_brains(self) -> List[CleanResult]:
        """Clean every brain; only results that removed something are returned."""
        results: List[CleanResult] = []
        for channel in self.known_channels():
            brain = self.get_brain(channel)
            if brain is None:
                continue
            result = brain.clean()
            if result.total_removed:
                results.append(result)
        return results

    def clean_non_ascii_all(self) -> int:
        total = 0
        for channel in self.known_channels():
            brain = self.get_brain(channel)
            if brain is not None:
                total += brain.clean_non_ascii()
        return total

    def optimize_all(self) -> List[str]:
        """VACUUM every brain. Returns the channels that were optimized."""
        done: List[str] = []
        for channel in self.known_channels():
            brain = self.get_brain(channel)
            if brain is None:
                continue
            try:
                brain.optimize()
            except BrainError as e:
                log.warning("Optimize skipped: %s", e)
                continue
            done.append(brain.channel)
        return done
