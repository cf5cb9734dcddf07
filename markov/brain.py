"""
markov/brain.py
---------------
One Brain per chat channel: learns order-2 word transitions from chat and,
every N eligible messages, speaks a generated line back.

Responsibilities:
- Gate incoming messages (commands, own messages, ignored users, filters).
- Learn transitions and keep the per-channel message counter.
- Decide when to respond and run the bounded generate → filter retry loop.
- Maintenance: blacklist clean-up, non-ASCII sweep, erase/delete/optimize.
- Admin views: stats, paginated transitions, single-transition edits.

Locking: every Brain has one ReadWriteLock. Learning, counter updates and
maintenance take the write side; stats, generation and lookups take the read
side. Generation runs AFTER the counter critical section has been released.

Errors: StoreError from the storage layer is logged and degraded here on the
chat path. Administrative operations raise BrainError instead.
"""

from __future__ import annotations
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, TYPE_CHECKING
import logging
import random

from markov import filters
from markov.locks import ReadWriteLock
from markov.store import StoreError, Transition, TransitionPage, TransitionStore

if TYPE_CHECKING:
    from markov.generators import TokenGenerator

log = logging.getLogger("babble.brain")

DEFAULT_MESSAGE_INTERVAL = 35
MIN_MESSAGE_INTERVAL = 1
MAX_MESSAGE_INTERVAL = 100
MAX_GENERATED_TOKENS = 20
GENERATION_ATTEMPTS = 5

STATE_MSG_COUNTER = "msg_counter"
STATE_LAST_MESSAGE = "last_message"

FAIL_EMPTY = "empty_generation"
FAIL_BLACKLISTED = "blacklisted_word"
FAIL_UNKNOWN = "unknown"

class BrainError(Exception):
    """An administrative brain operation failed (erase, delete, edit...)."""

class BrainSettings(Protocol):
    """Configuration capability the brains read from. Storage is not our concern."""

    def get_blacklisted_words(self) -> List[str]: ...
    def is_blacklisted_user(self, name: str) -> bool: ...
    def get_channel_message_interval(self, channel: str) -> int: ...
    def get_message_interval(self) -> int: ...
    def increment_channel_messages(self, channel: str) -> None: ...
    def get_channel_stats(self, channel: str) -> Tuple[int, bool]: ...
    def get_channel_use_global_brain(self, channel: str) -> bool: ...

# -------- Result records --------

@dataclass
class GenerationResult:
    """
    Outcome of one processed chat message.

    counter_before is the counter right after this message was counted,
    counter is its value once processing finished (0 after a response cycle).
    """
    triggered: bool = False
    success: bool = False
    response: str = ""
    attempts: int = 0
    failure_reason: str = ""
    counter_before: int = 0
    counter: int = 0
    interval: int = 0
    using_global: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

@dataclass
class BrainStats:
    channel: str
    unique_pairs: int = 0
    total_entries: int = 0
    message_count: int = 0
    db_size: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

@dataclass
class CleanWordResult:
    word: str
    removed: int

@dataclass
class CleanResult:
    channel: str
    total_removed: int = 0
    words: List[CleanWordResult] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

def clamp_interval(value: int) -> int:
    return max(MIN_MESSAGE_INTERVAL, min(MAX_MESSAGE_INTERVAL, value))

def resolve_interval(settings: BrainSettings, channel: str) -> int:
    """Channel interval, else the global default, else 35; clamped to 1..100."""
    value = settings.get_channel_message_interval(channel)
    if not value or value < 1:
        value = settings.get_message_interval()
    if not value or value < 1:
        return DEFAULT_MESSAGE_INTERVAL
    return clamp_interval(int(value))

def _blacklist_matcher(entry: str) -> Optional[Callable[[Transition], bool]]:
    """
    Phrases match any of their adjacent word pairs on (word1, word2) or
    (word2, next_word). Single words match as a substring of any token.
    """
    words = entry.lower().split()
    if not words:
        return None
    if len(words) == 1:
        needle = words[0]
        return lambda t: (needle in t.word1.lower()
                          or needle in t.word2.lower()
                          or needle in t.next_word.lower())

    pairs = {(words[i], words[i + 1]) for i in range(len(words) - 1)}

    def hit(t: Transition) -> bool:
        w1, w2, nxt = t.word1.lower(), t.word2.lower(), t.next_word.lower()
        return (w1, w2) in pairs or (w2, nxt) in pairs
    return hit

# -------- Brain --------

class Brain:
    def __init__(
        self,
        channel: str,
        settings: BrainSettings,
        brains_dir: str | Path,
        rng: Optional[random.Random] = None,
    ):
        self.channel = channel.lower()
        self.settings = settings
        self.path = Path(brains_dir) / f"{self.channel}.db"
        self.rng = rng or random.Random()
        self._lock = ReadWriteLock()
        self._store = TransitionStore(self.path)  # StoreError → caller
        try:
            self._counter = self._store.get_state_int(STATE_MSG_COUNTER, 0)
        except StoreError:
            self._store.close()
            raise

    def __repr__(self) -> str:
        return f"<Brain channel={self.channel!r} counter={self._counter}>"

    # -------- Settings access (degrade to defaults) --------

    def _blacklist(self) -> List[str]:
        words = self.settings.get_blacklisted_words()
        return [w for w in (words or []) if w]

    def _is_blacklisted_user(self, name: str) -> bool:
        return bool(self.settings.is_blacklisted_user(name))

    def message_interval(self) -> int:
        return resolve_interval(self.settings, self.channel)

    # -------- Chat path --------

    def process_message(
        self,
        text: str,
        sender: str,
        bot_identity: str,
        generator: Optional["TokenGenerator"] = None,
    ) -> str:
        return self.process_message_with_info(text, sender, bot_identity, generator).response

    def process_message_with_info(
        self,
        text: str,
        sender: str,
        bot_identity: str,
        generator: Optional["TokenGenerator"] = None,
    ) -> GenerationResult:
        """
        Learn from one chat line and, when the counter reaches the interval,
        generate a reply. Rejected lines return an untriggered, empty result
        with no side effects.
        """
        result = GenerationResult()
        bot = (bot_identity or "").lower()

        if filters.is_command(text):
            return result
        if sender.lower() == bot:
            return result
        if self.channel == bot:
            return result
        if self._is_blacklisted_user(sender):
            return result
        if not filters.is_learnable(text, self._blacklist()):
            return result

        text = filters.normalize_unicode_punctuation(text)
        self.settings.increment_channel_messages(self.channel)

        with self._lock.write():
            self._learn_locked(text)
            self._counter += 1
            interval = self.message_interval()
            result.counter_before = self._counter
            result.interval = interval
            should_respond = self._counter >= interval
            if should_respond:
                self._counter = 0
            result.counter = self._counter
            self._save_counter()

        if not should_respond:
            return result

        result.triggered = True
        result.using_global = bool(generator is not None and generator.is_global)
        generate = generator.generate if generator is not None else self.generate

        for attempt in range(1, GENERATION_ATTEMPTS + 1):
            result.attempts = attempt
            response = generate(MAX_GENERATED_TOKENS)
            if not response:
                result.failure_reason = FAIL_EMPTY
                continue
            if not filters.is_sendable(response, self._blacklist()):
                result.failure_reason = FAIL_BLACKLISTED
                continue
            result.success = True
            result.response = response
            result.failure_reason = ""
            self._save_last_message(response)
            log.debug("[%s] generated after %d attempt(s): %r", self.channel, attempt, response)
            return result

        if not result.failure_reason:
            result.failure_reason = FAIL_UNKNOWN
        log.info("[%s] generation failed after %d attempts (%s)",
                 self.channel, result.attempts, result.failure_reason)
        return result

    def learn(self, text: str) -> None:
        with self._lock.write():
            self._learn_locked(text)

    def _learn_locked(self, text: str) -> None:
        words = text.split()
        if len(words) < 3:
            return
        triples = [
            (words[i], words[i + 1], words[i + 2])
            for i in range(len(words) - 2)
            if not filters.is_self_loop(words[i], words[i + 1], words[i + 2])
        ]
        try:
            self._store.record_transitions(triples)
        except StoreError as e:
            log.warning("[%s] learn failed: %s", self.channel, e)

    def _save_counter(self) -> None:
        try:
            self._store.set_state_int(STATE_MSG_COUNTER, self._counter)
        except StoreError as e:
            log.warning("[%s] could not persist message counter: %s", self.channel, e)

    def _save_last_message(self, message: str) -> None:
        with self._lock.write():
            try:
                self._store.set_state_text(STATE_LAST_MESSAGE, message)
            except StoreError as e:
                log.warning("[%s] could not persist last message: %s", self.channel, e)

    # -------- Generation --------

    def generate(self, max_tokens: int = MAX_GENERATED_TOKENS) -> str:
        """
        Random walk over the weighted transition graph: a random seed pair,
        then up to `max_tokens` sampled words. Dead ends end the walk early.
        """
        with self._lock.read():
            try:
                seed = self._store.sample_random_context(self.rng)
            except StoreError as e:
                log.warning("[%s] seed lookup failed: %s", self.channel, e)
                return ""
            if seed is None:
                return ""

            w1, w2 = seed
            words = [w1, w2]
            for _ in range(max_tokens):
                try:
                    nxt = self._store.sample_next_token(w1, w2, self.rng)
                except StoreError as e:
                    log.warning("[%s] walk stopped: %s", self.channel, e)
                    break
                if nxt is None:
                    break
                words.append(nxt)
                w1, w2 = w2, nxt
        return " ".join(words)

    def random_context(self) -> Optional[Tuple[str, str]]:
        with self._lock.read():
            try:
                return self._store.sample_random_context(self.rng)
            except StoreError as e:
                log.warning("[%s] seed lookup failed: %s", self.channel, e)
                return None

    def candidates(self, w1: str, w2: str) -> List[Tuple[str, int]]:
        with self._lock.read():
            try:
                return self._store.candidates(w1, w2)
            except StoreError as e:
                log.warning("[%s] candidate lookup failed: %s", self.channel, e)
                return []

    # -------- Read-only views --------

    def get_message_counter(self) -> int:
        with self._lock.read():
            return self._counter

    def get_last_message(self) -> str:
        with self._lock.read():
            try:
                return self._store.get_state_text(STATE_LAST_MESSAGE, "")
            except StoreError as e:
                log.warning("[%s] last message lookup failed: %s", self.channel, e)
                return ""

    def stats(self) -> BrainStats:
        out = BrainStats(channel=self.channel)
        with self._lock.read():
            try:
                out.unique_pairs, out.total_entries = self._store.stats()
            except StoreError as e:
                log.warning("[%s] stats failed: %s", self.channel, e)
            out.db_size = self._store.size_bytes()
        message_count, _enabled = self.settings.get_channel_stats(self.channel)
        out.message_count = int(message_count or 0)
        return out

    def get_transitions(self, search: str = "", page: int = 1, page_size: int = 50) -> TransitionPage:
        with self._lock.read():
            try:
                return self._store.get_transitions(search, page, page_size)
            except StoreError as e:
                log.warning("[%s] transition listing failed: %s", self.channel, e)
                return TransitionPage(page=page, page_size=page_size)

    # -------- Admin edits --------

    def delete_transition(self, w1: str, w2: str, next_word: str) -> int:
        with self._lock.write():
            try:
                return self._store.delete_transition(w1, w2, next_word)
            except StoreError as e:
                raise BrainError(f"[{self.channel}] delete transition failed: {e}") from e

    def update_transition_count(self, w1: str, w2: str, next_word: str, count: int) -> int:
        """Set a transition's count; anything below 1 deletes it."""
        with self._lock.write():
            try:
                return self._store.set_transition_count(w1, w2, next_word, count)
            except StoreError as e:
                raise BrainError(f"[{self.channel}] update transition failed: {e}") from e

    # -------- Maintenance --------

    def clean(self) -> CleanResult:
        """Remove transitions touching blacklisted words or phrases."""
        result = CleanResult(channel=self.channel)
        blacklist = self._blacklist()
        if not blacklist:
            return result

        with self._lock.write():
            for entry in blacklist:
                hit = _blacklist_matcher(entry)
                if hit is None:
                    continue
                try:
                    removed = self._store.purge_matching(hit)
                except StoreError as e:
                    log.warning("[%s] clean of %r failed: %s", self.channel, entry, e)
                    continue
                if removed:
                    result.words.append(CleanWordResult(word=entry, removed=removed))
                    result.total_removed += removed

        if result.total_removed:
            log.info("[%s] clean removed %d transition(s)", self.channel, result.total_removed)
        return result

    def clean_non_ascii(self) -> int:
        """Drop self-loop transitions and those with non-ASCII (non-emoji) tokens."""
        flagged: List[Tuple[Transition, str, List[str]]] = []

        def hit(t: Transition) -> bool:
            if filters.is_self_loop(t.word1, t.word2, t.next_word):
                flagged.append((t, "loop", []))
                return True
            bad = filters.non_ascii_tokens(t.word1, t.word2, t.next_word)
            if bad:
                flagged.append((t, "non-ascii", bad))
                return True
            return False

        with self._lock.write():
            try:
                removed = self._store.purge_matching(hit)
            except StoreError as e:
                log.warning("[%s] non-ASCII sweep failed: %s", self.channel, e)
                return 0

        for t, reason, bad in flagged:
            if reason == "loop":
                log.info("[%s] removed loop transition: %r -> %r -> %r",
                         self.channel, t.word1, t.word2, t.next_word)
            else:
                log.info("[%s] removed non-ASCII transition: %r -> %r -> %r (bad: %s)",
                         self.channel, t.word1, t.word2, t.next_word, bad)
        return removed

    def erase(self) -> None:
        """Forget every transition and reset the counter; the file stays."""
        with self._lock.write():
            try:
                self._store.clear()
                self._store.set_state_int(STATE_MSG_COUNTER, 0)
                self._counter = 0
                self._store.vacuum()
            except StoreError as e:
                raise BrainError(f"[{self.channel}] erase failed: {e}") from e
        log.info("[%s] brain erased", self.channel)

    def delete(self) -> None:
        """Close and remove this channel's storage. Irreversible."""
        with self._lock.write():
            try:
                self._store.close()
            except StoreError as e:
                log.warning("[%s] close before delete failed: %s", self.channel, e)
            try:
                TransitionStore.delete_files(self.path)
            except StoreError as e:
                raise BrainError(f"[{self.channel}] delete failed: {e}") from e
        log.info("[%s] brain deleted", self.channel)

    def optimize(self) -> None:
        with self._lock.write():
            try:
                self._store.vacuum()
            except StoreError as e:
                raise BrainError(f"[{self.channel}] optimize failed: {e}") from e

    def close(self) -> None:
        with self._lock.write():
            try:
                self._store.close()
            except StoreError as e:
                log.warning("[%s] close failed: %s", self.channel, e)

    @property
    def closed(self) -> bool:
        return self._store.closed
