"""Shared fixtures: an in-memory settings double, brains on tmp_path, seeded RNGs."""

from __future__ import annotations

import random
from typing import Dict, List, Tuple
import threading

import pytest

from markov.brain import Brain
from markov.manager import BrainManager


class FakeSettings:
    """In-memory stand-in for SettingsStore with the same brain-facing surface."""

    def __init__(self, interval: int = 35, blacklist: List[str] | None = None):
        self.interval = interval
        self.blacklist: List[str] = list(blacklist or [])
        self.users: List[str] = []
        self.channel_intervals: Dict[str, int] = {}
        self.counts: Dict[str, int] = {}
        self.use_global: Dict[str, bool] = {}
        self._lock = threading.Lock()

    def get_blacklisted_words(self) -> List[str]:
        return list(self.blacklist)

    def is_blacklisted_user(self, name: str) -> bool:
        return name.lower() in self.users

    def get_channel_message_interval(self, channel: str) -> int:
        return self.channel_intervals.get(channel, 0)

    def get_message_interval(self) -> int:
        return self.interval

    def increment_channel_messages(self, channel: str) -> None:
        with self._lock:
            self.counts[channel] = self.counts.get(channel, 0) + 1

    def get_channel_stats(self, channel: str) -> Tuple[int, bool]:
        return self.counts.get(channel, 0), channel in self.counts

    def get_channel_use_global_brain(self, channel: str) -> bool:
        return self.use_global.get(channel, False)


@pytest.fixture
def settings() -> FakeSettings:
    return FakeSettings()


@pytest.fixture
def brains_dir(tmp_path):
    d = tmp_path / "brains"
    d.mkdir()
    return d


@pytest.fixture
def make_brain(settings, brains_dir):
    opened: List[Brain] = []

    def _make(channel: str = "general", seed: int = 1234) -> Brain:
        brain = Brain(channel, settings, brains_dir, rng=random.Random(seed))
        opened.append(brain)
        return brain

    yield _make
    for brain in opened:
        brain.close()


@pytest.fixture
def manager(settings, tmp_path):
    mgr = BrainManager(settings, tmp_path, rng=random.Random(42))
    mgr.brains_dir.mkdir(parents=True, exist_ok=True)
    yield mgr
    mgr.close()
