from __future__ import annotations

import random

import pytest

from commands import brains as cmd
from core.settings import SettingsStore
from markov.manager import BrainManager


@pytest.fixture
def real_settings(tmp_path, monkeypatch):
    monkeypatch.delenv("BLACKLIST_AUTOFILL", raising=False)
    return SettingsStore(tmp_path / "settings.json", default_message_interval=5)


@pytest.fixture
def mgr(real_settings, tmp_path):
    m = BrainManager(real_settings, tmp_path, rng=random.Random(5))
    yield m
    m.close()


def test_paging_and_sizes():
    assert cmd.normalize_paging(0, 500) == (1, 50)
    assert cmd.normalize_paging(None, None) == (1, 50)
    assert cmd.normalize_paging(3, 20) == (3, 20)
    assert cmd._fmt_bytes(10) == "10 B"
    assert cmd._fmt_bytes(2048) == "2.0 KB"


def test_channel_settings_commands(real_settings):
    assert "never enabled" in cmd.disable_channel(real_settings, "42")
    assert "Enable this channel first" in cmd.set_interval(real_settings, "42", 10)

    cmd.enable_channel(real_settings, "42")
    assert real_settings.is_channel_enabled("42")
    assert "**10**" in cmd.set_interval(real_settings, "42", 10)
    assert "global interval (5" in cmd.set_interval(real_settings, "42", 0)
    assert "every channel" in cmd.set_global_brain(real_settings, "42", True)
    assert real_settings.get_channel_use_global_brain("42")

    cmd.disable_channel(real_settings, "42")
    assert not real_settings.is_channel_enabled("42")


def test_blacklist_commands(real_settings):
    assert cmd.blacklist_list(real_settings) == "📭 The blacklist is empty."
    assert "Blacklisted `Spoiler`" in cmd.blacklist_add(real_settings, "Spoiler")
    assert "already" in cmd.blacklist_add(real_settings, "spoiler")
    assert "`spoiler`" in cmd.blacklist_list(real_settings)
    assert "Removed" in cmd.blacklist_remove(real_settings, "spoiler")
    assert "was not" in cmd.blacklist_remove(real_settings, "spoiler")


def test_ignore_commands(real_settings):
    assert "ignore" in cmd.ignore_user(real_settings, "Troll")
    assert real_settings.is_blacklisted_user("troll")
    assert "already" in cmd.ignore_user(real_settings, "troll")
    assert "again" in cmd.unignore_user(real_settings, "troll")


def test_brain_views(mgr, real_settings):
    real_settings.add_channel("42")
    mgr.process_message("42", "the quick brown fox", "alice", "babble")

    overview = cmd.brains_overview(mgr)
    assert "`42`: 2 transitions, 2 pairs, 1 messages" in overview

    stats = cmd.brain_stats(mgr, "42")
    assert "Transitions: 2 (2 unique pairs)" in stats
    assert "Next reply in 4 of 5 messages" in stats

    page = cmd.transitions(mgr, "42", search="fox")
    assert "(1 total)" in page
    assert "`quick` `brown` → `fox` ×1" in page
    assert cmd.transitions(mgr, "42", search="zebra") == "🔎 No transitions found."

    assert cmd.countdown(mgr, "42") == "⏳ 4 more messages until my next reply (every 5)."


def test_empty_overview(mgr):
    assert cmd.brains_overview(mgr) == "🧠 No brains yet."


def test_transition_edit_commands(mgr):
    mgr.get_brain("42").learn("a b c")
    assert cmd.set_transition(mgr, "42", "a", "b", "c", 4) == "✏️ Count set to 4."
    assert cmd.set_transition(mgr, "42", "x", "y", "z", 4) == "ℹ️ No such transition."
    assert cmd.delete_transition(mgr, "42", "a", "b", "c") == "🗑️ Transition deleted."
    assert cmd.delete_transition(mgr, "42", "a", "b", "c") == "ℹ️ No such transition."


def test_maintenance_commands(mgr, real_settings):
    mgr.get_brain("42").learn("a spoiler here")
    mgr.get_brain("43").learn("café au lait")

    assert cmd.clean(mgr, "42") == "✨ Nothing to clean."
    real_settings.add_blacklisted_word("spoiler")
    assert "Removed 1 transitions" in cmd.clean(mgr, "42")
    assert cmd.clean_all(mgr) == "✨ Nothing to clean in any brain."
    assert "Removed 1 loop/non-ASCII" in cmd.clean_non_ascii(mgr)
    assert cmd.optimize(mgr) == "⚙️ Optimized 2 brains."

    stats = cmd.database_stats(mgr)
    assert "Brains: 2" in stats
    assert "Blacklisted words: 1" in stats

    assert "erased" in cmd.erase(mgr, "42")


def test_forget(mgr, real_settings):
    real_settings.add_channel("42")
    mgr.get_brain("42").learn("a b c")
    assert cmd.forget(mgr, real_settings, "42") == "🗑️ Channel removed and its brain deleted."
    assert real_settings.get_channels(enabled_only=False) == []
    assert mgr.known_channels() == []
    assert cmd.forget(mgr, real_settings, "42").startswith("⚠️")


def test_global_interval_command_clamps(real_settings):
    assert "**100**" in cmd.set_global_interval(real_settings, 500)
    assert real_settings.get_message_interval() == 100
    assert "**1**" in cmd.set_global_interval(real_settings, 0)
    assert "**20**" in cmd.set_global_interval(real_settings, 20)

    real_settings.add_channel("42")
    assert real_settings.get_channel_message_interval("42") == 20


def test_blacklist_clear_command(real_settings):
    assert cmd.blacklist_clear(real_settings) == "📭 The blacklist was already empty."
    real_settings.add_blacklisted_word("one")
    real_settings.add_blacklisted_word("two words")
    assert cmd.blacklist_clear(real_settings) == "🧹 Cleared 2 blacklist entries."
    assert real_settings.get_blacklisted_words() == []


def test_ignored_list_command(real_settings):
    assert cmd.ignored_list(real_settings) == "👀 I'm not ignoring anyone."
    cmd.ignore_user(real_settings, "Troll")
    cmd.ignore_user(real_settings, "spambot")
    assert cmd.ignored_list(real_settings) == "🙈 **Ignored:** spambot, troll"
