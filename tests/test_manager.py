from __future__ import annotations

import threading

import pytest

from markov.brain import BrainError
from markov.generators import LocalGenerator


def test_get_brain_is_cached_and_normalised(manager):
    a = manager.get_brain("General")
    b = manager.get_brain("general ")
    assert a is b
    assert manager.is_loaded("GENERAL")
    assert a.path == manager.brains_dir / "general.db"


def test_invalid_channel_names_get_no_brain(manager):
    assert manager.get_brain("../escape") is None
    assert manager.get_brain("") is None


def test_bot_channel_is_a_no_op(manager, settings):
    settings.interval = 1
    result = manager.process_message("babble", "the quick brown fox", "alice", "Babble")
    assert not result.triggered
    assert not manager.is_loaded("babble")


def test_process_message_uses_global_generator_when_enabled(manager, settings):
    settings.interval = 1
    settings.use_global["general"] = True
    result = manager.process_message("general", "the quick brown fox", "alice", "babble")
    assert result.triggered
    assert result.using_global
    assert result.success

    settings.use_global["general"] = False
    assert manager.process_message("general", "the quick brown fox", "alice", "babble").using_global is False


def test_generator_for_picks_local_or_global(manager, settings):
    brain = manager.get_brain("general")
    local = manager.generator_for("general", brain)
    assert isinstance(local, LocalGenerator)
    assert local.brain is brain
    assert not local.is_global

    settings.use_global["general"] = True
    assert manager.generator_for("General", brain) is manager.global_generator


def test_global_generation_pools_counts(manager):
    a = manager.get_brain("chan_a")
    b = manager.get_brain("chan_b")
    for _ in range(3):
        a.learn("x y z1")
    b.learn("x y z2")

    outputs = [manager.generate_global(1) for _ in range(2000)]
    assert set(outputs) == {"x y z1", "x y z2"}
    share = outputs.count("x y z1") / len(outputs)
    assert 0.70 < share < 0.80


def test_pooled_candidates(manager):
    a = manager.get_brain("chan_a")
    b = manager.get_brain("chan_b")
    a.learn("x y z1")
    a.learn("x y z2")
    b.learn("x y z2")
    assert manager.pooled_candidates([a, b], "x", "y") == {"z1": 1, "z2": 2}


def test_global_generation_without_brains(manager):
    assert manager.generate_global(20) == ""


def test_list_brains_includes_unloaded(manager):
    manager.get_brain("one").learn("a b c")
    manager.get_brain("two").learn("d e f g")
    manager.remove_brain("two")
    assert not manager.is_loaded("two")

    stats = {s.channel: s.total_entries for s in manager.list_brains()}
    assert stats == {"one": 1, "two": 2}
    assert manager.known_channels() == ["one", "two"]


def test_delete_brain_never_loaded(manager):
    manager.get_brain("old").learn("a b c")
    manager.remove_brain("old")
    path = manager.brains_dir / "old.db"
    assert path.exists()

    manager.delete_brain("old")
    assert not path.exists()
    with pytest.raises(BrainError):
        manager.delete_brain("old")


def test_delete_loaded_brain(manager):
    brain = manager.get_brain("gone")
    brain.learn("a b c")
    manager.delete_brain("gone")
    assert not manager.is_loaded("gone")
    assert not brain.path.exists()


def test_database_stats(manager, settings):
    settings.blacklist = ["one", "two phrase"]
    manager.get_brain("one").learn("a b c")
    manager.get_brain("two").learn("d e f g")
    stats = manager.get_database_stats()
    assert stats.unique_channels == 2
    assert stats.total_transitions == 3
    assert stats.total_size > 0
    assert stats.blacklisted_words == 2
    assert stats.data_directory == str(manager.brains_dir)


def test_countdown_and_last_message(manager, settings):
    settings.interval = 5
    assert manager.get_channel_countdown("general") == (5, 5)
    manager.process_message("general", "the quick brown fox", "alice", "babble")
    manager.process_message("general", "the quick brown fox", "alice", "babble")
    assert manager.get_channel_countdown("general") == (3, 5)
    assert manager.get_last_message("general") == ""
    assert manager.get_last_message("nowhere") == ""


def test_clean_all_reports_only_changed_brains(manager, settings):
    manager.get_brain("dirty").learn("a bad c")
    manager.get_brain("clean").learn("a b c")
    settings.blacklist = ["bad"]
    results = manager.clean_all_brains()
    assert [(r.channel, r.total_removed) for r in results] == [("dirty", 1)]


def test_clean_non_ascii_all(manager):
    manager.get_brain("one").learn("café au lait")
    manager.get_brain("two").learn("naïve and naïve")
    manager.get_brain("three").learn("all ascii here")
    assert manager.clean_non_ascii_all() == 2


def test_erase_and_optimize_all(manager):
    manager.get_brain("one").learn("a b c")
    manager.get_brain("two").learn("d e f")
    manager.erase_brain("one")
    assert manager.get_brain("one").stats().total_entries == 0
    assert manager.optimize_all() == ["one", "two"]
    with pytest.raises(BrainError):
        manager.erase_brain("../bad")


def test_close_releases_everything(manager):
    brain = manager.get_brain("general")
    manager.close()
    assert brain.closed
    assert manager.loaded_brains() == []


def test_concurrent_get_brain_opens_one_brain(manager):
    barrier = threading.Barrier(16)
    got = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        brain = manager.get_brain("x")
        with lock:
            got.append(brain)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(got) == 16
    assert got[0] is not None
    assert all(b is got[0] for b in got)
    assert manager.loaded_brains() == [got[0]]


def test_delete_brain_races_with_reopen(manager):
    done = threading.Event()
    errors = []

    def reopen():
        try:
            while not done.is_set():
                manager.get_brain("doomed")
                manager.list_brains()
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=reopen) for _ in range(4)]
    for t in threads:
        t.start()
    try:
        for _ in range(30):
            manager.get_brain("doomed").learn("a b c")
            manager.delete_brain("doomed")
    finally:
        done.set()
        for t in threads:
            t.join()

    assert errors == []
    for brain in manager.loaded_brains():
        assert not brain.closed
        assert brain.path.exists()
