"""
commands/brains.py
------------------
Admin command handlers for the brains and their settings.

Every handler takes the shared BrainManager / SettingsStore plus plain
arguments and returns the reply text. No Discord objects in here: bot.py
does the interaction plumbing (defer, ephemeral, chunking).

Covers:
- channel opt-in/out, reply interval (per channel and global), global-brain mode
- word/phrase blacklist (add, remove, list, clear) and ignored users
- brain listing, stats, paginated transitions and single-row edits
- clean / non-ASCII sweep / erase / optimize, database rollup, countdown
"""

from __future__ import annotations
from typing import List

from core.settings import SettingsStore
from core.utils import short
from markov.brain import BrainError
from markov.manager import BrainManager

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100

def _fmt_bytes(n: int) -> str:
    size = float(n)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{n} B"

def normalize_paging(page: int | None, page_size: int | None) -> tuple[int, int]:
    page = page if page and page >= 1 else 1
    if not page_size or page_size < 1 or page_size > MAX_PAGE_SIZE:
        page_size = DEFAULT_PAGE_SIZE
    return page, page_size

# -------- Channels --------

def enable_channel(settings: SettingsStore, channel: str) -> str:
    settings.add_channel(channel)
    return "✅ I'll learn from this channel and chime in now and then."

def disable_channel(settings: SettingsStore, channel: str) -> str:
    if not settings.set_channel_enabled(channel, False):
        return "ℹ️ This channel was never enabled."
    return "💤 Stopped learning and talking here. Brain data is kept."

def set_interval(settings: SettingsStore, channel: str, interval: int) -> str:
    stored = settings.set_channel_message_interval(channel, interval)
    if stored is None:
        return "❌ Enable this channel first."
    if stored == 0:
        return f"🔁 Using the global interval ({settings.get_message_interval()} messages)."
    return f"🔁 I'll reply every **{stored}** messages here."

def set_global_brain(settings: SettingsStore, channel: str, enabled: bool) -> str:
    if not settings.set_channel_use_global_brain(channel, enabled):
        return "❌ Enable this channel first."
    if enabled:
        return "🌐 Replies here now draw on every channel's brain."
    return "🧠 Replies here only use this channel's brain."

def set_global_interval(settings: SettingsStore, interval: int) -> str:
    stored = settings.set_message_interval(interval)
    return f"🔁 Channels without their own interval now reply every **{stored}** messages."

# -------- Blacklists --------

def blacklist_add(settings: SettingsStore, word: str) -> str:
    if not settings.add_blacklisted_word(word):
        return f"ℹ️ `{short(word, 60)}` is already blacklisted (or empty)."
    return f"🚫 Blacklisted `{short(word, 60)}`. Run /clean to purge what was already learned."

def blacklist_remove(settings: SettingsStore, word: str) -> str:
    if not settings.remove_blacklisted_word(word):
        return f"ℹ️ `{short(word, 60)}` was not blacklisted."
    return f"✅ Removed `{short(word, 60)}` from the blacklist."

def blacklist_list(settings: SettingsStore) -> str:
    words = settings.get_blacklisted_words()
    if not words:
        return "📭 The blacklist is empty."
    return "🚫 **Blacklist:** " + ", ".join(f"`{w}`" for w in words)

def blacklist_clear(settings: SettingsStore) -> str:
    removed = settings.clear_blacklist()
    if not removed:
        return "📭 The blacklist was already empty."
    return f"🧹 Cleared {removed} blacklist entries."

def ignore_user(settings: SettingsStore, name: str) -> str:
    if not settings.add_blacklisted_user(name):
        return f"ℹ️ {name} is already ignored."
    return f"🙈 I'll ignore messages from **{name}**."

def unignore_user(settings: SettingsStore, name: str) -> str:
    if not settings.remove_blacklisted_user(name):
        return f"ℹ️ {name} was not ignored."
    return f"👀 Listening to **{name}** again."

def ignored_list(settings: SettingsStore) -> str:
    users = settings.get_blacklisted_users()
    if not users:
        return "👀 I'm not ignoring anyone."
    return "🙈 **Ignored:** " + ", ".join(users)

# -------- Brain views --------

def brains_overview(manager: BrainManager) -> str:
    stats = manager.list_brains()
    if not stats:
        return "🧠 No brains yet."
    lines: List[str] = ["🧠 **Brains**"]
    for s in stats:
        lines.append(
            f"- `{s.channel}`: {s.total_entries} transitions, {s.unique_pairs} pairs, "
            f"{s.message_count} messages, {_fmt_bytes(s.db_size)}"
        )
    return "\n".join(lines)

def brain_stats(manager: BrainManager, channel: str) -> str:
    brain = manager.get_brain(channel)
    if brain is None:
        return "❌ Brain unavailable for this channel."
    s = brain.stats()
    until, interval = manager.get_channel_countdown(channel)
    last = manager.get_last_message(channel)
    parts = [
        f"📊 **Brain `{s.channel}`**",
        f"Transitions: {s.total_entries} ({s.unique_pairs} unique pairs)",
        f"Messages learned: {s.message_count}",
        f"Size: {_fmt_bytes(s.db_size)}",
        f"Next reply in {until} of {interval} messages",
    ]
    if last:
        parts.append(f"Last said: *{short(last, 200)}*")
    return "\n".join(parts)

def transitions(manager: BrainManager, channel: str, search: str = "", page: int = 1,
                page_size: int = DEFAULT_PAGE_SIZE) -> str:
    brain = manager.get_brain(channel)
    if brain is None:
        return "❌ Brain unavailable for this channel."
    page, page_size = normalize_paging(page, page_size)
    res = brain.get_transitions(search or "", page, page_size)
    if not res.transitions:
        return "🔎 No transitions found."
    pages = (res.total + page_size - 1) // page_size
    header = f"🔎 **Transitions** page {res.page}/{pages} ({res.total} total)"
    if search:
        header += f" matching `{short(search, 40)}`"
    rows = [f"`{t.word1}` `{t.word2}` → `{t.next_word}` ×{t.count}" for t in res.transitions]
    return "\n".join([header, *rows])

def countdown(manager: BrainManager, channel: str) -> str:
    until, interval = manager.get_channel_countdown(channel)
    return f"⏳ {until} more messages until my next reply (every {interval})."

# -------- Edits --------

def set_transition(manager: BrainManager, channel: str, word1: str, word2: str,
                   next_word: str, count: int) -> str:
    brain = manager.get_brain(channel)
    if brain is None:
        return "❌ Brain unavailable for this channel."
    try:
        changed = brain.update_transition_count(word1, word2, next_word, count)
    except BrainError as e:
        return f"❌ {e}"
    if not changed:
        return "ℹ️ No such transition."
    if count < 1:
        return "🗑️ Transition deleted."
    return f"✏️ Count set to {count}."

def delete_transition(manager: BrainManager, channel: str, word1: str, word2: str, next_word: str) -> str:
    brain = manager.get_brain(channel)
    if brain is None:
        return "❌ Brain unavailable for this channel."
    try:
        removed = brain.delete_transition(word1, word2, next_word)
    except BrainError as e:
        return f"❌ {e}"
    return "🗑️ Transition deleted." if removed else "ℹ️ No such transition."

# -------- Maintenance --------

def clean(manager: BrainManager, channel: str) -> str:
    result = manager.clean_brain(channel)
    if not result.total_removed:
        return "✨ Nothing to clean."
    detail = ", ".join(f"`{w.word}` ×{w.removed}" for w in result.words)
    return f"🧹 Removed {result.total_removed} transitions ({detail})."

def clean_all(manager: BrainManager) -> str:
    results = manager.clean_all_brains()
    if not results:
        return "✨ Nothing to clean in any brain."
    total = sum(r.total_removed for r in results)
    per = ", ".join(f"`{r.channel}` ×{r.total_removed}" for r in results)
    return f"🧹 Removed {total} transitions across {len(results)} brains ({per})."

def clean_non_ascii(manager: BrainManager) -> str:
    removed = manager.clean_non_ascii_all()
    return f"🧹 Removed {removed} loop/non-ASCII transitions." if removed else "✨ No loop or non-ASCII transitions."

def erase(manager: BrainManager, channel: str) -> str:
    try:
        manager.erase_brain(channel)
    except BrainError as e:
        return f"❌ {e}"
    return "🧽 Brain erased. Learning starts from scratch."

def forget(manager: BrainManager, settings: SettingsStore, channel: str) -> str:
    """Leave the channel for good: drop its settings and delete its brain file."""
    settings.remove_channel(channel)
    try:
        manager.delete_brain(channel)
    except BrainError as e:
        return f"⚠️ Channel removed, but: {e}"
    return "🗑️ Channel removed and its brain deleted."

def optimize(manager: BrainManager) -> str:
    done = manager.optimize_all()
    return f"⚙️ Optimized {len(done)} brains."

def database_stats(manager: BrainManager) -> str:
    s = manager.get_database_stats()
    return "\n".join([
        "🗄️ **Database**",
        f"Brains: {s.unique_channels}",
        f"Transitions: {s.total_transitions}",
        f"Size: {_fmt_bytes(s.total_size)}",
        f"Blacklisted words: {s.blacklisted_words}",
    ])
