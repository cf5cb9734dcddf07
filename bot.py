"""
bot.py
-------
Discord client entrypoint for Babble.

What this file does:
- Initializes the Discord client (message-content intent) and slash commands.
- Owns the two shared objects: SettingsStore and BrainManager, handed to the
  client at construction and reached from handlers via `interaction.client`.
- Passive pipeline: every message in an enabled channel is learned from and,
  every N messages, answered with a generated line (brain work runs in a
  worker thread, never on the event loop).
- Registers ephemeral admin slash commands (handlers live in commands/brains.py).

Notes:
- For fast dev, set GUILD_ID in .env to sync commands instantly to one server.
- ADMIN_CHANNEL_ID is the bot's own channel: it never learns from or talks there.
- Make sure the bot invite includes scope "applications.commands".
"""


from dotenv import load_dotenv
load_dotenv()

import asyncio
import logging
from typing import Callable, Literal

import discord
from discord import app_commands
from discord.ext import tasks

# --- Babble modules ---
from commands import brains as cmd
from commands.help import HELP_TEXT
from core.config import cfg
from core.settings import SettingsStore
from core.utils import chunk_by_len, ensure_dirs
from markov.manager import BrainManager

log = logging.getLogger("babble.bot")

# -------------------------
# Bootstrap & Intents
# -------------------------

GUILD = discord.Object(id=cfg.guild_id) if cfg.guild_id else None
REPLY_MAX_CHARS = 1900
SETTINGS_FLUSH_SECONDS = 60

intents = discord.Intents.default()
intents.message_content = True   # read messages to learn from them

class BabbleClient(discord.Client):
    """Discord client with an app commands tree and the shared brain registry."""
    def __init__(self, *, intents: discord.Intents, settings: SettingsStore, brains: BrainManager):
        super().__init__(intents=intents)
        self.tree = app_commands.CommandTree(self)
        self.settings = settings
        self.brains = brains

    async def close(self) -> None:
        await super().close()
        await asyncio.to_thread(self.settings.flush)
        await asyncio.to_thread(self.brains.close)

ensure_dirs(cfg.data_dir)
settings = SettingsStore(cfg.data_dir / "settings.json", default_message_interval=cfg.default_message_interval)
client = BabbleClient(intents=intents, settings=settings, brains=BrainManager(settings, cfg.data_dir))

# -------------------------
# Helpers
# -------------------------

def _channel_key(channel: discord.abc.Messageable) -> str:
    """Brains and settings are keyed by the Discord channel id."""
    return str(getattr(channel, "id", ""))

def _is_admin(interaction: discord.Interaction) -> bool:
    perms = getattr(interaction.user, "guild_permissions", None)
    return bool(perms and perms.manage_guild)

async def _reply(interaction: discord.Interaction, text: str) -> None:
    """Ephemeral reply, chunked under the Discord message cap."""
    chunks = list(chunk_by_len(text, REPLY_MAX_CHARS)) or ["(empty)"]
    if not interaction.response.is_done():
        await interaction.response.send_message(chunks[0], ephemeral=True)
        chunks = chunks[1:]
    for part in chunks:
        await interaction.followup.send(part, ephemeral=True)

async def _run(interaction: discord.Interaction, fn: Callable[..., str], *args, admin: bool = False) -> None:
    """
    Defer, run a command handler off the event loop, reply with its text.
    Admin-only handlers require the Manage Server permission.
    """
    if admin and not _is_admin(interaction):
        await interaction.response.send_message("🔒 You need Manage Server for that.", ephemeral=True)
        return
    await interaction.response.defer(ephemeral=True)
    try:
        text = await asyncio.to_thread(fn, *args)
    except Exception:
        log.exception("Command %s failed", getattr(fn, "__name__", fn))
        text = "❌ Something went wrong. Check the bot logs."
    await _reply(interaction, text)

# -------------------------
# Background Tasks
# -------------------------

@tasks.loop(seconds=SETTINGS_FLUSH_SECONDS)
async def flush_settings():
    """Persist message counts gathered since the last settings write."""
    if await asyncio.to_thread(client.settings.flush):
        log.debug("Settings flushed")

# -------------------------
# Lifecycle
# -------------------------

@client.event
async def on_ready():
    """Sync slash commands."""
    try:
        if GUILD:
            # Fast: guild-only sync during development
            client.tree.copy_global_to(guild=GUILD)
            synced = await client.tree.sync(guild=GUILD)
            log.info("Slash commands synced to guild %s: %d", GUILD.id, len(synced))
        else:
            # Global sync can take up to ~1 hour
            synced = await client.tree.sync()
            log.info("Global slash commands synced: %d (may take ~1 hour to appear)", len(synced))
    except discord.DiscordException as e:
        log.error("Slash command sync error: %s", e)

    if not flush_settings.is_running():
        flush_settings.start()

    log.info("%s is online with %d known brains", client.user, len(client.brains.known_channels()))

# -------------------------
# Slash Commands (ephemeral)
# -------------------------

@client.tree.command(name="help", description="Show available Babble commands")
async def help_cmd(interaction: discord.Interaction):
    await interaction.response.send_message(HELP_TEXT, ephemeral=True)

@client.tree.command(name="enable", description="(Admin) Learn from and talk in this channel")
async def enable_cmd(interaction: discord.Interaction):
    await _run(interaction, cmd.enable_channel, client.settings, _channel_key(interaction.channel), admin=True)

@client.tree.command(name="disable", description="(Admin) Stop learning and talking here")
async def disable_cmd(interaction: discord.Interaction):
    await _run(interaction, cmd.disable_channel, client.settings, _channel_key(interaction.channel), admin=True)

@client.tree.command(name="forget", description="(Admin) Stop and delete this channel's brain")
async def forget_cmd(interaction: discord.Interaction):
    await _run(interaction, cmd.forget, client.brains, client.settings, _channel_key(interaction.channel), admin=True)

@client.tree.command(name="interval", description="(Admin) Reply every N messages in this channel")
@app_commands.describe(messages="1-100, or 0 to use the global default")
async def interval_cmd(interaction: discord.Interaction, messages: app_commands.Range[int, 0, 100]):
    await _run(interaction, cmd.set_interval, client.settings, _channel_key(interaction.channel), messages, admin=True)

@client.tree.command(name="globalinterval", description="(Admin) Default reply interval for every channel")
@app_commands.describe(messages="1-100")
async def globalinterval_cmd(interaction: discord.Interaction, messages: app_commands.Range[int, 1, 100]):
    await _run(interaction, cmd.set_global_interval, client.settings, messages, admin=True)

@client.tree.command(name="globalbrain", description="(Admin) Use every channel's brain for replies here")
async def globalbrain_cmd(interaction: discord.Interaction, enabled: bool):
    await _run(interaction, cmd.set_global_brain, client.settings, _channel_key(interaction.channel), enabled, admin=True)

@client.tree.command(name="blacklist", description="(Admin) Manage blacklisted words and phrases")
@app_commands.describe(action="add, remove, list or clear", word="Word or phrase")
async def blacklist_cmd(interaction: discord.Interaction, action: Literal["add", "remove", "list", "clear"], word: str | None = None):
    if action == "list":
        await _run(interaction, cmd.blacklist_list, client.settings, admin=True)
    elif action == "clear":
        await _run(interaction, cmd.blacklist_clear, client.settings, admin=True)
    elif not word:
        await interaction.response.send_message("❌ Give me a word or phrase.", ephemeral=True)
    elif action == "add":
        await _run(interaction, cmd.blacklist_add, client.settings, word, admin=True)
    else:
        await _run(interaction, cmd.blacklist_remove, client.settings, word, admin=True)

@client.tree.command(name="ignored", description="(Admin) List ignored users")
async def ignored_cmd(interaction: discord.Interaction):
    await _run(interaction, cmd.ignored_list, client.settings, admin=True)

@client.tree.command(name="ignore", description="(Admin) Ignore a user's messages")
async def ignore_cmd(interaction: discord.Interaction, user: discord.Member):
    await _run(interaction, cmd.ignore_user, client.settings, user.name, admin=True)

@client.tree.command(name="unignore", description="(Admin) Stop ignoring a user")
async def unignore_cmd(interaction: discord.Interaction, user: discord.Member):
    await _run(interaction, cmd.unignore_user, client.settings, user.name, admin=True)

@client.tree.command(name="brains", description="List all brains")
async def brains_cmd(interaction: discord.Interaction):
    await _run(interaction, cmd.brains_overview, client.brains)

@client.tree.command(name="brainstats", description="Stats for this channel's brain")
async def brainstats_cmd(interaction: discord.Interaction):
    await _run(interaction, cmd.brain_stats, client.brains, _channel_key(interaction.channel))

@client.tree.command(name="countdown", description="Messages until my next reply here")
async def countdown_cmd(interaction: discord.Interaction):
    await _run(interaction, cmd.countdown, client.brains, _channel_key(interaction.channel))

@client.tree.command(name="transitions", description="Browse this channel's learned transitions")
@app_commands.describe(search="Substring to look for in any of the three words", page="Page number")
async def transitions_cmd(interaction: discord.Interaction, search: str | None = None, page: int = 1):
    await _run(interaction, cmd.transitions, client.brains, _channel_key(interaction.channel), search or "", page, 20)

@client.tree.command(name="settransition", description="(Admin) Set a transition's count (0 deletes it)")
async def settransition_cmd(interaction: discord.Interaction, word1: str, word2: str, next_word: str, count: int):
    await _run(interaction, cmd.set_transition, client.brains, _channel_key(interaction.channel),
               word1, word2, next_word, count, admin=True)

@client.tree.command(name="deltransition", description="(Admin) Delete one transition")
async def deltransition_cmd(interaction: discord.Interaction, word1: str, word2: str, next_word: str):
    await _run(interaction, cmd.delete_transition, client.brains, _channel_key(interaction.channel),
               word1, word2, next_word, admin=True)

@client.tree.command(name="clean", description="(Admin) Purge blacklisted words from this channel's brain")
async def clean_cmd(interaction: discord.Interaction):
    await _run(interaction, cmd.clean, client.brains, _channel_key(interaction.channel), admin=True)

@client.tree.command(name="cleanall", description="(Admin) Purge blacklisted words from every brain")
async def cleanall_cmd(interaction: discord.Interaction):
    await _run(interaction, cmd.clean_all, client.brains, admin=True)

@client.tree.command(name="cleanascii", description="(Admin) Purge loop and non-ASCII transitions everywhere")
async def cleanascii_cmd(interaction: discord.Interaction):
    await _run(interaction, cmd.clean_non_ascii, client.brains, admin=True)

@client.tree.command(name="erase", description="(Admin) Wipe this channel's brain")
async def erase_cmd(interaction: discord.Interaction):
    await _run(interaction, cmd.erase, client.brains, _channel_key(interaction.channel), admin=True)

@client.tree.command(name="optimize", description="(Admin) Compact every brain file")
async def optimize_cmd(interaction: discord.Interaction):
    await _run(interaction, cmd.optimize, client.brains, admin=True)

@client.tree.command(name="dbstats", description="Database totals")
async def dbstats_cmd(interaction: discord.Interaction):
    await _run(interaction, cmd.database_stats, client.brains)

# -------------------------
# Passive Learning & Replies
# -------------------------

@client.event
async def on_message(message: discord.Message):
    """
    Passive pipeline for each message in an enabled channel:
    1) Skip bots, DMs and the admin channel.
    2) Learn + maybe generate in a worker thread (BrainManager.process_message).
    3) Log the structured generation result when a reply cycle triggered.
    4) Send the reply, if any, with mentions disabled.
    """
    if message.author.bot or message.guild is None or client.user is None:
        return
    if cfg.admin_channel_id and message.channel.id == cfg.admin_channel_id:
        return

    key = _channel_key(message.channel)
    if not client.settings.is_channel_enabled(key):
        return

    result = await asyncio.to_thread(
        client.brains.process_message,
        key,
        message.content or "",
        message.author.name,
        client.user.name,
    )

    if result.triggered:
        log.info("[%s] generation %s", key, result.as_dict())
    if not result.response:
        return

    try:
        await message.channel.send(result.response, allowed_mentions=discord.AllowedMentions.none())
    except discord.HTTPException as e:
        log.warning("[%s] could not send reply: %s", key, e)

# -------------------------
# Run
# -------------------------

if __name__ == "__main__":
    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not cfg.discord_token:
        log.error("DISCORD_TOKEN missing in .env")
        raise SystemExit(1)

    client.run(cfg.discord_token, log_handler=None)
