"""
core/config.py
--------------
Single source of truth for runtime configuration.
Reads environment variables, exposes a frozen `cfg` object.

Usage:
    from core.config import cfg
    if cfg.admin_channel_id: ...
"""

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
import os

from core.utils import DATA_DIR, env_int

@dataclass(frozen=True)
class Config:
    # Discord
    discord_token: str
    guild_id: int | None         # sync slash commands to one guild (dev)
    admin_channel_id: int | None  # the bot's own channel: never learns or speaks there

    # Storage
    data_dir: Path

    # Brains
    default_message_interval: int  # messages between replies when a channel has none

    # Logging
    log_level: str

def _opt_int(key: str) -> int | None:
    v = env_int(key, 0)
    return v or None

def _str(v: str | None, default: str) -> str:
    return v if v else default

def load_config() -> Config:
    return Config(
        discord_token            = _str(os.getenv("DISCORD_TOKEN"), ""),
        guild_id                 = _opt_int("GUILD_ID"),
        admin_channel_id         = _opt_int("ADMIN_CHANNEL_ID"),
        data_dir                 = Path(_str(os.getenv("BABBLE_DATA_DIR"), str(DATA_DIR))),
        default_message_interval = env_int("MESSAGE_INTERVAL", 35),
        log_level                = _str(os.getenv("LOG_LEVEL"), "INFO").upper(),
    )

cfg = load_config()
