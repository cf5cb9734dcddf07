"""
markov/filters.py
-----------------
Text admission filter for the Markov brains.

Pure, stateless predicates deciding:
- whether an incoming chat line may be learned from (learn-eligibility)
- whether a generated line may be sent back to chat (send-eligibility)

Also holds the Unicode punctuation normaliser applied before learning.
Nothing in here touches storage or configuration; blacklists are passed in.
"""

from __future__ import annotations
from typing import Iterable, List, Optional

COMMAND_PREFIX = "!"

# Case-insensitive substrings that mark a message as carrying a link.
# Permissive on purpose; new TLDs slip through.
LINK_PATTERNS = (
    "http://",
    "https://",
    "www.",
    ".com",
    ".org",
    ".net",
    ".tv",
    ".gg",
    ".io",
    ".co",
    ".me",
    ".be",
    ".ru",
    ".xyz",
    ".info",
    ".link",
    ".click",
    ".site",
    ".online",
    ".top",
    ".ly",
    ".gl",
    ".to",
    ".live",
    ".stream",
    ".uk",
    ".de",
    ".fr",
    ".shop",
    ".store",
)

# Inclusive code point ranges treated as emoji / pictographic symbols.
EMOJI_RANGES = (
    (0x1F300, 0x1F9FF),  # misc symbols & pictographs, emoticons, supplemental
    (0x2600, 0x26FF),    # misc symbols
    (0x2700, 0x27BF),    # dingbats
    (0x1F600, 0x1F64F),  # emoticons
    (0x1F680, 0x1F6FF),  # transport & map
    (0x1F1E0, 0x1F1FF),  # regional indicator flags
    (0x231A, 0x231B),    # watch, hourglass
    (0x23E9, 0x23F3),    # media controls
    (0x25AA, 0x25AB),    # small squares
    (0x25B6, 0x25C0),    # play buttons
    (0x25FB, 0x25FE),    # medium squares
    (0x2614, 0x2615),    # umbrella, hot beverage
    (0x2648, 0x2653),    # zodiac
    (0x267F, 0x267F),    # wheelchair
    (0x2934, 0x2935),    # curved arrows
    (0x2B05, 0x2B07),    # arrows
    (0x2B1B, 0x2B1C),    # large squares
    (0x2B50, 0x2B50),    # star
    (0x2B55, 0x2B55),    # circle
    (0x3030, 0x3030),    # wavy dash
    (0x303D, 0x303D),    # part alternation mark
    (0x3297, 0x3299),    # circled ideographs
    (0xFE0F, 0xFE0F),    # variation selector-16
    (0x200D, 0x200D),    # zero width joiner (compound emoji)
)

_PUNCTUATION_MAP = str.maketrans({
    # single quotes / primes
    "\u2018": "'",
    "\u2019": "'",
    "\u201A": "'",
    "\u201B": "'",
    "\u2032": "'",
    "\u2035": "'",
    # double quotes / primes
    "\u201C": '"',
    "\u201D": '"',
    "\u201E": '"',
    "\u201F": '"',
    "\u2033": '"',
    "\u2036": '"',
    # hyphens and dashes
    "\u2010": "-",
    "\u2011": "-",
    "\u2012": "-",
    "\u2013": "-",
    "\u2014": "-",
    "\u2015": "-",
    # ellipsis
    "\u2026": "...",
    # spaces
    "\u00A0": " ",
    "\u2002": " ",
    "\u2003": " ",
    "\u2009": " ",
})

# -------- Character classes --------

def is_emoji(ch: str) -> bool:
    """True if the single character `ch` falls in one of EMOJI_RANGES."""
    cp = ord(ch)
    for lo, hi in EMOJI_RANGES:
        if lo <= cp <= hi:
            return True
    return False

def is_mostly_english(text: str) -> bool:
    """Every character is ASCII (<= 127) or an emoji."""
    return all(ord(ch) <= 127 or is_emoji(ch) for ch in text)

def contains_non_ascii(token: str) -> bool:
    """
    True if `token` has a character outside printable ASCII that is not an emoji.
    Used by the maintenance sweep, which is stricter than the learn gate.
    """
    for ch in token:
        if 32 <= ord(ch) <= 126:
            continue
        if not is_emoji(ch):
            return True
    return False

def non_ascii_tokens(*tokens: str) -> List[str]:
    return [t for t in tokens if contains_non_ascii(t)]

def is_self_loop(w1: str, w2: str, next_word: str) -> bool:
    return w1 == w2 == next_word

# -------- Message predicates --------

def is_command(text: str) -> bool:
    return text.startswith(COMMAND_PREFIX)

def contains_link(text: str) -> bool:
    lower = text.lower()
    return any(p in lower for p in LINK_PATTERNS)

def contains_blacklisted_content(text: str, blacklist: Optional[Iterable[str]]) -> bool:
    """
    Entries with a space are phrases: case-insensitive substring of the whole text.
    Entries without a space are words: must equal one of the whitespace tokens
    (case-insensitive), so "bad" does not hit "badger".
    """
    if not blacklist:
        return False
    lower = text.lower()
    tokens = set(lower.split())
    for entry in blacklist:
        entry = (entry or "").lower()
        if not entry:
            continue
        if " " in entry:
            if entry in lower:
                return True
        elif entry in tokens:
            return True
    return False

def normalize_unicode_punctuation(text: str) -> str:
    """Smart quotes, dashes, ellipses and odd spaces → ASCII equivalents."""
    return text.translate(_PUNCTUATION_MAP)

# -------- Eligibility gates --------

def is_learnable(text: str, blacklist: Optional[Iterable[str]] = None) -> bool:
    return (
        not is_command(text)
        and not contains_link(text)
        and is_mostly_english(text)
        and not contains_blacklisted_content(text, blacklist)
    )

def is_sendable(text: str, blacklist: Optional[Iterable[str]] = None) -> bool:
    # Generated text reuses learned vocabulary, only the blacklist can have moved.
    return not contains_blacklisted_content(text, blacklist)
