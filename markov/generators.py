"""
markov/generators.py
--------------------
Where a channel's replies come from.

- LocalGenerator:  walk the channel's own brain.
- GlobalGenerator: pooled walk over every loaded brain (BrainManager.generate_global).

BrainManager.generator_for() picks one per channel from its use_global_brain
setting and passes it to Brain.process_message_with_info(). Called directly,
a Brain with no generator walks itself.
"""

from __future__ import annotations
from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from markov.brain import Brain
    from markov.manager import BrainManager

class TokenGenerator(Protocol):
    is_global: bool

    def generate(self, max_tokens: int) -> str: ...

class LocalGenerator:
    is_global = False

    def __init__(self, brain: "Brain"):
        self.brain = brain

    def generate(self, max_tokens: int) -> str:
        return self.brain.generate(max_tokens)

class GlobalGenerator:
    is_global = True

    def __init__(self, manager: "BrainManager"):
        self.manager = manager

    def generate(self, max_tokens: int) -> str:
        return self.manager.generate_global(max_tokens)
