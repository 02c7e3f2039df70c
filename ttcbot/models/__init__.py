"""Modular database access layer for ttcbot."""

from . import emoji_cache
from . import message_cache
from . import settings

__all__ = [
    "emoji_cache",
    "message_cache",
    "settings",
]
