from __future__ import annotations

import logging
import os
from typing import List

from dateutil import tz

log = logging.getLogger(__name__)


def _env_int(name: str, default: int, *, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        log.warning("Ignoring invalid integer in %s: %r", name, raw)
        return default
    if value < minimum:
        log.warning("%s=%d is below %d; using %d", name, value, minimum, default)
        return default
    return value


def _env_names(name: str) -> List[str]:
    """CSV of emoji names; tolerates ':name:' spelling and blanks."""
    names: List[str] = []
    for tok in (os.getenv(name) or "").split(","):
        tok = tok.strip().strip(":")
        if tok and tok not in names:
            names.append(tok)
    return names


DATA_DIR = os.getenv("DATA_DIR", "./data")

TZ_NAME = os.getenv("TZ", "UTC")
TZ = tz.gettz(TZ_NAME) or tz.UTC

BOT_DB_PATH = os.getenv("BOT_DB_PATH", os.path.join(DATA_DIR, "bot.sqlite3"))

# Upper bound on concurrent per-channel history scans during a refresh.
EMOJI_CACHE_MAX_CONCURRENCY = _env_int("EMOJI_CACHE_MAX_CONCURRENCY", 8)

# Recent messages kept per guild so deletes/edits can be attributed.
MESSAGE_CACHE_SIZE = _env_int("MESSAGE_CACHE_SIZE", 500)

LEADERBOARD_MIN_MESSAGES = _env_int("LEADERBOARD_MIN_MESSAGES", 500, minimum=0)
LEADERBOARD_EMOJIS = _env_names("LEADERBOARD_EMOJIS")
LEADERBOARD_PAGE_SIZE = 10
