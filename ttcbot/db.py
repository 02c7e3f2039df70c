from __future__ import annotations

import logging
import os
import sqlite3

from . import config

log = logging.getLogger("ttcbot.db")


# ----------------------------
# Path resolution
# ----------------------------
def _resolved_db_path() -> str:
    env = os.environ.get("BOT_DB_PATH")
    if env:
        return os.path.abspath(env)
    return os.path.abspath(config.BOT_DB_PATH)


# ----------------------------
# Public: connect() / ensure_db()
# ----------------------------
def connect() -> sqlite3.Connection:
    con = sqlite3.connect(_resolved_db_path(), timeout=5)
    con.execute("PRAGMA foreign_keys=ON")
    con.execute("PRAGMA journal_mode=WAL")
    con.execute("PRAGMA synchronous=NORMAL")
    con.execute("PRAGMA busy_timeout=3000")
    return con


def ensure_db() -> None:
    """
    Idempotently create the tables used by the bot.

    Counter rows carry an explicit ``scope`` column ('guild' or 'user');
    guild-wide totals store ``user_id = 0`` but are never read as a user.
    """
    path = _resolved_db_path()
    os.makedirs(os.path.dirname(path), exist_ok=True)

    with sqlite3.connect(path, timeout=5) as con:
        cur = con.cursor()
        cur.execute("PRAGMA journal_mode=WAL")
        journal = cur.execute("PRAGMA journal_mode").fetchone()[0]
        cur.execute("PRAGMA synchronous=NORMAL")
        cur.execute("PRAGMA busy_timeout=3000")

        try:
            size = os.stat(path).st_size
        except FileNotFoundError:
            size = 0
        log.info("db.open path=%s size=%d journal=%s", path, size, journal)

        # ========== emoji cache ==========
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS emoji_cache_emojis (
                guild_id    INTEGER NOT NULL,
                scope       TEXT    NOT NULL CHECK (scope IN ('guild', 'user')),
                user_id     INTEGER NOT NULL DEFAULT 0,
                emoji_name  TEXT    NOT NULL,
                emoji_count INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (guild_id, scope, user_id, emoji_name)
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS emoji_cache_messages (
                guild_id     INTEGER NOT NULL,
                scope        TEXT    NOT NULL CHECK (scope IN ('guild', 'user')),
                user_id      INTEGER NOT NULL DEFAULT 0,
                num_messages INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (guild_id, scope, user_id)
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS emoji_cache_channels (
                guild_id       INTEGER NOT NULL,
                channel_id     INTEGER NOT NULL,
                message_id     INTEGER NOT NULL,
                timestamp_unix INTEGER NOT NULL,
                PRIMARY KEY (guild_id, channel_id)
            )
            """
        )

        # ========== message_cache ==========
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS message_cache (
                message_id  INTEGER PRIMARY KEY,
                guild_id    INTEGER NOT NULL,
                channel_id  INTEGER NOT NULL,
                author_id   INTEGER NOT NULL,
                author_bot  INTEGER NOT NULL DEFAULT 0,
                created_at  INTEGER NOT NULL,
                content     TEXT
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_message_cache_guild ON message_cache (guild_id, message_id DESC)"
        )

        # ========== guild_settings ==========
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS guild_settings (
                guild_id                INTEGER PRIMARY KEY,
                leaderboard_customized  INTEGER NOT NULL DEFAULT 0
            )
            """
        )

        # ========== leaderboard_emojis ==========
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS leaderboard_emojis (
                guild_id   INTEGER NOT NULL,
                emoji_name TEXT    NOT NULL,
                PRIMARY KEY (guild_id, emoji_name)
            )
            """
        )

        con.commit()
