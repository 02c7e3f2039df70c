from __future__ import annotations

from typing import List

from .. import config
from ..db import connect


def _customized(cur, guild_id: int) -> bool:
    row = cur.execute(
        "SELECT leaderboard_customized FROM guild_settings WHERE guild_id=?", (guild_id,)
    ).fetchone()
    return bool(row and row[0])


def _seed_defaults(cur, guild_id: int) -> None:
    # The first explicit change replaces the env defaults, so carry them over.
    if _customized(cur, guild_id):
        return
    cur.executemany(
        "INSERT OR IGNORE INTO leaderboard_emojis (guild_id, emoji_name) VALUES (?, ?)",
        [(guild_id, name) for name in config.LEADERBOARD_EMOJIS],
    )
    cur.execute(
        """
        INSERT INTO guild_settings (guild_id, leaderboard_customized)
        VALUES (?, 1)
        ON CONFLICT(guild_id) DO UPDATE SET leaderboard_customized=1
        """,
        (guild_id,),
    )


def get_tracked_emojis(guild_id: int) -> List[str]:
    """Emoji names the leaderboard focuses on; LEADERBOARD_EMOJIS until first changed."""
    with connect() as con:
        cur = con.cursor()
        if not _customized(cur, guild_id):
            return list(config.LEADERBOARD_EMOJIS)
        rows = cur.execute(
            "SELECT emoji_name FROM leaderboard_emojis WHERE guild_id=? ORDER BY emoji_name",
            (guild_id,),
        ).fetchall()
    return [str(r[0]) for r in rows]


def add_tracked_emoji(guild_id: int, emoji_name: str) -> bool:
    with connect() as con:
        cur = con.cursor()
        _seed_defaults(cur, guild_id)
        cur.execute(
            "INSERT OR IGNORE INTO leaderboard_emojis (guild_id, emoji_name) VALUES (?, ?)",
            (guild_id, emoji_name),
        )
        return cur.rowcount > 0


def remove_tracked_emoji(guild_id: int, emoji_name: str) -> bool:
    with connect() as con:
        cur = con.cursor()
        _seed_defaults(cur, guild_id)
        cur.execute(
            "DELETE FROM leaderboard_emojis WHERE guild_id=? AND emoji_name=?",
            (guild_id, emoji_name),
        )
        return cur.rowcount > 0


__all__ = ["add_tracked_emoji", "get_tracked_emojis", "remove_tracked_emoji"]
