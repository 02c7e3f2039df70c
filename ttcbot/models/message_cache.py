from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .. import config
from ..db import connect

if TYPE_CHECKING:
    import discord


@dataclass(slots=True)
class CachedMessage:
    message_id: int
    guild_id: int
    channel_id: int
    author_id: int
    author_bot: bool
    created_at: int
    content: str

    def as_db_tuple(self) -> tuple[int, int, int, int, int, int, str]:
        return (
            self.message_id,
            self.guild_id,
            self.channel_id,
            self.author_id,
            1 if self.author_bot else 0,
            self.created_at,
            self.content,
        )


def from_message(message: "discord.Message") -> CachedMessage:
    if message.guild is None:
        raise ValueError("Message has no guild; refusing to cache DMs")
    return CachedMessage(
        message_id=int(message.id),
        guild_id=int(message.guild.id),
        channel_id=int(message.channel.id),
        author_id=int(message.author.id),
        author_bot=bool(message.author.bot),
        created_at=int(message.created_at.timestamp()),
        content=message.content or "",
    )


def store(message: CachedMessage, *, keep: int | None = None) -> None:
    """Insert a message and trim the guild's cache to the newest ``keep`` rows."""
    keep = config.MESSAGE_CACHE_SIZE if keep is None else keep
    with connect() as con:
        cur = con.cursor()
        cur.execute(
            """
            INSERT INTO message_cache
                (message_id, guild_id, channel_id, author_id, author_bot, created_at, content)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(message_id) DO UPDATE SET content=excluded.content
            """,
            message.as_db_tuple(),
        )
        cur.execute(
            """
            DELETE FROM message_cache
            WHERE guild_id=? AND message_id NOT IN (
                SELECT message_id FROM message_cache
                WHERE guild_id=? ORDER BY message_id DESC LIMIT ?
            )
            """,
            (message.guild_id, message.guild_id, keep),
        )


def get(guild_id: int, message_id: int) -> Optional[CachedMessage]:
    with connect() as con:
        row = con.execute(
            """
            SELECT message_id, guild_id, channel_id, author_id, author_bot, created_at, content
            FROM message_cache WHERE guild_id=? AND message_id=?
            """,
            (guild_id, message_id),
        ).fetchone()
    if not row:
        return None
    mid, gid, cid, aid, bot, created, content = row
    return CachedMessage(int(mid), int(gid), int(cid), int(aid), bool(bot), int(created), content or "")


def update_content(guild_id: int, message_id: int, content: str) -> None:
    with connect() as con:
        con.execute(
            "UPDATE message_cache SET content=? WHERE guild_id=? AND message_id=?",
            (content, guild_id, message_id),
        )


def delete(guild_id: int, message_id: int) -> None:
    with connect() as con:
        con.execute(
            "DELETE FROM message_cache WHERE guild_id=? AND message_id=?",
            (guild_id, message_id),
        )


__all__ = ["CachedMessage", "delete", "from_message", "get", "store", "update_content"]
