from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Tuple

from ..db import connect

_GUILD_SCOPE = "guild"
_USER_SCOPE = "user"


@dataclass(frozen=True)
class Scope:
    """Who a counter belongs to: the whole guild, or a single member."""

    user_id: Optional[int] = None

    @classmethod
    def guild(cls) -> "Scope":
        return GUILD

    @classmethod
    def user(cls, user_id: int) -> "Scope":
        return cls(int(user_id))

    @property
    def is_guild(self) -> bool:
        return self.user_id is None

    def __repr__(self) -> str:
        return "Scope.guild()" if self.is_guild else f"Scope.user({self.user_id})"


GUILD = Scope()

EmojiKey = Tuple[Scope, str]


@dataclass(frozen=True)
class ChannelProgress:
    """Newest message of a channel already folded into the counters."""

    channel_id: int
    message_id: int
    timestamp: int


@dataclass
class CacheData:
    user_emoji_counts: Dict[EmojiKey, int] = field(default_factory=dict)
    user_message_counts: Dict[Scope, int] = field(default_factory=dict)

    # ---- mutation ----
    def increase_emoji(self, scope: Scope, emoji: str, count: int = 1) -> None:
        key = (scope, emoji)
        self.user_emoji_counts[key] = self.user_emoji_counts.get(key, 0) + count

    def increase_messages(self, scope: Scope, count: int = 1) -> None:
        self.user_message_counts[scope] = self.user_message_counts.get(scope, 0) + count

    def decrease_emoji(self, scope: Scope, emoji: str, count: int = 1) -> None:
        key = (scope, emoji)
        if key in self.user_emoji_counts:
            self.user_emoji_counts[key] = max(self.user_emoji_counts[key] - count, 0)

    def decrease_messages(self, scope: Scope, count: int = 1) -> None:
        if scope in self.user_message_counts:
            self.user_message_counts[scope] = max(self.user_message_counts[scope] - count, 0)

    def merge(self, other: "CacheData") -> "CacheData":
        for (scope, emoji), count in other.user_emoji_counts.items():
            self.increase_emoji(scope, emoji, count)
        for scope, count in other.user_message_counts.items():
            self.increase_messages(scope, count)
        return self

    def filter(self, member_ids: Iterable[int], emoji_names: Iterable[str]) -> None:
        """Drop members who left and emojis the guild no longer has.

        Guild totals are kept as they are; they still include what departed
        members once sent.
        """
        members = set(member_ids)
        emojis = set(emoji_names)

        def _live(scope: Scope) -> bool:
            return scope.is_guild or scope.user_id in members

        self.user_message_counts = {
            scope: n for scope, n in self.user_message_counts.items() if _live(scope)
        }
        self.user_emoji_counts = {
            (scope, emoji): n
            for (scope, emoji), n in self.user_emoji_counts.items()
            if _live(scope) and emoji in emojis
        }

    # ---- views ----
    def copy(self) -> "CacheData":
        return CacheData(dict(self.user_emoji_counts), dict(self.user_message_counts))

    def messages_for(self, scope: Scope) -> int:
        return self.user_message_counts.get(scope, 0)

    def emoji_counts_for(self, scope: Scope) -> Dict[str, int]:
        return {
            emoji: n for (owner, emoji), n in self.user_emoji_counts.items() if owner == scope
        }

    def emoji_counts_by_emoji(self) -> Dict[str, Dict[Scope, int]]:
        out: Dict[str, Dict[Scope, int]] = {}
        for (scope, emoji), n in self.user_emoji_counts.items():
            out.setdefault(emoji, {})[scope] = n
        return out


# ----------------------------
# Row mapping
# ----------------------------
def _scope_row(scope: Scope) -> Tuple[str, int]:
    return (_GUILD_SCOPE, 0) if scope.is_guild else (_USER_SCOPE, int(scope.user_id))


def _scope_from_row(kind: str, user_id: int) -> Scope:
    return GUILD if kind == _GUILD_SCOPE else Scope.user(user_id)


# ----------------------------
# Reads
# ----------------------------
def load_data(guild_id: int) -> CacheData:
    data = CacheData()
    with connect() as con:
        cur = con.cursor()
        for kind, user_id, emoji, count in cur.execute(
            """
            SELECT scope, user_id, emoji_name, emoji_count
            FROM emoji_cache_emojis WHERE guild_id=?
            """,
            (guild_id,),
        ):
            data.user_emoji_counts[(_scope_from_row(kind, user_id), emoji)] = int(count)
        for kind, user_id, count in cur.execute(
            """
            SELECT scope, user_id, num_messages
            FROM emoji_cache_messages WHERE guild_id=?
            """,
            (guild_id,),
        ):
            data.user_message_counts[_scope_from_row(kind, user_id)] = int(count)
    return data


def load_progress(guild_id: int) -> Dict[int, ChannelProgress]:
    with connect() as con:
        rows = con.execute(
            """
            SELECT channel_id, message_id, timestamp_unix
            FROM emoji_cache_channels WHERE guild_id=?
            """,
            (guild_id,),
        ).fetchall()
    return {int(cid): ChannelProgress(int(cid), int(mid), int(ts)) for cid, mid, ts in rows}


def get_progress(guild_id: int, channel_id: int) -> Optional[ChannelProgress]:
    with connect() as con:
        row = con.execute(
            """
            SELECT message_id, timestamp_unix
            FROM emoji_cache_channels WHERE guild_id=? AND channel_id=?
            """,
            (guild_id, channel_id),
        ).fetchone()
    return ChannelProgress(int(channel_id), int(row[0]), int(row[1])) if row else None


# ----------------------------
# Writes
# ----------------------------
def replace_all(
    guild_id: int, data: CacheData, progress: Iterable[ChannelProgress]
) -> None:
    """Swap the guild's persisted cache for ``data`` in a single transaction."""
    emoji_rows = [
        (guild_id, *_scope_row(scope), emoji, count)
        for (scope, emoji), count in data.user_emoji_counts.items()
    ]
    message_rows = [
        (guild_id, *_scope_row(scope), count)
        for scope, count in data.user_message_counts.items()
    ]
    channel_rows = [
        (guild_id, cp.channel_id, cp.message_id, cp.timestamp) for cp in progress
    ]

    with connect() as con:
        cur = con.cursor()
        cur.execute("DELETE FROM emoji_cache_emojis WHERE guild_id=?", (guild_id,))
        cur.execute("DELETE FROM emoji_cache_messages WHERE guild_id=?", (guild_id,))
        cur.execute("DELETE FROM emoji_cache_channels WHERE guild_id=?", (guild_id,))
        cur.executemany(
            """
            INSERT INTO emoji_cache_emojis (guild_id, scope, user_id, emoji_name, emoji_count)
            VALUES (?, ?, ?, ?, ?)
            """,
            emoji_rows,
        )
        cur.executemany(
            """
            INSERT INTO emoji_cache_messages (guild_id, scope, user_id, num_messages)
            VALUES (?, ?, ?, ?)
            """,
            message_rows,
        )
        cur.executemany(
            """
            INSERT INTO emoji_cache_channels (guild_id, channel_id, message_id, timestamp_unix)
            VALUES (?, ?, ?, ?)
            """,
            channel_rows,
        )


def _adjust_emoji(cur, guild_id: int, scope: Scope, emoji: str, delta: int) -> None:
    kind, user_id = _scope_row(scope)
    if delta > 0:
        cur.execute(
            """
            INSERT INTO emoji_cache_emojis (guild_id, scope, user_id, emoji_name, emoji_count)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(guild_id, scope, user_id, emoji_name)
            DO UPDATE SET emoji_count = emoji_count + excluded.emoji_count
            """,
            (guild_id, kind, user_id, emoji, delta),
        )
    elif delta < 0:
        cur.execute(
            """
            UPDATE emoji_cache_emojis SET emoji_count = MAX(emoji_count - ?, 0)
            WHERE guild_id=? AND scope=? AND user_id=? AND emoji_name=?
            """,
            (-delta, guild_id, kind, user_id, emoji),
        )


def _adjust_messages(cur, guild_id: int, scope: Scope, delta: int) -> None:
    kind, user_id = _scope_row(scope)
    if delta > 0:
        cur.execute(
            """
            INSERT INTO emoji_cache_messages (guild_id, scope, user_id, num_messages)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(guild_id, scope, user_id)
            DO UPDATE SET num_messages = num_messages + excluded.num_messages
            """,
            (guild_id, kind, user_id, delta),
        )
    elif delta < 0:
        cur.execute(
            """
            UPDATE emoji_cache_messages SET num_messages = MAX(num_messages - ?, 0)
            WHERE guild_id=? AND scope=? AND user_id=?
            """,
            (-delta, guild_id, kind, user_id),
        )


def apply_adjustment(
    guild_id: int,
    channel_id: int,
    message_id: int,
    emoji_deltas: Mapping[EmojiKey, int],
    message_deltas: Mapping[Scope, int],
) -> bool:
    """
    Apply counter deltas for one already-counted message.

    Returns False (and writes nothing) when the channel has no checkpoint or
    the message is newer than it; the next refresh picks such messages up.
    """
    with connect() as con:
        cur = con.cursor()
        row = cur.execute(
            "SELECT message_id FROM emoji_cache_channels WHERE guild_id=? AND channel_id=?",
            (guild_id, channel_id),
        ).fetchone()
        if not row or int(message_id) > int(row[0]):
            return False
        for (scope, emoji), delta in emoji_deltas.items():
            _adjust_emoji(cur, guild_id, scope, emoji, delta)
        for scope, delta in message_deltas.items():
            _adjust_messages(cur, guild_id, scope, delta)
    return True


__all__ = [
    "CacheData",
    "ChannelProgress",
    "GUILD",
    "Scope",
    "apply_adjustment",
    "get_progress",
    "load_data",
    "load_progress",
    "replace_all",
]
