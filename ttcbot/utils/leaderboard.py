from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..models.emoji_cache import GUILD, CacheData, Scope

Row = Tuple[int, int]


def _ranked(counts: Dict[int, int]) -> List[Row]:
    # Highest first; ties broken by user id so pages are stable.
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))


def percentage(part: int, whole: int) -> int:
    return int(part / whole * 100) if whole else 0


@dataclass
class Leaderboard:
    tracked: List[str]
    target_id: int
    emoji_rows: List[Row] = field(default_factory=list)
    message_rows: List[Row] = field(default_factory=list)
    percentage_rows: List[Tuple[int, float]] = field(default_factory=list)
    global_messages: int = 0
    global_emojis: int = 0
    target_messages: int = 0
    target_emojis: int = 0

    @property
    def global_percentage(self) -> int:
        return percentage(self.global_emojis, self.global_messages)

    @property
    def target_percentage(self) -> int:
        return percentage(self.target_emojis, self.target_messages)

    @staticmethod
    def rank_of(rows: Sequence[Tuple[int, object]], user_id: int) -> Optional[int]:
        for index, (uid, _value) in enumerate(rows, start=1):
            if uid == user_id:
                return index
        return None


def build_leaderboard(
    data: CacheData,
    tracked: Iterable[str],
    target_id: int,
    *,
    min_messages: int,
) -> Leaderboard:
    tracked = list(tracked)
    board = Leaderboard(tracked=tracked, target_id=int(target_id))

    by_emoji = data.emoji_counts_by_emoji()
    emoji_totals: Dict[int, int] = {}
    for name in tracked:
        for scope, n in by_emoji.get(name, {}).items():
            if scope.is_guild:
                board.global_emojis += n
            else:
                emoji_totals[scope.user_id] = emoji_totals.get(scope.user_id, 0) + n

    message_totals = {
        scope.user_id: n for scope, n in data.user_message_counts.items() if not scope.is_guild
    }

    board.emoji_rows = [row for row in _ranked(emoji_totals) if row[1] > 0]
    board.message_rows = [row for row in _ranked(message_totals) if row[1] > 0]
    board.percentage_rows = sorted(
        (
            (uid, emoji_totals.get(uid, 0) / n)
            for uid, n in message_totals.items()
            if n >= max(min_messages, 1)
        ),
        key=lambda kv: (-kv[1], kv[0]),
    )

    board.global_messages = data.messages_for(GUILD)
    board.target_messages = data.messages_for(Scope.user(target_id))
    board.target_emojis = emoji_totals.get(int(target_id), 0)
    return board


def top_emojis_for(data: CacheData, user_id: int, limit: int = 15) -> List[Tuple[str, int]]:
    counts = data.emoji_counts_for(Scope.user(user_id))
    rows = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [row for row in rows if row[1] > 0][:limit]


__all__ = ["Leaderboard", "build_leaderboard", "percentage", "top_emojis_for"]
