from __future__ import annotations

from ttcbot.models.emoji_cache import GUILD, CacheData, Scope
from ttcbot.ui.emoji_cache import build_leaderboard_pages
from ttcbot.utils.leaderboard import Leaderboard, build_leaderboard, percentage, top_emojis_for


def _data() -> CacheData:
    data = CacheData()
    for user, messages, harold, other in [(1, 10, 5, 1), (2, 4, 4, 0), (3, 20, 0, 7)]:
        data.increase_messages(Scope.user(user), messages)
        data.increase_messages(GUILD, messages)
        if harold:
            data.increase_emoji(Scope.user(user), "harold", harold)
            data.increase_emoji(GUILD, "harold", harold)
        if other:
            data.increase_emoji(Scope.user(user), "other", other)
            data.increase_emoji(GUILD, "other", other)
    return data


def test_rankings():
    board = build_leaderboard(_data(), ["harold"], 2, min_messages=5)

    assert board.emoji_rows == [(1, 5), (2, 4)]
    assert board.message_rows == [(3, 20), (1, 10), (2, 4)]
    # User 2 is below the message threshold.
    assert [uid for uid, _ in board.percentage_rows] == [1, 3]
    assert board.global_messages == 34
    assert board.global_emojis == 9
    assert board.global_percentage == 26
    assert board.target_messages == 4
    assert board.target_emojis == 4
    assert board.target_percentage == 100


def test_multiple_tracked_emojis_add_up():
    board = build_leaderboard(_data(), ["harold", "other"], 3, min_messages=0)

    assert board.emoji_rows[0] == (3, 7)
    assert board.target_emojis == 7
    assert board.global_emojis == 17


def test_without_tracked_emojis():
    board = build_leaderboard(_data(), [], 1, min_messages=0)

    assert board.emoji_rows == []
    assert board.global_percentage == 0
    assert len(board.percentage_rows) == 3


def test_rank_of():
    rows = [(3, 20), (1, 10)]

    assert Leaderboard.rank_of(rows, 1) == 2
    assert Leaderboard.rank_of(rows, 9) is None


def test_percentage_handles_zero():
    assert percentage(3, 0) == 0
    assert percentage(1, 3) == 33


def test_top_emojis_for():
    assert top_emojis_for(_data(), 1) == [("harold", 5), ("other", 1)]
    assert top_emojis_for(_data(), 1, limit=1) == [("harold", 5)]
    assert top_emojis_for(_data(), 42) == []


def test_leaderboard_pages():
    board = build_leaderboard(_data(), ["harold"], 1, min_messages=5)

    pages = build_leaderboard_pages(board)

    assert len(pages) == 5
    assert pages[0].footer.text.startswith("Page 1/5")
    assert ":harold:" in pages[-1].footer.text
    assert "<@1>" in pages[0].fields[0].value
    assert "(#2)" in pages[-1].fields[1].value
