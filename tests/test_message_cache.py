from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from ttcbot.models import message_cache
from ttcbot.models.message_cache import CachedMessage


def _row(message_id: int, guild_id: int = 1, content: str = "hi") -> CachedMessage:
    return CachedMessage(
        message_id=message_id,
        guild_id=guild_id,
        channel_id=10,
        author_id=5,
        author_bot=False,
        created_at=1_700_000_000 + message_id,
        content=content,
    )


def test_store_and_get():
    message_cache.store(_row(1, content="<:foo:1>"))

    assert message_cache.get(1, 1) == _row(1, content="<:foo:1>")
    assert message_cache.get(2, 1) is None


def test_store_keeps_only_newest_per_guild():
    for message_id in range(1, 6):
        message_cache.store(_row(message_id), keep=3)
    message_cache.store(_row(100, guild_id=2), keep=3)

    assert [message_cache.get(1, i) is not None for i in range(1, 6)] == [
        False,
        False,
        True,
        True,
        True,
    ]
    assert message_cache.get(2, 100) is not None


def test_update_content_and_delete():
    message_cache.store(_row(7))

    message_cache.update_content(1, 7, "edited")
    assert message_cache.get(1, 7).content == "edited"

    message_cache.delete(1, 7)
    assert message_cache.get(1, 7) is None


def test_from_message():
    message = SimpleNamespace(
        id=55,
        guild=SimpleNamespace(id=1),
        channel=SimpleNamespace(id=10),
        author=SimpleNamespace(id=5, bot=True),
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        content=None,
    )

    row = message_cache.from_message(message)

    assert row.author_bot is True
    assert row.content == ""
    assert row.created_at == int(datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp())


def test_from_message_rejects_dms():
    message = SimpleNamespace(id=1, guild=None)

    with pytest.raises(ValueError):
        message_cache.from_message(message)
