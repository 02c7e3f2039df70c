from __future__ import annotations

import asyncio
from typing import Dict, Iterable, List, Optional

import pytest

from ttcbot import db
from ttcbot.utils.emoji_cache import ScannedMessage


class FakeGuildSource:
    """In-memory guild: channels hold messages, served newest first."""

    def __init__(
        self,
        channels: Optional[Dict[int, Iterable[ScannedMessage]]] = None,
        *,
        members: Iterable[int] = (),
        emojis: Iterable[str] = (),
        fail_on: Iterable[int] = (),
        delay: float = 0.0,
    ) -> None:
        self.channels: Dict[int, List[ScannedMessage]] = {}
        for channel_id, messages in (channels or {}).items():
            self.channels[channel_id] = sorted(messages, key=lambda m: m.id, reverse=True)
        self.members = list(members)
        self.emojis = list(emojis)
        self.fail_on = set(fail_on)
        self.delay = delay
        self.active = 0
        self.peak = 0

    def post(self, message: ScannedMessage) -> None:
        history = self.channels.setdefault(message.channel_id, [])
        history.append(message)
        history.sort(key=lambda m: m.id, reverse=True)

    def remove(self, channel_id: int, message_id: int) -> None:
        self.channels[channel_id] = [m for m in self.channels[channel_id] if m.id != message_id]

    async def emoji_names(self) -> List[str]:
        return list(self.emojis)

    async def channel_ids(self) -> List[int]:
        return list(self.channels)

    async def member_ids(self) -> List[int]:
        return list(self.members)

    async def history(self, channel_id: int):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if channel_id in self.fail_on:
                raise RuntimeError(f"history of {channel_id} unavailable")
            for message in list(self.channels.get(channel_id, [])):
                yield message
        finally:
            self.active -= 1


def make_message(
    message_id: int,
    author_id: int,
    content: str = "",
    *,
    channel_id: int = 1,
    bot: bool = False,
    created_at: Optional[int] = None,
) -> ScannedMessage:
    return ScannedMessage(
        id=message_id,
        channel_id=channel_id,
        created_at=message_id if created_at is None else created_at,
        author_id=author_id,
        author_bot=bot,
        content=content,
    )


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    path = tmp_path / "data" / "bot.sqlite3"
    monkeypatch.setenv("BOT_DB_PATH", str(path))
    db.ensure_db()
    return path


@pytest.fixture
def msg():
    return make_message


@pytest.fixture
def source_factory():
    return FakeGuildSource


@pytest.fixture
def scenario_source(msg):
    """Two channels, one emoji, one bot message."""
    return FakeGuildSource(
        {
            10: [
                msg(1001, 1, "hello", channel_id=10),
                msg(1002, 1, "<:foo:1> and again <:foo:1>", channel_id=10),
                msg(1003, 1, "bye", channel_id=10),
            ],
            20: [
                msg(2001, 2, "no emoji here", channel_id=20),
                msg(2002, 99, "<:foo:1> beep", channel_id=20, bot=True),
            ],
        },
        members=[1, 2, 99],
        emojis=["foo"],
    )
