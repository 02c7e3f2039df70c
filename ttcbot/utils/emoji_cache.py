from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import (
    AsyncIterator,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
)

from .. import config
from ..models import emoji_cache as store_db
from ..models.emoji_cache import GUILD, CacheData, ChannelProgress, EmojiKey, Scope

log = logging.getLogger(__name__)

# Static and animated custom emoji codes as they appear in message text.
EMOJI_CODE_FORMATS = ("<:{name}:", "<a:{name}:")


class EmojiCacheError(RuntimeError):
    pass


class CacheBusyError(EmojiCacheError):
    def __init__(self, message: str = "The emoji cache is already being updated") -> None:
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class ScannedMessage:
    id: int
    channel_id: int
    created_at: int
    author_id: int
    author_bot: bool
    content: str


@dataclass(slots=True)
class ChannelDelta:
    channel_id: int
    counts: CacheData
    checkpoint: Optional[ChannelProgress]
    scanned: int = 0


class GuildSource(Protocol):
    """What the cache needs from the chat platform for one guild."""

    async def emoji_names(self) -> List[str]: ...

    async def channel_ids(self) -> List[int]: ...

    async def member_ids(self) -> List[int]: ...

    def history(self, channel_id: int) -> AsyncIterator[ScannedMessage]:
        """Messages of a channel, newest first."""
        ...


# ----------------------------
# Scanning
# ----------------------------
def count_emoji_occurrences(content: str, emoji_name: str) -> int:
    """How often the emoji's code appears in ``content``; repeats each count."""
    if not content or not emoji_name:
        return 0
    return sum(content.count(fmt.format(name=emoji_name)) for fmt in EMOJI_CODE_FORMATS)


def _already_counted(message: ScannedMessage, previous: ChannelProgress) -> bool:
    # Timestamp check covers a deleted checkpoint message; ids are time-ordered snowflakes.
    return (
        message.id == previous.message_id
        or message.created_at < previous.timestamp
        or message.id < previous.message_id
    )


def tally_message(
    counts: CacheData, message: ScannedMessage, emoji_names: Iterable[str], sign: int = 1
) -> None:
    author = Scope.user(message.author_id)
    counts.increase_messages(GUILD, sign)
    counts.increase_messages(author, sign)
    for name in emoji_names:
        n = count_emoji_occurrences(message.content, name)
        if n:
            counts.increase_emoji(GUILD, name, sign * n)
            counts.increase_emoji(author, name, sign * n)


async def scan_channel(
    source: GuildSource,
    channel_id: int,
    emoji_names: Sequence[str],
    previous: Optional[ChannelProgress] = None,
) -> ChannelDelta:
    """Walk one channel newest to oldest, stopping at the previous checkpoint."""
    delta = ChannelDelta(channel_id=channel_id, counts=CacheData(), checkpoint=None)
    async for message in source.history(channel_id):
        if delta.checkpoint is None:
            delta.checkpoint = ChannelProgress(channel_id, message.id, message.created_at)
        if previous is not None and _already_counted(message, previous):
            break
        if message.author_bot:
            continue
        tally_message(delta.counts, message, emoji_names)
        delta.scanned += 1

    if previous is not None and (
        delta.checkpoint is None or delta.checkpoint.message_id < previous.message_id
    ):
        delta.checkpoint = previous
    return delta


def merge_deltas(base: CacheData, deltas: Iterable[ChannelDelta]) -> CacheData:
    merged = base.copy()
    for delta in deltas:
        merged.merge(delta.counts)
    return merged


# ----------------------------
# Cache
# ----------------------------
class EmojiCache:
    """
    Per-guild emoji usage and message counts, refreshed from message history.

    A refresh either resumes from each channel's checkpoint or rebuilds from
    scratch, then replaces the persisted state in one transaction. Only one
    refresh may run per instance; a second caller gets ``CacheBusyError``.
    """

    def __init__(
        self,
        guild_id: int,
        source: GuildSource,
        *,
        store=store_db,
        max_concurrency: int = config.EMOJI_CACHE_MAX_CONCURRENCY,
    ) -> None:
        self.guild_id = int(guild_id)
        self.source = source
        self._store = store
        self._max_concurrency = max(1, int(max_concurrency))
        self._running = False
        self._cached: Optional[CacheData] = None
        self.last_refreshed: Optional[datetime] = None

    def is_running(self) -> bool:
        return self._running

    async def get_data(self) -> CacheData:
        """Persisted snapshot, without scanning anything."""
        if self._running:
            raise CacheBusyError("The emoji cache is currently being updated")
        if self._cached is None:
            self._cached = await asyncio.to_thread(self._store.load_data, self.guild_id)
        return self._cached.copy()

    async def refresh(self, full_rebuild: bool = False) -> CacheData:
        # No await between check and set: the event loop makes this atomic.
        if self._running:
            log.info("emoji_cache.refresh.busy", extra={"guild_id": self.guild_id})
            raise CacheBusyError()
        self._running = True
        try:
            return await self._refresh(full_rebuild)
        finally:
            self._running = False

    async def _refresh(self, full_rebuild: bool) -> CacheData:
        started = time.monotonic()
        log.info(
            "emoji_cache.refresh.start",
            extra={"guild_id": self.guild_id, "full_rebuild": full_rebuild},
        )

        if full_rebuild:
            base = CacheData()
            previous: Dict[int, ChannelProgress] = {}
        else:
            base = await asyncio.to_thread(self._store.load_data, self.guild_id)
            previous = await asyncio.to_thread(self._store.load_progress, self.guild_id)

        emoji_names = await self.source.emoji_names()
        channel_ids = await self.source.channel_ids()
        deltas = await self._scan_channels(channel_ids, emoji_names, previous)
        data = merge_deltas(base, deltas)

        # Scans can take a long time; membership and channels may have changed.
        member_ids = await self.source.member_ids()
        live_channels = set(await self.source.channel_ids())
        data.filter(member_ids, emoji_names)
        progress = [
            d.checkpoint
            for d in deltas
            if d.checkpoint is not None and d.channel_id in live_channels
        ]

        await asyncio.to_thread(self._store.replace_all, self.guild_id, data, progress)

        self._cached = data.copy()
        self.last_refreshed = datetime.now(timezone.utc)
        log.info(
            "emoji_cache.refresh.done",
            extra={
                "guild_id": self.guild_id,
                "full_rebuild": full_rebuild,
                "channels": len(deltas),
                "messages_scanned": sum(d.scanned for d in deltas),
                "elapsed_s": round(time.monotonic() - started, 1),
            },
        )
        return data

    async def _scan_channels(
        self,
        channel_ids: Sequence[int],
        emoji_names: Sequence[str],
        previous: Mapping[int, ChannelProgress],
    ) -> List[ChannelDelta]:
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def _bounded(channel_id: int) -> ChannelDelta:
            async with semaphore:
                return await scan_channel(
                    self.source, channel_id, emoji_names, previous.get(channel_id)
                )

        tasks = [asyncio.create_task(_bounded(cid)) for cid in channel_ids]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    # ---- live adjustments between refreshes ----
    async def apply_message_delete(
        self, message: ScannedMessage, emoji_names: Sequence[str]
    ) -> bool:
        """Take an already-counted message back out of the counters."""
        if message.author_bot:
            return False
        change = CacheData()
        tally_message(change, message, emoji_names, sign=-1)
        return await self._apply(message, change)

    async def apply_message_edit(
        self, message: ScannedMessage, new_content: str, emoji_names: Sequence[str]
    ) -> bool:
        """Adjust emoji counters of an already-counted message whose text changed."""
        if message.author_bot:
            return False
        author = Scope.user(message.author_id)
        change = CacheData()
        for name in emoji_names:
            diff = count_emoji_occurrences(new_content, name) - count_emoji_occurrences(
                message.content, name
            )
            if diff:
                change.increase_emoji(GUILD, name, diff)
                change.increase_emoji(author, name, diff)
        if not change.user_emoji_counts:
            return False
        return await self._apply(message, change)

    async def is_counted(self, message: ScannedMessage) -> bool:
        """Whether the message is at or below its channel's stored checkpoint."""
        progress = await asyncio.to_thread(
            self._store.get_progress, self.guild_id, message.channel_id
        )
        return progress is not None and message.id <= progress.message_id

    async def _apply(self, message: ScannedMessage, change: CacheData) -> bool:
        if self._running:
            return False
        applied = await asyncio.to_thread(
            self._store.apply_adjustment,
            self.guild_id,
            message.channel_id,
            message.id,
            change.user_emoji_counts,
            change.user_message_counts,
        )
        if applied and self._cached is not None:
            _apply_signed(self._cached, change.user_emoji_counts, change.user_message_counts)
        return applied


def _apply_signed(
    data: CacheData,
    emoji_deltas: Mapping[EmojiKey, int],
    message_deltas: Mapping[Scope, int],
) -> None:
    for (scope, name), n in emoji_deltas.items():
        if n > 0:
            data.increase_emoji(scope, name, n)
        else:
            data.decrease_emoji(scope, name, -n)
    for scope, n in message_deltas.items():
        if n > 0:
            data.increase_messages(scope, n)
        else:
            data.decrease_messages(scope, -n)


__all__ = [
    "CacheBusyError",
    "ChannelDelta",
    "EmojiCache",
    "EmojiCacheError",
    "GuildSource",
    "ScannedMessage",
    "count_emoji_occurrences",
    "merge_deltas",
    "scan_channel",
    "tally_message",
]
