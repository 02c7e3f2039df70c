from __future__ import annotations

import logging
from typing import AsyncIterator, List, Optional

import discord

from .emoji_cache import ScannedMessage

log = logging.getLogger(__name__)

# Guild channels that carry a message history of their own.
HISTORY_CHANNEL_TYPES = (discord.TextChannel, discord.VoiceChannel, discord.StageChannel)


def scanned_from_message(message: discord.Message) -> ScannedMessage:
    return ScannedMessage(
        id=int(message.id),
        channel_id=int(message.channel.id),
        created_at=int(message.created_at.timestamp()),
        author_id=int(message.author.id),
        author_bot=bool(message.author.bot),
        content=message.content or "",
    )


def can_read_history(channel: discord.abc.GuildChannel, me: discord.Member) -> tuple[bool, str]:
    try:
        perms = channel.permissions_for(me)
    except Exception:
        return False, "unable to resolve permissions"

    if not perms.view_channel:
        return False, "missing View Channel"
    if not perms.read_message_history:
        return False, "missing Read Message History"
    return True, ""


class DiscordGuildSource:
    """``GuildSource`` backed by a live discord.py guild."""

    def __init__(self, guild: discord.Guild, *, bot_user_id: int) -> None:
        self.guild = guild
        self.bot_user_id = int(bot_user_id)

    async def emoji_names(self) -> List[str]:
        emojis = await self.guild.fetch_emojis()
        return [e.name for e in emojis]

    async def channel_ids(self) -> List[int]:
        return [ch.id for ch in self.guild.channels if isinstance(ch, HISTORY_CHANNEL_TYPES)]

    async def member_ids(self) -> List[int]:
        return [member.id async for member in self.guild.fetch_members(limit=None)]

    async def _me(self) -> discord.Member:
        me: Optional[discord.Member] = self.guild.me
        if isinstance(me, discord.Member):
            return me
        return await self.guild.fetch_member(self.bot_user_id)

    async def history(self, channel_id: int) -> AsyncIterator[ScannedMessage]:
        channel = self.guild.get_channel(channel_id)
        if not isinstance(channel, HISTORY_CHANNEL_TYPES):
            log.info(
                "emoji_cache.channel.skip",
                extra={"guild_id": self.guild.id, "channel_id": channel_id, "reason": "gone"},
            )
            return

        can_read, reason = can_read_history(channel, await self._me())
        if not can_read:
            # Unreadable channels scan as empty so their old checkpoint is kept.
            log.info(
                "emoji_cache.channel.skip",
                extra={"guild_id": self.guild.id, "channel_id": channel_id, "reason": reason},
            )
            return

        async for message in channel.history(limit=None):
            yield scanned_from_message(message)


__all__ = ["DiscordGuildSource", "can_read_history", "scanned_from_message"]
