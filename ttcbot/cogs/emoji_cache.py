from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from .. import config
from ..models import message_cache, settings
from ..strings import S
from ..ui.emoji_cache import (
    LeaderboardView,
    build_busy_embed,
    build_emojistats_embed,
    build_leaderboard_pages,
    build_rebuild_done_embed,
    build_rebuild_start_embed,
    build_refresh_done_embed,
)
from ..utils.admin import ensure_guild, reply
from ..utils.emoji_cache import CacheBusyError, EmojiCache, ScannedMessage
from ..utils.guild_source import DiscordGuildSource
from ..utils.leaderboard import build_leaderboard, top_emojis_for

log = logging.getLogger(__name__)


def _scanned(row: message_cache.CachedMessage) -> ScannedMessage:
    return ScannedMessage(
        id=row.message_id,
        channel_id=row.channel_id,
        created_at=row.created_at,
        author_id=row.author_id,
        author_bot=row.author_bot,
        content=row.content,
    )


def _emoji_names(guild: discord.Guild) -> List[str]:
    return [e.name for e in guild.emojis]


class EmojiCacheCog(commands.Cog):
    """Emoji usage leaderboard backed by a resumable history scan."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self._caches: Dict[int, EmojiCache] = {}

    def cache_for(self, guild: discord.Guild) -> EmojiCache:
        cache = self._caches.get(guild.id)
        if cache is None:
            source = DiscordGuildSource(guild, bot_user_id=self.bot.user.id)  # type: ignore[union-attr]
            cache = EmojiCache(guild.id, source)
            self._caches[guild.id] = cache
        return cache

    def running_guilds(self) -> List[int]:
        return sorted(gid for gid, cache in self._caches.items() if cache.is_running())

    # ------------------------
    # listeners
    # ------------------------
    @commands.Cog.listener()
    async def on_message(self, message: discord.Message):
        if not message.guild:
            return
        try:
            message_cache.store(message_cache.from_message(message))
        except Exception:
            log.exception(
                "emoji_cache.message_cache.store_failed",
                extra={"guild_id": message.guild.id, "message_id": message.id},
            )

    async def _forget(self, guild_id: int, message_id: int, cached: Optional[discord.Message]) -> None:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            return

        row = message_cache.get(guild_id, message_id)
        if row is None and cached is not None and cached.guild is not None:
            row = message_cache.from_message(cached)
        if row is None:
            log.info(
                "emoji_cache.delete.unknown_message",
                extra={"guild_id": guild_id, "message_id": message_id},
            )
            return

        applied = await self.cache_for(guild).apply_message_delete(_scanned(row), _emoji_names(guild))
        message_cache.delete(guild_id, message_id)
        log.debug(
            "emoji_cache.delete.adjusted",
            extra={"guild_id": guild_id, "message_id": message_id, "applied": applied},
        )

    @commands.Cog.listener()
    async def on_raw_message_delete(self, payload: discord.RawMessageDeleteEvent):
        if not payload.guild_id:
            return
        try:
            await self._forget(payload.guild_id, payload.message_id, payload.cached_message)
        except Exception:
            log.exception(
                "emoji_cache.delete.failed",
                extra={"guild_id": payload.guild_id, "message_id": payload.message_id},
            )

    @commands.Cog.listener()
    async def on_raw_bulk_message_delete(self, payload: discord.RawBulkMessageDeleteEvent):
        if not payload.guild_id:
            return
        cached = {m.id: m for m in payload.cached_messages}
        for message_id in payload.message_ids:
            try:
                await self._forget(payload.guild_id, message_id, cached.get(message_id))
            except Exception:
                log.exception(
                    "emoji_cache.delete.failed",
                    extra={"guild_id": payload.guild_id, "message_id": message_id},
                )

    @commands.Cog.listener()
    async def on_raw_message_edit(self, payload: discord.RawMessageUpdateEvent):
        if not payload.guild_id:
            return
        new_content = payload.data.get("content")
        if new_content is None:
            return
        guild = self.bot.get_guild(payload.guild_id)
        if guild is None:
            return

        try:
            row = message_cache.get(payload.guild_id, payload.message_id)
            if row is None:
                log.info(
                    "emoji_cache.edit.unknown_message",
                    extra={"guild_id": payload.guild_id, "message_id": payload.message_id},
                )
                return
            if row.content == new_content:
                return
            cache = self.cache_for(guild)
            scanned = _scanned(row)
            applied = await cache.apply_message_edit(scanned, new_content, _emoji_names(guild))
            if not applied and cache.is_running() and await cache.is_counted(scanned):
                # Counters still hold the old text; a later delete must subtract that.
                log.info(
                    "emoji_cache.edit.skipped_during_refresh",
                    extra={"guild_id": payload.guild_id, "message_id": payload.message_id},
                )
                return
            message_cache.update_content(payload.guild_id, payload.message_id, new_content)
        except Exception:
            log.exception(
                "emoji_cache.edit.failed",
                extra={"guild_id": payload.guild_id, "message_id": payload.message_id},
            )

    # ------------------------
    # /leaderboard
    # ------------------------
    @app_commands.command(name="leaderboard", description="Tracked emoji and message leaderboard.")
    @app_commands.describe(
        user="Whose statistics to show on the last page (default: you).",
        refresh="Scan new messages before building the leaderboard.",
    )
    async def leaderboard(
        self,
        interaction: discord.Interaction,
        user: Optional[discord.Member] = None,
        refresh: bool = False,
    ):
        if not await ensure_guild(interaction):
            return
        guild = interaction.guild
        cache = self.cache_for(guild)
        if cache.is_running():
            return await interaction.response.send_message(embed=build_busy_embed(), ephemeral=True)

        await interaction.response.defer()
        try:
            data = await (cache.refresh(full_rebuild=False) if refresh else cache.get_data())
        except CacheBusyError:
            return await interaction.followup.send(embed=build_busy_embed(), ephemeral=True)
        except Exception:
            log.exception("emoji_cache.leaderboard.failed", extra={"guild_id": guild.id})
            return await interaction.followup.send(S("emoji_cache.failed"), ephemeral=True)

        # Drop members who left and emojis removed since the last refresh.
        data.filter((m.id for m in guild.members), _emoji_names(guild))
        tracked = await asyncio.to_thread(settings.get_tracked_emojis, guild.id)
        target = user or interaction.user
        board = build_leaderboard(
            data, tracked, target.id, min_messages=config.LEADERBOARD_MIN_MESSAGES
        )
        pages = build_leaderboard_pages(board)
        view = LeaderboardView(owner=interaction.user, pages=pages)
        view.message = await interaction.followup.send(embed=pages[0], view=view, wait=True)

    # ------------------------
    # /emojistats
    # ------------------------
    @app_commands.command(name="emojistats", description="Most used server emojis of a member.")
    @app_commands.describe(user="Member to look up (default: you).")
    async def emojistats(self, interaction: discord.Interaction, user: Optional[discord.Member] = None):
        if not await ensure_guild(interaction):
            return
        guild = interaction.guild
        cache = self.cache_for(guild)
        try:
            data = await cache.get_data()
        except CacheBusyError:
            return await interaction.response.send_message(embed=build_busy_embed(), ephemeral=True)

        target = user or interaction.user
        emojis = {e.name: str(e) for e in guild.emojis}
        rows = [(name, n) for name, n in top_emojis_for(data, target.id) if name in emojis]
        embed = build_emojistats_embed(target, rows, emojis, cache.last_refreshed)
        await interaction.response.send_message(embed=embed)

    # ------------------------
    # /emojicache ...
    # ------------------------
    group = app_commands.Group(
        name="emojicache",
        description="Maintain the emoji leaderboard cache",
        default_permissions=discord.Permissions(manage_guild=True),
    )

    async def _run_refresh(self, interaction: discord.Interaction, *, full_rebuild: bool) -> None:
        guild = interaction.guild
        cache = self.cache_for(guild)
        if cache.is_running():
            return await reply(interaction, embed=build_busy_embed())

        if full_rebuild:
            await interaction.response.send_message(embed=build_rebuild_start_embed(), ephemeral=True)
        else:
            await interaction.response.defer(ephemeral=True)

        try:
            data = await cache.refresh(full_rebuild=full_rebuild)
        except CacheBusyError:
            return await interaction.followup.send(embed=build_busy_embed(), ephemeral=True)
        except Exception:
            log.exception(
                "emoji_cache.refresh.failed",
                extra={"guild_id": guild.id, "full_rebuild": full_rebuild},
            )
            return await interaction.followup.send(S("emoji_cache.failed"), ephemeral=True)

        embed = build_rebuild_done_embed(data) if full_rebuild else build_refresh_done_embed(data)
        await interaction.followup.send(embed=embed, ephemeral=True)

    @group.command(name="rebuild", description="Discard the cache and rescan the whole history.")
    @app_commands.checks.has_permissions(manage_guild=True)
    async def rebuild(self, interaction: discord.Interaction):
        if not await ensure_guild(interaction):
            return
        await self._run_refresh(interaction, full_rebuild=True)

    @group.command(name="refresh", description="Scan messages sent since the last refresh.")
    @app_commands.checks.has_permissions(manage_guild=True)
    async def refresh(self, interaction: discord.Interaction):
        if not await ensure_guild(interaction):
            return
        await self._run_refresh(interaction, full_rebuild=False)

    @group.command(name="track", description="Count an emoji on the leaderboard.")
    @app_commands.describe(emoji="Name of a server emoji, with or without colons.")
    @app_commands.checks.has_permissions(manage_guild=True)
    async def track(self, interaction: discord.Interaction, emoji: str):
        if not await ensure_guild(interaction):
            return
        name = emoji.strip().strip(":")
        if name not in _emoji_names(interaction.guild):
            return await interaction.response.send_message(
                S("emoji_cache.track.unknown", name=name), ephemeral=True
            )
        added = await asyncio.to_thread(settings.add_tracked_emoji, interaction.guild_id, name)
        key = "emoji_cache.track.ok" if added else "emoji_cache.track.exists"
        log.info(
            "emoji_cache.track",
            extra={"guild_id": interaction.guild_id, "emoji": name, "added": added},
        )
        await interaction.response.send_message(S(key, name=name), ephemeral=True)

    @group.command(name="untrack", description="Stop counting an emoji on the leaderboard.")
    @app_commands.describe(emoji="Name of the tracked emoji.")
    @app_commands.checks.has_permissions(manage_guild=True)
    async def untrack(self, interaction: discord.Interaction, emoji: str):
        if not await ensure_guild(interaction):
            return
        name = emoji.strip().strip(":")
        removed = await asyncio.to_thread(settings.remove_tracked_emoji, interaction.guild_id, name)
        key = "emoji_cache.untrack.ok" if removed else "emoji_cache.untrack.missing"
        log.info(
            "emoji_cache.untrack",
            extra={"guild_id": interaction.guild_id, "emoji": name, "removed": removed},
        )
        await interaction.response.send_message(S(key, name=name), ephemeral=True)

    @group.command(name="tracked", description="List the emojis the leaderboard counts.")
    async def tracked(self, interaction: discord.Interaction):
        if not await ensure_guild(interaction):
            return
        names = await asyncio.to_thread(settings.get_tracked_emojis, interaction.guild_id)
        if not names:
            msg = S("emoji_cache.tracked.none")
        else:
            msg = S("emoji_cache.tracked.list", names=", ".join(f"`:{n}:`" for n in names))
        await interaction.response.send_message(msg, ephemeral=True)

    async def _permission_error(
        self,
        interaction: discord.Interaction,
        error: app_commands.AppCommandError,
    ):
        if isinstance(error, app_commands.errors.MissingPermissions):
            await reply(interaction, content=S("common.need_manage_server"))
        else:
            raise error

    @rebuild.error
    async def _on_rebuild_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        await self._permission_error(interaction, error)

    @refresh.error
    async def _on_refresh_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        await self._permission_error(interaction, error)

    @track.error
    async def _on_track_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        await self._permission_error(interaction, error)

    @untrack.error
    async def _on_untrack_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        await self._permission_error(interaction, error)


async def setup(bot: commands.Bot):
    await bot.add_cog(EmojiCacheCog(bot))
