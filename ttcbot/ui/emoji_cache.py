from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import discord

from .. import config
from ..models.emoji_cache import GUILD, CacheData
from ..strings import S
from ..utils.leaderboard import Leaderboard

__all__ = [
    "LeaderboardView",
    "build_busy_embed",
    "build_emojistats_embed",
    "build_leaderboard_pages",
    "build_rebuild_done_embed",
    "build_rebuild_start_embed",
    "build_refresh_done_embed",
]


def _mention(user_id: int) -> str:
    return f"<@{user_id}>"


def _with_rank(value: object, rank: Optional[int]) -> str:
    return S("leaderboard.rank", value=value, rank=rank) if rank else str(value)


def _ranking_embed(
    title: str,
    description: str,
    rows: Sequence[Tuple[int, str]],
    colour: discord.Colour,
) -> discord.Embed:
    embed = discord.Embed(title=title, description=description, colour=colour)
    if not rows:
        embed.add_field(name="\u200b", value=S("leaderboard.empty"), inline=False)
    for index, (user_id, value) in enumerate(rows[: config.LEADERBOARD_PAGE_SIZE], start=1):
        embed.add_field(
            name=str(index),
            value=S("leaderboard.row", user=_mention(user_id), value=value),
            inline=False,
        )
    return embed


def build_leaderboard_pages(board: Leaderboard) -> List[discord.Embed]:
    emoji_embed = _ranking_embed(
        S("leaderboard.emoji.title"),
        S("leaderboard.emoji.desc"),
        [(uid, str(n)) for uid, n in board.emoji_rows],
        discord.Colour.gold(),
    )
    message_embed = _ranking_embed(
        S("leaderboard.messages.title"),
        S("leaderboard.messages.desc"),
        [(uid, str(n)) for uid, n in board.message_rows],
        discord.Colour.blurple(),
    )
    percentage_embed = _ranking_embed(
        S("leaderboard.percentage.title"),
        S("leaderboard.percentage.desc", min_messages=config.LEADERBOARD_MIN_MESSAGES),
        [(uid, f"{int(ratio * 100)}%") for uid, ratio in board.percentage_rows],
        discord.Colour.purple(),
    )

    global_embed = discord.Embed(
        title=S("leaderboard.global.title"),
        description=S("leaderboard.global.desc"),
        colour=discord.Colour.teal(),
    )
    global_embed.add_field(name=S("leaderboard.field.messages"), value=str(board.global_messages), inline=False)
    global_embed.add_field(name=S("leaderboard.field.emojis"), value=str(board.global_emojis), inline=False)
    global_embed.add_field(
        name=S("leaderboard.field.percentage"), value=f"{board.global_percentage}%", inline=False
    )

    user_embed = discord.Embed(
        title=S("leaderboard.user.title"),
        description=S("leaderboard.user.desc", user=_mention(board.target_id)),
        colour=discord.Colour.green(),
    )
    user_embed.add_field(
        name=S("leaderboard.field.emojis"),
        value=_with_rank(board.target_emojis, Leaderboard.rank_of(board.emoji_rows, board.target_id)),
        inline=False,
    )
    user_embed.add_field(
        name=S("leaderboard.field.messages"),
        value=_with_rank(board.target_messages, Leaderboard.rank_of(board.message_rows, board.target_id)),
        inline=False,
    )
    user_embed.add_field(
        name=S("leaderboard.field.percentage"),
        value=_with_rank(
            f"{board.target_percentage}%",
            Leaderboard.rank_of(board.percentage_rows, board.target_id),
        ),
        inline=False,
    )

    pages = [emoji_embed, message_embed, percentage_embed, global_embed, user_embed]
    names = ", ".join(f":{n}:" for n in board.tracked)
    for number, page in enumerate(pages, start=1):
        if names:
            page.set_footer(text=S("leaderboard.footer.tracked", page=number, pages=len(pages), names=names))
        else:
            page.set_footer(text=S("leaderboard.footer", page=number, pages=len(pages)))
    return pages


class LeaderboardView(discord.ui.View):
    """Cycles through leaderboard pages; only the invoking user can flip."""

    def __init__(self, *, owner: discord.abc.User, pages: List[discord.Embed]):
        super().__init__(timeout=180)
        self.owner = owner
        self.pages = pages
        self.index = 0
        self.message: Optional[discord.Message] = None

    async def interaction_check(self, interaction: discord.Interaction) -> bool:  # type: ignore[override]
        if interaction.user.id != self.owner.id:
            await interaction.response.send_message(
                S("leaderboard.not_owner", user=self.owner.display_name), ephemeral=True
            )
            return False
        return True

    async def _show(self, interaction: discord.Interaction, step: int) -> None:
        self.index = (self.index + step) % len(self.pages)
        await interaction.response.edit_message(embed=self.pages[self.index], view=self)

    @discord.ui.button(label="Previous", style=discord.ButtonStyle.secondary)
    async def previous_page(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await self._show(interaction, -1)

    @discord.ui.button(label="Next", style=discord.ButtonStyle.primary)
    async def next_page(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await self._show(interaction, 1)

    async def on_timeout(self) -> None:  # type: ignore[override]
        for child in self.children:
            if isinstance(child, discord.ui.Button):
                child.disabled = True
        if self.message:
            try:
                await self.message.edit(view=self)
            except discord.HTTPException:
                pass


def build_busy_embed() -> discord.Embed:
    return discord.Embed(
        title=S("emoji_cache.busy.title"),
        description=S("emoji_cache.busy.desc"),
        colour=discord.Colour.red(),
    )


def build_rebuild_start_embed() -> discord.Embed:
    return discord.Embed(
        title=S("emoji_cache.rebuild.start.title"),
        description=S("emoji_cache.rebuild.start.desc"),
        colour=discord.Colour.green(),
    )


def _totals(data: CacheData) -> Tuple[int, int, int]:
    emojis = sum(n for (scope, _name), n in data.user_emoji_counts.items() if scope.is_guild)
    users = sum(1 for scope in data.user_message_counts if not scope.is_guild)
    return data.messages_for(GUILD), emojis, users


def build_rebuild_done_embed(data: CacheData) -> discord.Embed:
    messages, emojis, users = _totals(data)
    return discord.Embed(
        title=S("emoji_cache.rebuild.done.title"),
        description=S("emoji_cache.rebuild.done.desc", messages=messages, emojis=emojis, users=users),
        colour=discord.Colour.green(),
    )


def build_refresh_done_embed(data: CacheData) -> discord.Embed:
    messages, emojis, _users = _totals(data)
    return discord.Embed(
        title=S("emoji_cache.refresh.done.title"),
        description=S("emoji_cache.refresh.done.desc", messages=messages, emojis=emojis),
        colour=discord.Colour.green(),
    )


def build_emojistats_embed(
    user: discord.abc.User,
    rows: Sequence[Tuple[str, int]],
    emojis: Dict[str, str],
    refreshed_at: Optional[datetime],
) -> discord.Embed:
    embed = discord.Embed(
        title=S("emojistats.title"),
        description=S("emojistats.desc", user=user.mention),
        colour=discord.Colour.blurple(),
    )
    embed.set_author(name=str(user), icon_url=user.display_avatar.url)
    if not rows:
        embed.add_field(name="\u200b", value=S("emojistats.none"), inline=False)
    else:
        lines = [
            S("emojistats.row", emoji=emojis.get(name, ""), name=name, count=count)
            for name, count in rows
        ]
        embed.add_field(name="\u200b", value="\n".join(lines), inline=False)
    if refreshed_at is not None:
        local = refreshed_at.astimezone(config.TZ)
        embed.set_footer(text=S("emojistats.footer", when=local.strftime("%Y-%m-%d %H:%M %Z")))
    return embed
