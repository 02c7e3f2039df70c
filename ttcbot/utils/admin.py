from __future__ import annotations

import discord

from ..strings import S


async def ensure_guild(interaction: discord.Interaction) -> bool:
    if interaction.guild:
        return True
    message = S("common.guild_only")
    if not interaction.response.is_done():
        await interaction.response.send_message(message, ephemeral=True)
    else:
        await interaction.followup.send(message, ephemeral=True)
    return False


async def reply(interaction: discord.Interaction, *, ephemeral: bool = True, **kwargs) -> None:
    """Send via the initial response if still open, else as a followup."""
    if not interaction.response.is_done():
        await interaction.response.send_message(ephemeral=ephemeral, **kwargs)
    else:
        await interaction.followup.send(ephemeral=ephemeral, **kwargs)
