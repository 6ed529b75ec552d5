"""
MooncrestBot - Response Utilities
=================================

Safe response helpers for Discord interactions.
Handles already-responded interactions gracefully.
"""

from typing import Optional

import discord

from src.core.errors import MooncrestError
from src.core.logger import log


GENERIC_ERROR = "❌ Something went wrong. Please try again later."


async def safe_send(
    interaction: discord.Interaction,
    content: Optional[str] = None,
    embed: Optional[discord.Embed] = None,
    ephemeral: bool = True,
    view: Optional[discord.ui.View] = None,
) -> bool:
    """
    Safely send a response to an interaction.

    Uses followup if the interaction was already responded to or deferred.

    Returns:
        True if message was sent successfully, False otherwise
    """
    kwargs = {"content": content, "embed": embed, "ephemeral": ephemeral}
    if view is not None:
        kwargs["view"] = view

    try:
        if not interaction.response.is_done():
            await interaction.response.send_message(**kwargs)
        else:
            await interaction.followup.send(**kwargs)
        return True
    except discord.HTTPException as e:
        log.tree("Response Failed", [
            ("User", f"{interaction.user.name}"),
            ("Error", str(e)[:50]),
        ], emoji="❌")
        return False


async def safe_defer(interaction: discord.Interaction, ephemeral: bool = False) -> bool:
    """Safely defer an interaction response."""
    try:
        if not interaction.response.is_done():
            await interaction.response.defer(ephemeral=ephemeral, thinking=True)
        return True
    except discord.HTTPException as e:
        log.tree("Defer Failed", [
            ("User", f"{interaction.user.name}"),
            ("Error", str(e)[:50]),
        ], emoji="❌")
        return False


async def send_error(interaction: discord.Interaction, error: BaseException, command: str) -> None:
    """
    Reply with a user-facing message for a command failure.

    Domain errors carry their own message; anything else is logged in full
    and answered generically.
    """
    if isinstance(error, MooncrestError):
        log.tree("Command Rejected", [
            ("User", f"{interaction.user.name} ({interaction.user.id})"),
            ("Command", command),
            ("Reason", f"{type(error).__name__}: {str(error)[:80]}"),
        ], emoji="⚠️")
        await safe_send(interaction, f"❌ {error}")
        return

    log.error_tree("Command Failed", error, [
        ("User", f"{interaction.user.name} ({interaction.user.id})"),
        ("Command", command),
    ])
    await safe_send(interaction, GENERIC_ERROR)
