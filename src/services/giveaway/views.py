"""
MooncrestBot - Giveaway Views
=============================

Persistent Join button for running giveaways.
"""

from typing import TYPE_CHECKING

import discord
from discord import ui

from src.core.constants import GIVEAWAY_JOIN_CUSTOM_ID
from src.core.errors import AlreadyEntered, MooncrestError
from src.core.logger import log

if TYPE_CHECKING:
    from src.services.giveaway.service import GiveawayService


class GiveawayJoinView(ui.View):
    """Join button; the announcement message id identifies the giveaway."""

    def __init__(self, service: "GiveawayService"):
        super().__init__(timeout=None)  # Persistent view
        self.service = service

    @ui.button(label="Join", style=discord.ButtonStyle.success, emoji="🎉", custom_id=GIVEAWAY_JOIN_CUSTOM_ID)
    async def join_button(self, interaction: discord.Interaction, button: ui.Button) -> None:
        """Enter the giveaway."""
        await interaction.response.defer(ephemeral=True, thinking=True)

        if not isinstance(interaction.user, discord.Member):
            await interaction.followup.send("Giveaways can only be joined inside the server.", ephemeral=True)
            return

        try:
            count = await self.service.join(interaction.message.id, interaction.user, interaction.message)
        except AlreadyEntered as e:
            await interaction.followup.send(f"ℹ️ {e}", ephemeral=True)
            return
        except MooncrestError as e:
            log.tree("Giveaway Join Rejected", [
                ("User", f"{interaction.user.name} ({interaction.user.id})"),
                ("Message ID", str(interaction.message.id)),
                ("Reason", str(e)[:80]),
            ], emoji="⚠️")
            await interaction.followup.send(f"❌ {e}", ephemeral=True)
            return
        except Exception as e:
            log.error_tree("Giveaway Join Failed", e, [
                ("User", f"{interaction.user.name} ({interaction.user.id})"),
                ("Message ID", str(interaction.message.id)),
            ])
            await interaction.followup.send("❌ An unexpected error occurred while entering.", ephemeral=True)
            return

        await interaction.followup.send(
            f"✅ **You have joined the giveaway!** ({count} participants)", ephemeral=True
        )
