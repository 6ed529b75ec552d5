"""
MooncrestBot - Giveaway Package
===============================

Giveaway lifecycle and the persistent Join button.
"""

from src.services.giveaway.service import (
    GiveawayService,
    build_ended_embed,
    build_giveaway_embed,
    pick_winners,
)
from src.services.giveaway.views import GiveawayJoinView

__all__ = [
    "GiveawayService",
    "GiveawayJoinView",
    "build_ended_embed",
    "build_giveaway_embed",
    "pick_winners",
]
