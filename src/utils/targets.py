"""
MooncrestBot - Target Resolution
================================

Staff commands accept a Discord mention, a Discord ID or a Roblox
username and need the linked ledger record behind it.
"""

import re
from typing import TYPE_CHECKING, Optional

from src.core.errors import NotFound

if TYPE_CHECKING:
    from src.bot import MooncrestBot
    from src.services.ledger import UserRecord


DISCORD_TARGET = re.compile(r"^(?:<@!?(\d+)>|(\d{17,20}))$")


def parse_discord_target(text: str) -> Optional[int]:
    """Discord user id from a mention or raw snowflake, else None."""
    match = DISCORD_TARGET.match(text.strip())
    if not match:
        return None
    return int(match.group(1) or match.group(2))


async def find_target_user(bot: "MooncrestBot", target: str) -> "UserRecord":
    """
    Ledger record for a mention, Discord ID or Roblox username.

    Raises:
        NotFound: No record behind the target.
    """
    discord_id = parse_discord_target(target)
    if discord_id is not None:
        user = await bot.ledger.get_user_by_discord(discord_id)
    else:
        roblox_user = await bot.rank_backend.lookup_user(target.strip())
        user = await bot.ledger.get_user(roblox_user.id) if roblox_user else None
    if user is None:
        raise NotFound(f"User **{target}** not found in database.")
    return user
