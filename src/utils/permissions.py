"""
MooncrestBot - Permission Utilities
===================================

Manager-role checks shared by the staff commands.
"""

from typing import FrozenSet, Union

import discord

from src.core.config import config
from src.core.logger import log
from src.utils.responses import safe_send


def has_manager_role(user: Union[discord.Member, discord.User], role_ids: FrozenSet[int]) -> bool:
    """
    Check if a user may run a staff command.

    Allowed users:
    - Developer (OWNER_ID)
    - Server administrators
    - Members holding any of `role_ids`

    Args:
        user: Member or User object (Users outside a guild never qualify
            unless they are the owner)
        role_ids: Role IDs configured for the command group

    Returns:
        True if the user is allowed
    """
    if config.OWNER_ID and user.id == config.OWNER_ID:
        return True

    if not isinstance(user, discord.Member):
        return False

    if user.guild_permissions.administrator:
        return True

    return any(role.id in role_ids for role in user.roles)


async def require_manager(
    interaction: discord.Interaction,
    role_ids: FrozenSet[int],
    command: str,
) -> bool:
    """
    Gate a staff command, replying and logging when denied.

    Returns:
        True if the command may proceed
    """
    if has_manager_role(interaction.user, role_ids):
        return True

    log.tree("Command Denied", [
        ("User", f"{interaction.user.name} ({interaction.user.id})"),
        ("Command", command),
        ("Reason", "Missing manager role"),
    ], emoji="🚫")
    await safe_send(interaction, "❌ You don't have permission to use this command.")
    return False
