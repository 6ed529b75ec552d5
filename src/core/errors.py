"""
MooncrestBot - Error Taxonomy
=============================

Exceptions raised by the ledger, giveaway and Roblox layers.

Every class carries a user-facing message; command handlers catch
MooncrestError and reply with str(error), anything else is reported
generically.
"""

from enum import Enum


class MooncrestError(Exception):
    """Base class for expected, user-reportable failures."""
    pass


class InvalidArgument(MooncrestError):
    """Negative amount, malformed duration or malformed date."""
    pass


class NotFound(MooncrestError):
    """Unknown user, giveaway or record."""
    pass


class Ineligible(MooncrestError):
    """Role requirement not met."""
    pass


class AlreadyEntered(MooncrestError):
    """Entrant is already in the giveaway (reported, not an error state)."""
    pass


class AlreadyEnded(MooncrestError):
    """Operation needs an open giveaway."""
    pass


class NotEnded(MooncrestError):
    """Operation needs an ended giveaway."""
    pass


class InsufficientEntrants(MooncrestError):
    """Reroll asked for more winners than remain."""
    pass


class FailureReason(str, Enum):
    """Why the Roblox side rejected or failed a call."""

    UNAUTHORIZED = "Unauthorized"
    NOT_A_MEMBER = "NotAMember"
    INVALID_TARGET = "InvalidTarget"
    UNAVAILABLE = "Unavailable"


class ExternalServiceFailure(MooncrestError):
    """Roblox API unreachable or rejected the request."""

    def __init__(self, reason: FailureReason, message: str = "") -> None:
        self.reason = reason
        super().__init__(message or f"Roblox request failed ({reason.value})")
