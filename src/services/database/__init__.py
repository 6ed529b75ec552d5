"""
MooncrestBot - Database Module
==============================

Modular SQLite database for all bot features.

Structure:
    - core.py: Base class with connection management and table init
    - users.py: Points ledger rows
    - giveaways.py: Giveaways, entrants and winners
    - periods.py: Weekly/monthly reset markers
    - hall_of_fame.py: Recorded period winners
    - tempvoice.py: TempVoice channel operations
"""

from .core import DatabaseCore, DatabaseUnavailableError
from .users import UsersMixin, RANKABLE_FIELDS
from .giveaways import GiveawaysMixin
from .periods import PeriodsMixin
from .hall_of_fame import HallOfFameMixin
from .tempvoice import TempVoiceMixin


class Database(
    UsersMixin,
    GiveawaysMixin,
    PeriodsMixin,
    HallOfFameMixin,
    TempVoiceMixin,
    DatabaseCore,
):
    """
    Complete database class combining all mixins.

    The order matters - DatabaseCore must be last so its __init__ runs.
    """
    pass


# Global singleton instance
db = Database()

__all__ = ["Database", "db", "DatabaseUnavailableError", "RANKABLE_FIELDS"]
