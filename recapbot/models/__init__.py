# Database models - All models must be imported here for SQLAlchemy to create tables

from recapbot.models.connection import UserConnection
from recapbot.models.recap import DailyRecap, RecapStatus, RecapTransition
from recapbot.models.recap_script import DailyRecapScript

__all__ = [
    # Connections
    "UserConnection",
    # Recaps
    "DailyRecap", "RecapStatus", "RecapTransition",
    "DailyRecapScript",
]
