"""Rate-card persistence package.

SQLite schema setup and the repository that owns every rate-card write.
"""

from rate_approval.store.repository import RateCardRepository
from rate_approval.store.schema import close_rate_card_db, init_rate_card_db, init_rate_card_tables

__all__ = [
    "RateCardRepository",
    "close_rate_card_db",
    "init_rate_card_db",
    "init_rate_card_tables",
]
