"""
Database models package.

Importing this package registers every model with ``Base.metadata``.
"""

from opsconsole.database.models.order import (
    Order,
    TrackingEntry,
    TrackingEntryImmutableError,
)

__all__ = [
    "Order",
    "TrackingEntry",
    "TrackingEntryImmutableError",
]
