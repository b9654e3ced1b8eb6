"""
Change notices passed over the store's pub/sub channel.

A notice only says WHICH collection changed and WHY. Subscribers always
re-read the collection, so a lost notice just means a stale view until
the next one arrives.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class Collection(str, Enum):
    """The two persisted record sets."""
    EXPENSES = "expenses"
    BUDGETS = "budgets"


class ChangeReason(str, Enum):
    ADDED = "added"
    DELETED = "deleted"
    NOOP = "noop"              # delete of an id that was not there
    UPSERTED = "upserted"
    RECONCILED = "reconciled"  # missing budgets synthesized on read
    EXTERNAL = "external"      # written by another context


class ChangeNotice(BaseModel):
    model_config = ConfigDict(frozen=True)

    collection: Collection
    reason: ChangeReason
