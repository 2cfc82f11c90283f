"""
Recycle Bin Module - reversible deletes for back-office records.

Deleted payments, expenses, users and configuration entries are held in a
time-boxed holding collection, from which they can be restored (together
with their batch) or purged.
"""

from .exceptions import PartialBatchFailure, RecordNotFound, RecycleBinError
from .models import RETENTION_DAYS, HeldRecord, RecycleItemKind, RestoreResult
from .policies import (
    MonthConfigRestore,
    RestorePolicy,
    StandardRestore,
    UserRestore,
    YearConfigRestore,
    policy_for,
)
from .services import RecycleBinService

__all__ = [
    # Services
    "RecycleBinService",
    # Models
    "HeldRecord",
    "RecycleItemKind",
    "RestoreResult",
    "RETENTION_DAYS",
    # Restore policies
    "RestorePolicy",
    "StandardRestore",
    "UserRestore",
    "YearConfigRestore",
    "MonthConfigRestore",
    "policy_for",
    # Exceptions
    "RecycleBinError",
    "RecordNotFound",
    "PartialBatchFailure",
]
