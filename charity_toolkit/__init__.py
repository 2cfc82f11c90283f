"""
Charity Python Toolkit - back-office tools for a membership charity.

Deleting a payment, an expense, a member or a whole collection year is a
routine admin action, and routine admin actions get made by mistake. This
toolkit routes every such delete through a recycle bin from which the
record can be put back for a week.

Key Features
------------
* **Recycle Bin**: Soft-delete ledger with batch restore and purge
* **Retention Sweep**: Held records are discarded after seven days
* **Settings**: Collection years and months for monthly dues
* **Activity Log**: Rolling history of admin actions
* **Document Store**: Async document store with memory and SQL backends

Quick Start
-----------
>>> from charity_toolkit import InMemoryDocumentStore, RecycleBinService
>>>
>>> store = InMemoryDocumentStore()
>>> bin = RecycleBinService(store)
>>>
>>> held_id = await bin.soft_delete("payments", "P1", "payment", "Jan Dues")
>>> await bin.restore(held_id)
"""

__version__ = "1.0.0"

from .activity_log import ActivityLogService
from .config import CharityConfig, configure, get_config, set_config
from .document_store import (
    DocumentStore,
    InMemoryDocumentStore,
    SQLDocumentStore,
    get_document_store,
)
from .finance import FinanceService
from .recycle_bin import HeldRecord, RecycleBinService, RecycleItemKind
from .settings import SettingsService

__all__ = [
    # Recycle Bin
    "RecycleBinService",
    "HeldRecord",
    "RecycleItemKind",
    # Document Store
    "DocumentStore",
    "InMemoryDocumentStore",
    "SQLDocumentStore",
    "get_document_store",
    # Services
    "SettingsService",
    "ActivityLogService",
    "FinanceService",
    # Configuration
    "CharityConfig",
    "get_config",
    "set_config",
    "configure",
]
