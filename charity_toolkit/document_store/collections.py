"""Collection names used by the back office.

The document store creates collections on first write, so these constants
are the only place the layout is written down.
"""

RECYCLE_BIN = "recycle_bin"
PAYMENTS = "payments"
EXPENSES = "expenses"
USERS = "users"
PROJECTS = "projects"
SYSTEM_SETTINGS = "system_settings"
ACTIVITY_LOGS = "activity_logs"

# Pseudo-collection for held records that have no restorable source document
SYSTEM_LOGS = "system_logs"
