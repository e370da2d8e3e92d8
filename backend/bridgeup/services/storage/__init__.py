# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Persistence collaborators for the realtime services.
"""

from bridgeup.services.storage.base import (
    CallHistoryStore,
    MessageStore,
    PairingStore,
)
from bridgeup.services.storage.sql_storage import (
    SQLCallHistoryStore,
    SQLMessageStore,
    SQLPairingStore,
)

__all__ = [
    "CallHistoryStore",
    "MessageStore",
    "PairingStore",
    "SQLCallHistoryStore",
    "SQLMessageStore",
    "SQLPairingStore",
]
