# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Models package
"""
from bridgeup.models.call_record import CallRecord
from bridgeup.models.message import Message
from bridgeup.models.pairing import ConnectionRequest, PairingStatus

# Do NOT import Base here to avoid conflicts with bridgeup.db.base.Base
# All models should import Base directly from bridgeup.db.base

__all__ = [
    "CallRecord",
    "ConnectionRequest",
    "Message",
    "PairingStatus",
]
