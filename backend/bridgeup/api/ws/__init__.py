# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
WebSocket API module for Socket.IO namespaces.

This module provides the Socket.IO namespace handling presence, typing and
notification relay, read receipts and call signaling.
"""

from bridgeup.api.ws.events import *  # noqa: F401,F403
from bridgeup.api.ws.realtime_namespace import (
    RealtimeNamespace,
    register_realtime_namespace,
)

__all__ = [
    "RealtimeNamespace",
    "register_realtime_namespace",
]
