# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Presence registry.

Maps a user id to the set of live transport connections (socket ids) bound
to it. A user is online iff that set is non-empty. The registry is plain
process memory: after a restart every user is offline until their client
sends ``join`` again.

All methods are synchronous and never await, so each call runs as one
uninterrupted step on the event loop. Callers that need a consistent
read-modify-broadcast sequence for one user serialize on that user id
themselves (see ConnectionLifecycleManager).
"""

import logging
from typing import Dict, FrozenSet, Set

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Process-wide user id -> connection ids mapping."""

    def __init__(self):
        self._sessions: Dict[str, Set[str]] = {}

    def register_connection(self, user_id: str, connection_id: str) -> bool:
        """
        Bind a connection to a user.

        Idempotent: registering the same connection twice changes nothing.

        Returns:
            True if this is the user's first connection (offline -> online)
        """
        connections = self._sessions.get(user_id)
        if connections is None:
            self._sessions[user_id] = {connection_id}
            logger.debug(
                f"[Presence] user={user_id} online via connection={connection_id}"
            )
            return True
        connections.add(connection_id)
        return False

    def unregister_connection(self, user_id: str, connection_id: str) -> bool:
        """
        Remove a connection from a user.

        Returns:
            True if the user has no connection left (online -> offline).
            Unknown users or connections return False.
        """
        connections = self._sessions.get(user_id)
        if connections is None or connection_id not in connections:
            return False
        connections.discard(connection_id)
        if connections:
            return False
        del self._sessions[user_id]
        logger.debug(f"[Presence] user={user_id} offline")
        return True

    def is_online(self, user_id: str) -> bool:
        return user_id in self._sessions

    def online_user_ids(self) -> FrozenSet[str]:
        """Snapshot of the online user ids."""
        return frozenset(self._sessions)

    def connections_of(self, user_id: str) -> FrozenSet[str]:
        return frozenset(self._sessions.get(user_id, ()))

    @property
    def online_count(self) -> int:
        return len(self._sessions)

    @property
    def connection_count(self) -> int:
        return sum(len(connections) for connections in self._sessions.values())
