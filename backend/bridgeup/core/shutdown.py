# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Graceful shutdown state.

Usage:
    from bridgeup.core.shutdown import shutdown_manager

    # Refuse new socket connections while shutting down
    if shutdown_manager.is_shutting_down:
        raise ConnectionRefusedError("Server is shutting down")

Live calls are torn down by the call signaling service during the
application lifespan shutdown phase.
"""

import asyncio
import logging
import time
from typing import Optional

logger = logging.getLogger(__name__)


class ShutdownManager:
    """Tracks whether the process is shutting down."""

    def __init__(self):
        self._shutting_down: bool = False
        self._lock: asyncio.Lock = asyncio.Lock()
        self._shutdown_start_time: Optional[float] = None

    @property
    def is_shutting_down(self) -> bool:
        """Check if the application is in shutdown state."""
        return self._shutting_down

    @property
    def shutdown_duration(self) -> float:
        """Get the duration since shutdown started (in seconds)."""
        if self._shutdown_start_time is None:
            return 0.0
        return time.time() - self._shutdown_start_time

    async def initiate_shutdown(self) -> None:
        """Set the shutdown flag. Calling it twice is a no-op."""
        async with self._lock:
            if self._shutting_down:
                logger.warning("Shutdown already initiated")
                return

            self._shutting_down = True
            self._shutdown_start_time = time.time()
            logger.info("Graceful shutdown initiated")

    def reset(self) -> None:
        """
        Reset shutdown state (for testing purposes).

        WARNING: This should only be used in tests.
        """
        self._shutting_down = False
        self._shutdown_start_time = None
        logger.debug("Shutdown manager state reset")


# Global shutdown manager instance
shutdown_manager = ShutdownManager()
