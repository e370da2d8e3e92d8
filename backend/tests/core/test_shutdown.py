# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Tests for graceful shutdown state.
"""

import asyncio

import pytest

from bridgeup.core.shutdown import ShutdownManager


class TestShutdownManager:
    """Tests for ShutdownManager class."""

    @pytest.fixture
    def shutdown_manager(self):
        """Create a fresh ShutdownManager for each test."""
        manager = ShutdownManager()
        yield manager
        # Reset state after test
        manager.reset()

    @pytest.mark.asyncio
    async def test_initial_state(self, shutdown_manager):
        assert shutdown_manager.is_shutting_down is False
        assert shutdown_manager.shutdown_duration == 0.0

    @pytest.mark.asyncio
    async def test_initiate_shutdown(self, shutdown_manager):
        await shutdown_manager.initiate_shutdown()

        assert shutdown_manager.is_shutting_down is True
        assert shutdown_manager.shutdown_duration >= 0

    @pytest.mark.asyncio
    async def test_initiate_shutdown_idempotent(self, shutdown_manager):
        """Initiating shutdown twice keeps the first start time."""
        await shutdown_manager.initiate_shutdown()
        first_duration = shutdown_manager.shutdown_duration

        await asyncio.sleep(0.05)
        await shutdown_manager.initiate_shutdown()

        # Duration should continue from first initiation
        assert shutdown_manager.shutdown_duration > first_duration

    def test_reset(self, shutdown_manager):
        shutdown_manager._shutting_down = True
        shutdown_manager.reset()

        assert shutdown_manager.is_shutting_down is False
        assert shutdown_manager.shutdown_duration == 0.0
