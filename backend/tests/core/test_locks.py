# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

import asyncio

import pytest

from bridgeup.core.locks import KeyedLocks


class TestKeyedLocks:
    @pytest.mark.asyncio
    async def test_same_key_is_serialized(self):
        locks = KeyedLocks()
        order = []

        async def worker(name: str):
            async with locks.hold("user-1"):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))

        assert order in (
            ["a-start", "a-end", "b-start", "b-end"],
            ["b-start", "b-end", "a-start", "a-end"],
        )

    @pytest.mark.asyncio
    async def test_different_keys_run_concurrently(self):
        locks = KeyedLocks()
        inside = asyncio.Event()
        released = asyncio.Event()

        async def first():
            async with locks.hold("a"):
                inside.set()
                await released.wait()

        task = asyncio.create_task(first())
        await inside.wait()

        # Must not block on the lock held for "a"
        async with locks.hold("b"):
            pass

        released.set()
        await task

    @pytest.mark.asyncio
    async def test_locks_are_dropped_when_idle(self):
        locks = KeyedLocks()

        async with locks.hold("x"):
            assert len(locks) == 1

        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_hold_many_in_opposite_order_does_not_deadlock(self):
        locks = KeyedLocks()

        async def worker(keys):
            for _ in range(20):
                async with locks.hold_many(keys):
                    await asyncio.sleep(0)

        await asyncio.wait_for(
            asyncio.gather(worker(["a", "b"]), worker(["b", "a"])), timeout=2
        )
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_hold_many_deduplicates_keys(self):
        locks = KeyedLocks()

        async with locks.hold_many(["a", "a"]):
            assert len(locks) == 1
