"""Tests for jadwa.core.locks and jadwa.core.background."""

from __future__ import annotations

import asyncio

import pytest

from jadwa.core.background import BackgroundDispatcher
from jadwa.core.locks import KeyedLock


@pytest.mark.asyncio
async def test_same_key_is_serialized():
    locks = KeyedLock()
    events: list[str] = []

    async def worker(name: str):
        async with locks.acquire("engagement-1"):
            events.append(f"{name}:start")
            await asyncio.sleep(0.01)
            events.append(f"{name}:end")

    await asyncio.gather(worker("a"), worker("b"))

    assert events in (
        ["a:start", "a:end", "b:start", "b:end"],
        ["b:start", "b:end", "a:start", "a:end"],
    )
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_different_keys_interleave():
    locks = KeyedLock()
    started = asyncio.Event()
    released = asyncio.Event()

    async def holder():
        async with locks.acquire("one"):
            started.set()
            await released.wait()

    task = asyncio.create_task(holder())
    await started.wait()

    # A different key must not wait for "one"
    async with locks.acquire("two"):
        assert len(locks) == 2

    released.set()
    await task
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_dispatcher_swallows_failures():
    dispatcher = BackgroundDispatcher()
    done: list[str] = []

    async def ok():
        done.append("ok")

    async def broken():
        raise RuntimeError("notifier down")

    dispatcher.dispatch(broken(), name="broken")
    dispatcher.dispatch(ok(), name="ok")
    await dispatcher.drain()

    assert done == ["ok"]
    assert dispatcher.pending == 0
