"""Tests for the background workflow runner."""
import asyncio

import pytest

from services.async_processor import AsyncWorkflowProcessor


@pytest.mark.asyncio
async def test_submitted_task_runs_and_is_untracked_when_done():
    processor = AsyncWorkflowProcessor()
    ran = asyncio.Event()

    async def work():
        ran.set()

    task = processor.submit_task(work(), name="work")
    await task

    assert ran.is_set()
    assert processor.pending == 0


@pytest.mark.asyncio
async def test_failures_are_logged_not_raised(caplog):
    processor = AsyncWorkflowProcessor()

    async def boom():
        raise RuntimeError("disk full")

    await processor.submit_task(boom(), name="boom")

    assert "Background task boom failed" in caplog.text


@pytest.mark.asyncio
async def test_shutdown_waits_for_running_tasks():
    processor = AsyncWorkflowProcessor()
    finished = []

    async def slow():
        await asyncio.sleep(0.05)
        finished.append(True)

    processor.submit_task(slow())
    await processor.shutdown(timeout=5)

    assert finished == [True]


@pytest.mark.asyncio
async def test_shutdown_cancels_after_timeout():
    processor = AsyncWorkflowProcessor()

    task = processor.submit_task(asyncio.sleep(60), name="stuck")
    await processor.shutdown(timeout=0.01)

    assert task.cancelled()
    assert processor.pending == 0
