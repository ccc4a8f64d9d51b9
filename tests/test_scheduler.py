"""Tests for scheduler.py — SweepScheduler."""

from __future__ import annotations

import asyncio

import pytest

from model_lifecycle.pipeline.orchestrator import UpdateStatus
from model_lifecycle.scheduler import SweepScheduler


def test_rejects_bad_arguments(orchestrator):
    with pytest.raises(ValueError):
        SweepScheduler(orchestrator, ["acme"], interval_minutes=0)
    with pytest.raises(ValueError):
        SweepScheduler(orchestrator, ["not a tenant"])


@pytest.mark.asyncio
async def test_run_once_sweeps_every_tenant(orchestrator, seed_tenant):
    seed_tenant("acme")
    seed_tenant("globex", days=5)
    scheduler = SweepScheduler(orchestrator, ["acme", "globex"])

    results = await scheduler.run_once()

    assert set(results) == {"acme", "globex"}
    assert len(results["acme"].trained) == 5
    assert "sales_forecast" in results["globex"].by_status(UpdateStatus.SKIPPED)
    assert scheduler.ticks == 1


@pytest.mark.asyncio
async def test_failing_tenant_does_not_stop_others(orchestrator, seed_tenant, monkeypatch):
    seed_tenant("globex")
    real_run_sweep = orchestrator.run_sweep

    async def flaky_run_sweep(tenant_id):
        if tenant_id == "acme":
            raise RuntimeError("tenant exploded")
        return await real_run_sweep(tenant_id)

    monkeypatch.setattr(orchestrator, "run_sweep", flaky_run_sweep)
    results = await SweepScheduler(orchestrator, ["acme", "globex"]).run_once()

    assert results["acme"] is None
    assert len(results["globex"].trained) == 5


@pytest.mark.asyncio
async def test_start_and_stop(orchestrator, seed_tenant):
    seed_tenant("acme")
    scheduler = SweepScheduler(orchestrator, ["acme"], interval_minutes=60)
    task = asyncio.create_task(scheduler.start())

    for _ in range(500):
        if scheduler.ticks >= 1:
            break
        await asyncio.sleep(0.01)
    assert scheduler.running

    scheduler.stop()
    await asyncio.wait_for(task, timeout=5)

    assert scheduler.ticks == 1
    assert not scheduler.running
    assert orchestrator.registry("acme") is not None
