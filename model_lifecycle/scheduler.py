"""Periodic freshness sweeps for a set of tenants.

No external scheduler library is required; the loop is a plain asyncio task.

Typical usage via the CLI::

    model-lifecycle start-scheduler --tenant acme --tenant globex

Or import directly::

    from model_lifecycle.scheduler import SweepScheduler
    scheduler = SweepScheduler(orchestrator, ["acme"], interval_minutes=60)
    await scheduler.start()  # runs until scheduler.stop()

Each tick runs ``LifecycleOrchestrator.run_sweep`` once per tenant, one
tenant after another. A failure for one tenant is logged and does not stop
the other tenants or the loop. Types that failed or went stale are picked up
on the next tick, never retried immediately.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from model_lifecycle.governance.registry import validate_tenant_id
from model_lifecycle.pipeline.orchestrator import LifecycleOrchestrator, SweepResult
from model_lifecycle.utils.time_utils import utcnow

log = logging.getLogger(__name__)


class SweepScheduler:
    """Runs ``run_sweep`` for every tenant every ``interval_minutes``.

    Parameters
    ----------
    orchestrator:
        Orchestrator shared by all tenants.
    tenant_ids:
        Tenants to keep fresh.
    interval_minutes:
        Minutes between the START of consecutive ticks.
    """

    def __init__(
        self,
        orchestrator: LifecycleOrchestrator,
        tenant_ids: list[str],
        interval_minutes: float = 60.0,
    ) -> None:
        if interval_minutes <= 0:
            raise ValueError(f"interval_minutes must be > 0, got {interval_minutes}.")
        self.orchestrator = orchestrator
        self.tenant_ids = [validate_tenant_id(t) for t in tenant_ids]
        self.interval_minutes = interval_minutes
        self._stop_event: Optional[asyncio.Event] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    async def run_once(self) -> dict[str, Optional[SweepResult]]:
        """One sweep per tenant. A tenant whose sweep raised maps to None."""
        log.info(
            "=== Sweep starting at %s for %d tenant(s) ===",
            utcnow().isoformat(timespec="seconds"), len(self.tenant_ids),
        )
        results: dict[str, Optional[SweepResult]] = {}
        for tenant_id in self.tenant_ids:
            try:
                results[tenant_id] = await self.orchestrator.run_sweep(tenant_id)
            except Exception as exc:
                log.error("[%s] Sweep failed: %s", tenant_id, exc, exc_info=True)
                results[tenant_id] = None
        self.ticks += 1
        return results

    async def start(self) -> None:
        """Sweep immediately, then every interval until ``stop()`` is called."""
        self._stop_event = asyncio.Event()
        log.info(
            "Scheduler started.  tenants=%s  interval=%.1f min",
            self.tenant_ids, self.interval_minutes,
        )
        while not self._stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self.interval_minutes * 60
                )
            except asyncio.TimeoutError:
                continue
        log.info("Scheduler stopped after %d tick(s).", self.ticks)

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
