# SPDX-FileCopyrightText: 2025 WeCode, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Sandbox scheduler for the periodic expiry sweep.

Uses APScheduler for task scheduling. The sweep itself lives in
SandboxManager._collect_expired_sandboxes.
"""

from typing import TYPE_CHECKING, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from sandbox_manager.common.config import get_config
from shared.logger import setup_logger

if TYPE_CHECKING:
    from sandbox_manager.services.sandbox.manager import SandboxManager

logger = setup_logger(__name__)


class SandboxScheduler:
    """Scheduler for sandbox background tasks.

    Runs one job, the sandbox GC, every SANDBOX_GC_INTERVAL seconds
    (default 5 minutes).
    """

    def __init__(self, sandbox_manager: "SandboxManager"):
        """Initialize the scheduler.

        Args:
            sandbox_manager: SandboxManager instance for task execution
        """
        self._sandbox_manager = sandbox_manager
        self._scheduler: Optional[AsyncIOScheduler] = None

    async def start(self) -> None:
        """Start the scheduler with configured jobs."""
        if self._scheduler is not None and self._scheduler.running:
            logger.warning("[SandboxScheduler] Scheduler is already running")
            return

        gc_interval = get_config().sandbox.gc_interval

        self._scheduler = AsyncIOScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,  # Combine missed executions into one
                "max_instances": 1,  # Only one instance of each job at a time
                "misfire_grace_time": 30,  # Allow 30s grace period for missed jobs
            },
        )

        self._scheduler.add_job(
            self._sandbox_manager._collect_expired_sandboxes,
            IntervalTrigger(seconds=gc_interval),
            id="sandbox_gc",
            name="Sandbox GC",
            replace_existing=True,
        )

        self._scheduler.start()
        logger.info(
            f"[SandboxScheduler] Started with jobs: sandbox_gc (every {gc_interval}s)"
        )

    async def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("[SandboxScheduler] Stopped")
        self._scheduler = None

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._scheduler is not None and self._scheduler.running
