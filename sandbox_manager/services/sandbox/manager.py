# SPDX-FileCopyrightText: 2025 WeCode, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""SandboxManager service for sandbox lifecycle management.

This service handles:
- Sandbox creation (or reuse of the session's live sandbox) under admission control
- Command execution against a sandbox's cluster context
- Explicit deletion and expiry sweeping, which share one deletion path
- Rebuilding the registry from the driver after a restart
"""

import asyncio
import shlex
import time
from typing import TYPE_CHECKING, List, Optional, Set

from sandbox_manager.common.config import get_config
from sandbox_manager.common.exceptions import (
    DriverError,
    InvalidCommandError,
    SandboxIdCollisionError,
    SandboxError,
    SandboxNotFoundError,
)
from sandbox_manager.common.singleton import SingletonMeta
from sandbox_manager.drivers.base import ClusterDriver
from sandbox_manager.drivers.dispatcher import DriverDispatcher
from sandbox_manager.models.sandbox import CreateResult, Sandbox
from sandbox_manager.services.sandbox.admission import (
    AdmissionGuard,
    get_admission_guard,
)
from sandbox_manager.services.sandbox.registry import (
    SandboxRegistry,
    get_sandbox_registry,
)
from sandbox_manager.services.sandbox.session import (
    SessionBinder,
    get_session_binder,
)
from sandbox_manager.utils.sandbox_id import generate_sandbox_id, is_sandbox_id
from shared.logger import setup_logger

if TYPE_CHECKING:
    from sandbox_manager.services.sandbox.scheduler import SandboxScheduler

logger = setup_logger(__name__)

# Attempts at drawing an unregistered id before giving up
MAX_ID_ATTEMPTS = 5

# kubectl flags that would point a command at another cluster's context
RETARGETING_FLAGS = frozenset(
    ["--context", "--kubeconfig", "--cluster", "--server", "-s", "--user", "--token"]
)


class SandboxManager(metaclass=SingletonMeta):
    """Manager for sandbox lifecycle.

    Each sandbox moves absent -> creating -> live -> (deleting) -> absent.
    A sandbox is registered only after the driver confirms it is ready, and
    leaves the registry only after the driver confirms it is gone.
    """

    def __init__(
        self,
        driver: Optional[ClusterDriver] = None,
        registry: Optional[SandboxRegistry] = None,
        guard: Optional[AdmissionGuard] = None,
        binder: Optional[SessionBinder] = None,
    ):
        """Initialize the SandboxManager.

        Collaborators default to the process-wide singletons; tests inject
        their own.
        """
        self._config = get_config()
        self._driver = driver
        self._registry = registry or get_sandbox_registry()
        self._guard = guard or get_admission_guard()
        self._binder = binder or get_session_binder()
        self._scheduler: Optional["SandboxScheduler"] = None
        self._shutting_down = False
        self._cleanup_tasks: Set[asyncio.Future] = set()

    @property
    def driver(self) -> ClusterDriver:
        if self._driver is None:
            self._driver = DriverDispatcher.get_driver()
        return self._driver

    @property
    def lifetime(self) -> int:
        return self._config.sandbox.lifetime

    @property
    def registry(self) -> SandboxRegistry:
        return self._registry

    @property
    def binder(self) -> SessionBinder:
        return self._binder

    def _to_sandbox(self, sandbox_id: str, created_at: float) -> Sandbox:
        return Sandbox(
            sandbox_id=sandbox_id, created_at=created_at, lifetime=self.lifetime
        )

    # =========================================================================
    # Sandbox Lifecycle
    # =========================================================================

    async def create_or_reuse(
        self, client_key: str, existing_token: Optional[str] = None
    ) -> CreateResult:
        """Return the session's live sandbox, or create a new one.

        Args:
            client_key: Client identity used for admission control
            existing_token: Session token presented by the client, if any

        Returns:
            CreateResult with the sandbox, its session token and whether it
            was reused

        Raises:
            AdmissionDeniedError: A creation for this client is in flight
            DriverError: The cluster could not be created
        """
        with self._guard.admit(client_key):
            existing_id = self._binder.resolve(existing_token)
            stale = False
            if existing_id is not None:
                if await self._binder.validate(existing_id):
                    # The driver is ground truth; adopt ids this process lost
                    created_at = self._registry.adopt(existing_id)
                    sandbox = self._to_sandbox(existing_id, created_at)
                    logger.info(
                        f"[SandboxManager] Reusing sandbox {existing_id} "
                        f"for {client_key}, expires_in={sandbox.time_remaining()}s"
                    )
                    return CreateResult(
                        sandbox=sandbox, token=existing_token, reused=True
                    )
                logger.info(
                    f"[SandboxManager] Discarding stale binding to {existing_id} "
                    f"for {client_key}"
                )
                stale = True

            try:
                sandbox = await self._create_sandbox(client_key)
            except SandboxError as e:
                if stale:
                    # The presented token is dead whether or not creation worked
                    e.clear_session = True
                raise
            return CreateResult(
                sandbox=sandbox, token=self._binder.issue(sandbox.sandbox_id)
            )

    def _new_sandbox_id(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            sandbox_id = generate_sandbox_id()
            if not self._registry.contains(sandbox_id):
                return sandbox_id
            logger.warning(f"[SandboxManager] Generated id {sandbox_id} already in use")
        raise SandboxIdCollisionError(sandbox_id)

    def _provision(self, sandbox_id: str) -> None:
        """Create the cluster and wait for it. Runs in a worker thread."""
        self.driver.create(sandbox_id)
        self.driver.wait_ready(sandbox_id, self._config.timeout.ready)

    async def _create_sandbox(self, client_key: str) -> Sandbox:
        sandbox_id = self._new_sandbox_id()
        logger.info(f"[SandboxManager] Creating sandbox {sandbox_id} for {client_key}")

        provisioning = asyncio.ensure_future(
            asyncio.to_thread(self._provision, sandbox_id)
        )
        try:
            # Cancelling the request does not stop the worker thread
            await asyncio.shield(provisioning)
        except asyncio.CancelledError:
            logger.warning(
                f"[SandboxManager] Creation of {sandbox_id} cancelled, discarding "
                f"the cluster once provisioning stops"
            )
            cleanup = asyncio.ensure_future(
                self._discard_after_provisioning(sandbox_id, provisioning)
            )
            self._cleanup_tasks.add(cleanup)
            cleanup.add_done_callback(self._cleanup_tasks.discard)
            raise
        except Exception as e:
            logger.error(
                f"[SandboxManager] Failed to create sandbox {sandbox_id}: {e}"
            )
            await self._discard_partial_cluster(sandbox_id)
            if isinstance(e, DriverError):
                raise
            raise DriverError("Failed to create cluster", str(e)) from e

        created_at = self._registry.put(sandbox_id)
        logger.info(f"[SandboxManager] Sandbox created: {sandbox_id}")
        return self._to_sandbox(sandbox_id, created_at)

    async def _discard_after_provisioning(
        self, sandbox_id: str, provisioning: "asyncio.Future[None]"
    ) -> None:
        """Wait for an abandoned creation to stop, then remove its cluster."""
        await asyncio.wait([provisioning])
        if not provisioning.cancelled() and provisioning.exception() is not None:
            logger.warning(
                f"[SandboxManager] Abandoned creation of {sandbox_id} failed: "
                f"{provisioning.exception()}"
            )
        await self._discard_partial_cluster(sandbox_id)

    async def wait_for_cleanup(self) -> None:
        """Wait until every abandoned creation has been discarded."""
        if self._cleanup_tasks:
            await asyncio.gather(*list(self._cleanup_tasks))

    async def _discard_partial_cluster(self, sandbox_id: str) -> None:
        """Best-effort removal of a cluster whose creation did not finish."""
        try:
            await asyncio.to_thread(self.driver.delete, sandbox_id)
            logger.info(f"[SandboxManager] Discarded partial cluster {sandbox_id}")
        except Exception as e:
            logger.warning(
                f"[SandboxManager] Could not discard partial cluster {sandbox_id}: {e}"
            )

    async def get_status(self, sandbox_id: str) -> Sandbox:
        """Describe a validated sandbox.

        Raises:
            SandboxNotFoundError: If the sandbox is not live
        """
        if not await self._binder.validate(sandbox_id):
            raise SandboxNotFoundError(sandbox_id)
        created_at = self._registry.adopt(sandbox_id)
        return self._to_sandbox(sandbox_id, created_at)

    async def delete_sandbox(self, sandbox_id: str) -> bool:
        """Delete a sandbox's cluster, then forget it.

        Deleting a cluster that is already gone succeeds. If the driver
        fails, the registry entry is kept so the sweeper retries it.

        Returns:
            True if a registry entry was removed

        Raises:
            DriverError: The driver could not delete the cluster
        """
        logger.info(f"[SandboxManager] Deleting sandbox: {sandbox_id}")
        await asyncio.to_thread(self.driver.delete, sandbox_id)
        removed = self._registry.remove(sandbox_id)
        logger.info(f"[SandboxManager] Sandbox deleted: {sandbox_id}")
        return removed

    # =========================================================================
    # Command Execution
    # =========================================================================

    @staticmethod
    def split_command(command: Optional[str]) -> List[str]:
        """Split command text into kubectl arguments.

        A leading ``kubectl`` is dropped since the driver supplies it.

        Raises:
            InvalidCommandError: Missing text or unbalanced quoting
        """
        if command is None or not command.strip():
            raise InvalidCommandError("Command not provided")
        try:
            argv = shlex.split(command)
        except ValueError as e:
            raise InvalidCommandError(f"Invalid command: {e}") from e
        if argv and argv[0] == "kubectl":
            argv = argv[1:]
        if not argv:
            raise InvalidCommandError("Command not provided")
        for arg in argv:
            if arg == "--":
                # Everything after "--" belongs to the command run in a pod
                break
            flag = arg.split("=", 1)[0]
            if arg.startswith("-s") and not arg.startswith("--"):
                # Short form with the value attached, e.g. -shttps://host:6443
                flag = "-s"
            if flag in RETARGETING_FLAGS:
                raise InvalidCommandError(
                    f"Flag {flag} is not allowed: commands always run against "
                    f"the session's sandbox"
                )
        return argv

    async def execute(self, sandbox_id: str, command: Optional[str]) -> str:
        """Run an administrative command in the sandbox's context.

        The caller must have validated the sandbox. Commands are forwarded
        without an allow-list; the sandbox boundary is the security control,
        so only flags that would leave that boundary are refused.

        Returns:
            Raw standard output

        Raises:
            InvalidCommandError: Malformed command, raised before any driver call
            DriverError: The command failed or timed out
        """
        argv = self.split_command(command)
        logger.info(
            f"[SandboxManager] Executing command for cluster {sandbox_id}: "
            f"kubectl {' '.join(argv)}"
        )
        output = await asyncio.to_thread(self.driver.exec_in_context, sandbox_id, argv)
        logger.debug(f"[SandboxManager] Command output: {output}")
        return output

    # =========================================================================
    # Recovery
    # =========================================================================

    async def recover_sandboxes(self) -> int:
        """Adopt sandbox clusters the driver has but the registry does not.

        Recovered sandboxes get a fresh lifetime starting now, since their
        original creation time was lost with the previous process.

        Returns:
            Number of sandboxes adopted
        """
        names = await asyncio.to_thread(self.driver.list_clusters)
        adopted = 0
        for name in names:
            if not is_sandbox_id(name) or self._registry.contains(name):
                continue
            self._registry.adopt(name)
            adopted += 1
        logger.info(
            f"[SandboxManager] Recovery found {len(names)} clusters, adopted {adopted}"
        )
        return adopted

    # =========================================================================
    # Scheduled Tasks (delegated to SandboxScheduler)
    # =========================================================================

    async def start_scheduler(self) -> None:
        """Start the background sweeper."""
        if self._scheduler is not None and self._scheduler.is_running:
            logger.warning("[SandboxManager] Scheduler is already running")
            return

        # Import here to avoid circular imports
        from sandbox_manager.services.sandbox.scheduler import SandboxScheduler

        self._shutting_down = False
        self._scheduler = SandboxScheduler(self)
        await self._scheduler.start()

    async def stop_scheduler(self) -> None:
        """Stop the background sweeper."""
        self._shutting_down = True
        if self._scheduler is not None:
            await self._scheduler.stop()
            self._scheduler = None

    # =========================================================================
    # Background Task Implementations (called by SandboxScheduler)
    # =========================================================================

    async def _collect_expired_sandboxes(self, now: Optional[float] = None) -> int:
        """Delete every sandbox older than the fixed lifetime.

        Works on a registry snapshot. A failure on one sandbox is logged and
        the sweep moves on; the entry stays registered and is retried on the
        next run.

        Returns:
            Number of sandboxes deleted
        """
        if now is None:
            now = time.time()

        expired = [
            sandbox_id
            for sandbox_id, created_at in self._registry.snapshot().items()
            if self._to_sandbox(sandbox_id, created_at).is_expired(now)
        ]
        if not expired:
            logger.debug("[SandboxManager] No expired sandboxes found")
            return 0

        logger.info(
            f"[SandboxManager] Found {len(expired)} expired sandboxes to clean up"
        )

        deleted = 0
        for sandbox_id in expired:
            if self._shutting_down:
                logger.info("[SandboxManager] Shutting down, stopping sandbox GC")
                break
            try:
                await self.delete_sandbox(sandbox_id)
                deleted += 1
            except Exception as e:
                logger.warning(
                    f"[SandboxManager] Failed to cleanup sandbox {sandbox_id}: {e}"
                )

        logger.info(
            f"[SandboxManager] Sandbox GC deleted {deleted}/{len(expired)} sandboxes"
        )
        return deleted


def get_sandbox_manager() -> SandboxManager:
    """Get the global SandboxManager instance.

    Returns:
        The SandboxManager singleton
    """
    return SandboxManager()
