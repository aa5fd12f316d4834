# SPDX-FileCopyrightText: 2025 WeCode, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Session binding between client-held tokens and sandboxes.

The token is a signed JWT carrying the sandbox id. It is only a reference:
every use re-validates the sandbox against the Cluster Driver, and a dead
sandbox has its stale registry entry removed here.
"""

import asyncio
import time
from typing import Optional

import jwt

from sandbox_manager.common.config import get_config
from sandbox_manager.common.exceptions import (
    DriverError,
    SandboxNotFoundError,
    SessionMissingError,
)
from sandbox_manager.common.singleton import SingletonMeta
from sandbox_manager.drivers.base import ClusterDriver
from sandbox_manager.drivers.dispatcher import DriverDispatcher
from sandbox_manager.services.sandbox.registry import (
    SandboxRegistry,
    get_sandbox_registry,
)
from shared.logger import setup_logger

logger = setup_logger(__name__)


class SessionBinder(metaclass=SingletonMeta):
    """Issues, resolves and validates session tokens."""

    def __init__(
        self,
        driver: Optional[ClusterDriver] = None,
        registry: Optional[SandboxRegistry] = None,
    ):
        self._config = get_config().session
        self._driver = driver
        self._registry = registry or get_sandbox_registry()

    @property
    def driver(self) -> ClusterDriver:
        if self._driver is None:
            self._driver = DriverDispatcher.get_driver()
        return self._driver

    def issue(self, sandbox_id: str) -> str:
        """Create a signed token bound to ``sandbox_id``."""
        payload = {"sid": sandbox_id, "iat": int(time.time())}
        return jwt.encode(
            payload, self._config.secret, algorithm=self._config.algorithm
        )

    def resolve(self, token: Optional[str]) -> Optional[str]:
        """Return the sandbox id a token refers to, or None.

        Missing, malformed and badly signed tokens all resolve to None.
        """
        if not token:
            return None
        try:
            payload = jwt.decode(
                token, self._config.secret, algorithms=[self._config.algorithm]
            )
        except jwt.InvalidTokenError as e:
            logger.warning(f"[SessionBinder] Rejected session token: {e}")
            return None
        sandbox_id = payload.get("sid")
        return sandbox_id if isinstance(sandbox_id, str) and sandbox_id else None

    def _is_live(self, sandbox_id: str) -> bool:
        try:
            return self.driver.exists(sandbox_id)
        except DriverError as e:
            # An unverifiable sandbox is treated as gone
            logger.warning(
                f"[SessionBinder] Could not list clusters while validating "
                f"{sandbox_id}: {e}"
            )
            return False

    async def validate(self, sandbox_id: str) -> bool:
        """Check the sandbox against the driver's cluster list.

        Not cached. On a dead sandbox the stale registry entry is removed.

        Returns:
            True if the sandbox is live
        """
        live = await asyncio.to_thread(self._is_live, sandbox_id)
        if not live:
            logger.info(f"[SessionBinder] Sandbox {sandbox_id} is dead")
            self._registry.remove(sandbox_id)
        return live

    async def require_live(self, token: Optional[str]) -> str:
        """Resolve a token to a live sandbox id.

        Raises:
            SessionMissingError: No usable token was presented
            SandboxNotFoundError: The bound sandbox no longer exists; the
                caller must clear the client-side token
        """
        sandbox_id = self.resolve(token)
        if sandbox_id is None:
            raise SessionMissingError()
        if not await self.validate(sandbox_id):
            raise SandboxNotFoundError(sandbox_id)
        return sandbox_id


def get_session_binder() -> SessionBinder:
    """Get the SessionBinder singleton instance."""
    return SessionBinder()
