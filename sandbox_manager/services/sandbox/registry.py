# SPDX-FileCopyrightText: 2025 WeCode, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""In-memory registry of live sandboxes.

Maps sandbox_id -> creation timestamp. This is process-local bookkeeping:
the Cluster Driver's list is the ground truth, and every read path that
matters reconciles against it. Nothing is persisted across restarts.
"""

import threading
import time
from typing import Dict, Optional

from sandbox_manager.common.exceptions import SandboxIdCollisionError
from sandbox_manager.common.singleton import SingletonMeta
from shared.logger import setup_logger

logger = setup_logger(__name__)


class SandboxRegistry(metaclass=SingletonMeta):
    """Lock-guarded mapping of sandbox ids to creation times.

    All read-modify-write sequences run under one lock, so the request
    handlers and the expiry sweeper can share it safely.
    """

    def __init__(self):
        self._entries: Dict[str, float] = {}
        self._lock = threading.Lock()

    def put(self, sandbox_id: str, created_at: Optional[float] = None) -> float:
        """Record a newly created sandbox.

        Args:
            sandbox_id: Sandbox ID
            created_at: Creation time, defaults to now

        Returns:
            The recorded creation time

        Raises:
            SandboxIdCollisionError: If the id is already registered
        """
        if created_at is None:
            created_at = time.time()
        with self._lock:
            if sandbox_id in self._entries:
                raise SandboxIdCollisionError(sandbox_id)
            self._entries[sandbox_id] = created_at
        logger.info(f"[SandboxRegistry] Registered sandbox {sandbox_id}")
        return created_at

    def adopt(self, sandbox_id: str, created_at: Optional[float] = None) -> float:
        """Record a sandbox the driver knows about but the registry does not.

        Existing entries are left untouched, so a creation time is never
        overwritten.

        Returns:
            The creation time stored for the id
        """
        if created_at is None:
            created_at = time.time()
        with self._lock:
            inserted = sandbox_id not in self._entries
            stored = self._entries.setdefault(sandbox_id, created_at)
        if inserted:
            logger.info(f"[SandboxRegistry] Adopted sandbox {sandbox_id}")
        return stored

    def get(self, sandbox_id: str) -> Optional[float]:
        with self._lock:
            return self._entries.get(sandbox_id)

    def contains(self, sandbox_id: str) -> bool:
        with self._lock:
            return sandbox_id in self._entries

    def remove(self, sandbox_id: str) -> bool:
        """Forget a sandbox. Removing an unknown id is a no-op.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            removed = self._entries.pop(sandbox_id, None) is not None
        if removed:
            logger.info(f"[SandboxRegistry] Removed sandbox {sandbox_id}")
        return removed

    def snapshot(self) -> Dict[str, float]:
        """Copy of the current mapping, safe to iterate while others mutate."""
        with self._lock:
            return dict(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def get_sandbox_registry() -> SandboxRegistry:
    """Get the SandboxRegistry singleton instance."""
    return SandboxRegistry()
