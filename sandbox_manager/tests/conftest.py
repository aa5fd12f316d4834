# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

import sys
import threading
from pathlib import Path
from typing import List, Sequence
from unittest.mock import MagicMock

# Add parent directory to Python path to allow imports
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))


# =============================================================================
# Early Mock Setup (Before test collection)
# =============================================================================
# Mock Redis BEFORE any other imports so the Redis admission backend never
# tries to reach a real server while modules load.


def _create_mock_redis():
    """Create a mock Redis client for testing."""
    mock = MagicMock()
    mock.ping.return_value = True
    mock.set.return_value = True
    mock.delete.return_value = 1
    mock.exists.return_value = 0
    return mock


import redis

_original_redis_from_url = redis.from_url
_mock_redis_instance = _create_mock_redis()
redis.from_url = MagicMock(return_value=_mock_redis_instance)


import pytest

from sandbox_manager.common.exceptions import DriverError
from sandbox_manager.drivers.base import ClusterDriver


# =============================================================================
# Cluster Driver Fixtures
# =============================================================================


class FakeClusterDriver(ClusterDriver):
    """In-memory Cluster Driver.

    Tracks clusters in a set and records every call. Failures are injected by
    setting the ``fail_*`` attributes to a DriverError.
    """

    def __init__(self):
        self.clusters = set()
        self.calls: List[tuple] = []
        self.exec_output = "NAME   STATUS   AGE\ndefault   Active   1m\n"
        self.fail_create = None
        self.fail_wait = None
        self.fail_delete = None
        self.fail_list = None
        self.fail_exec = None
        # Set by tests that need to hold a creation in flight
        self.create_gate = None
        self._lock = threading.Lock()

    @property
    def create_calls(self) -> int:
        return sum(1 for call in self.calls if call[0] == "create")

    def create(self, name: str) -> None:
        self.calls.append(("create", name))
        if self.create_gate is not None:
            self.create_gate.wait(timeout=5)
        if self.fail_create is not None:
            raise self.fail_create
        with self._lock:
            self.clusters.add(name)

    def wait_ready(self, name: str, timeout: int) -> None:
        self.calls.append(("wait_ready", name))
        if self.fail_wait is not None:
            raise self.fail_wait

    def delete(self, name: str) -> None:
        self.calls.append(("delete", name))
        if self.fail_delete is not None:
            raise self.fail_delete
        with self._lock:
            self.clusters.discard(name)

    def list_clusters(self) -> List[str]:
        self.calls.append(("list",))
        if self.fail_list is not None:
            raise self.fail_list
        with self._lock:
            return sorted(self.clusters)

    def exec_in_context(self, name: str, argv: Sequence[str]) -> str:
        self.calls.append(("exec", name, list(argv)))
        if self.fail_exec is not None:
            raise self.fail_exec
        return self.exec_output


@pytest.fixture
def fake_driver():
    """In-memory Cluster Driver."""
    return FakeClusterDriver()


@pytest.fixture
def failing_driver_error():
    """DriverError as raised by a failed k3d call."""
    return DriverError("Failed to create cluster", "port 6443 already allocated")


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def sandbox_registry():
    """Fresh SandboxRegistry singleton."""
    from sandbox_manager.services.sandbox.registry import get_sandbox_registry

    return get_sandbox_registry()


@pytest.fixture
def session_binder(fake_driver, sandbox_registry):
    """SessionBinder singleton wired to the fake driver."""
    from sandbox_manager.services.sandbox.session import SessionBinder

    return SessionBinder(driver=fake_driver, registry=sandbox_registry)


@pytest.fixture
def sandbox_manager(fake_driver, sandbox_registry, session_binder):
    """SandboxManager singleton wired to the fake driver.

    Built before any route runs, so get_sandbox_manager() returns it.
    """
    from sandbox_manager.services.sandbox.admission import MemoryAdmissionGuard
    from sandbox_manager.services.sandbox.manager import SandboxManager

    return SandboxManager(
        driver=fake_driver,
        registry=sandbox_registry,
        guard=MemoryAdmissionGuard(),
        binder=session_binder,
    )


# =============================================================================
# Redis Fixtures
# =============================================================================


@pytest.fixture
def mock_redis_client(mocker):
    """Mock synchronous Redis client for testing."""
    mock_client = mocker.MagicMock()
    mock_client.ping.return_value = True
    mock_client.set.return_value = True
    mock_client.delete.return_value = 1
    mock_client.exists.return_value = 0
    return mock_client


# =============================================================================
# Singleton Reset Fixture
# =============================================================================


def _reset_global_state():
    from sandbox_manager.common.config import reset_config
    from sandbox_manager.common.redis_factory import RedisClientFactory
    from sandbox_manager.common.singleton import SingletonMeta
    from sandbox_manager.drivers.dispatcher import DriverDispatcher
    from sandbox_manager.services.sandbox.admission import reset_admission_guard

    SingletonMeta.reset_all_instances()
    RedisClientFactory.reset()
    reset_config()
    reset_admission_guard()
    DriverDispatcher.reset()


@pytest.fixture(autouse=True)
def reset_all_singletons_and_mock_redis(mocker, mock_redis_client, monkeypatch):
    """Reset all singleton instances and mock Redis before each test.

    This fixture is autouse=True to ensure clean state for all tests.
    """
    mocker.patch(
        "sandbox_manager.common.redis_factory.redis.from_url",
        return_value=mock_redis_client,
    )
    # Driver readiness never sleeps in tests
    monkeypatch.setenv("SANDBOX_READY_SETTLE", "0")

    _reset_global_state()
    yield
    _reset_global_state()


# =============================================================================
# Session-level Cleanup for QueueListener threads
# =============================================================================


def _stop_all_queue_listeners():
    """Stop all QueueListener threads to prevent shutdown errors.

    The shared/logger.py creates QueueListener threads for thread-safe
    logging. These threads need to be stopped before the test process exits.
    """
    import logging

    for name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(name)
        if hasattr(logger, "_queue_listener") and logger._queue_listener is not None:
            try:
                logger._queue_listener.stop()
                logger._queue_listener = None
            except Exception:
                pass


@pytest.fixture(scope="session", autouse=True)
def cleanup_queue_listeners_at_session_end():
    """Cleanup QueueListener threads at the end of the test session."""
    yield
    _stop_all_queue_listeners()


# Also register an atexit handler as a fallback
import atexit

atexit.register(_stop_all_queue_listeners)
