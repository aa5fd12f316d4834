# SPDX-FileCopyrightText: 2025 WeCode, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Sandbox service module.

This module provides the sandbox lifecycle core:
- Sandbox registry (which sandboxes exist and when they were created)
- Per-client admission control for creation
- Session token binding and validation
- Background expiry sweeping

Public API:
    - SandboxManager: Main service for sandbox operations
    - get_sandbox_manager(): Get the singleton SandboxManager instance
    - SandboxScheduler: Background scheduler for the expiry sweep
"""

from sandbox_manager.services.sandbox.admission import (
    AdmissionGuard,
    MemoryAdmissionGuard,
    RedisAdmissionGuard,
    get_admission_guard,
)
from sandbox_manager.services.sandbox.manager import (
    SandboxManager,
    get_sandbox_manager,
)
from sandbox_manager.services.sandbox.registry import (
    SandboxRegistry,
    get_sandbox_registry,
)
from sandbox_manager.services.sandbox.scheduler import SandboxScheduler
from sandbox_manager.services.sandbox.session import (
    SessionBinder,
    get_session_binder,
)

__all__ = [
    "SandboxManager",
    "get_sandbox_manager",
    "SandboxScheduler",
    "SandboxRegistry",
    "get_sandbox_registry",
    "AdmissionGuard",
    "MemoryAdmissionGuard",
    "RedisAdmissionGuard",
    "get_admission_guard",
    "SessionBinder",
    "get_session_binder",
]
