# SPDX-FileCopyrightText: 2025 WeCode, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Common utilities and base classes for sandbox_manager services."""

from sandbox_manager.common.config import (
    AdmissionConfig,
    AppConfig,
    DriverConfig,
    RedisConfig,
    SandboxConfig,
    SessionConfig,
    TimeoutConfig,
    get_config,
    reset_config,
)
from sandbox_manager.common.singleton import SingletonMeta

__all__ = [
    "SingletonMeta",
    "AppConfig",
    "SandboxConfig",
    "TimeoutConfig",
    "DriverConfig",
    "SessionConfig",
    "RedisConfig",
    "AdmissionConfig",
    "get_config",
    "reset_config",
]
