# SPDX-FileCopyrightText: 2025 WeCode, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Configuration management for sandbox_manager services.

All values are read from environment variables when the config object is
first built, so tests can patch the environment and call reset_config().
"""

import math
import os
from dataclasses import dataclass, field
from typing import Optional

# Route prefix constant - use this everywhere to avoid typos
ROUTE_PREFIX = "/api"

# Cookie carrying the signed session token
SESSION_COOKIE_NAME = "sandboxId"

# Extra seconds the readiness subprocess gets beyond kubectl's own timeout
READY_PROBE_GRACE = 10

# Headroom added to the derived admission lock expiry
ADMISSION_LOCK_MARGIN = 60


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_optional_int(name: str) -> Optional[int]:
    value = os.getenv(name, "").strip()
    return int(value) if value else None


@dataclass(frozen=True)
class SandboxConfig:
    """Sandbox lifetime and sweeping configuration."""

    lifetime: int = field(
        default_factory=lambda: int(os.getenv("SANDBOX_LIFETIME", "3600"))
    )  # 1 hour
    gc_interval: int = field(
        default_factory=lambda: int(os.getenv("SANDBOX_GC_INTERVAL", "300"))
    )  # 5 minutes
    id_prefix: str = "sb-"
    id_length: int = 10
    id_alphabet: str = "abcdefghijklmnopqrstuvwxyz0123456789"
    recover_on_startup: bool = field(
        default_factory=lambda: _env_bool("SANDBOX_RECOVER_ON_STARTUP", "true")
    )


@dataclass(frozen=True)
class TimeoutConfig:
    """Timeouts (seconds) applied to every Cluster Driver invocation."""

    create: int = field(
        default_factory=lambda: int(os.getenv("SANDBOX_CREATE_TIMEOUT", "300"))
    )
    delete: int = field(
        default_factory=lambda: int(os.getenv("SANDBOX_DELETE_TIMEOUT", "120"))
    )
    list_clusters: int = field(
        default_factory=lambda: int(os.getenv("SANDBOX_LIST_TIMEOUT", "30"))
    )
    execute: int = field(
        default_factory=lambda: int(os.getenv("SANDBOX_EXEC_TIMEOUT", "60"))
    )
    ready: int = field(
        default_factory=lambda: int(os.getenv("SANDBOX_READY_TIMEOUT", "30"))
    )
    # Delay between "cluster created" and the first readiness probe
    ready_settle: float = field(
        default_factory=lambda: float(os.getenv("SANDBOX_READY_SETTLE", "10"))
    )

    def creation_budget(self) -> int:
        """Worst-case seconds one creation can take, failure cleanup included."""
        return (
            self.create
            + math.ceil(self.ready_settle)
            + self.ready
            + READY_PROBE_GRACE
            + self.delete
        )


@dataclass(frozen=True)
class DriverConfig:
    """Cluster Driver selection and k3d/kubectl invocation settings."""

    mode: str = field(default_factory=lambda: os.getenv("SANDBOX_DRIVER_MODE", "k3d"))
    # JSON map of mode -> import path of a ClusterDriver subclass
    driver_config: str = field(
        default_factory=lambda: os.getenv(
            "SANDBOX_DRIVER_CONFIG",
            '{"k3d":"sandbox_manager.drivers.k3d.K3dDriver"}',
        )
    )
    k3d_binary: str = field(default_factory=lambda: os.getenv("K3D_BINARY", "k3d"))
    kubectl_binary: str = field(
        default_factory=lambda: os.getenv("KUBECTL_BINARY", "kubectl")
    )
    # Leave empty to let k3d pick a free host port for each cluster API
    api_port: str = field(default_factory=lambda: os.getenv("K3D_API_PORT", ""))
    extra_args: str = field(
        default_factory=lambda: os.getenv(
            "K3D_EXTRA_ARGS", "--k3s-arg --disable=traefik@server:0"
        )
    )
    context_prefix: str = "k3d-"


@dataclass(frozen=True)
class SessionConfig:
    """Session token and cookie configuration."""

    secret: str = field(
        default_factory=lambda: os.getenv(
            "SANDBOX_SESSION_SECRET", "change-me-sandbox-session-secret"
        )
    )
    algorithm: str = "HS256"
    secure_cookie: bool = field(
        default_factory=lambda: os.getenv("SANDBOX_ENV", "development") == "production"
    )
    same_site: str = "strict"


@dataclass(frozen=True)
class RedisConfig:
    """Redis connection configuration."""

    url: str = field(
        default_factory=lambda: os.getenv("REDIS_URL", "redis://localhost:6379/0")
    )
    socket_timeout: float = 5.0
    connect_timeout: float = 2.0
    encoding: str = "utf-8"
    decode_responses: bool = True


@dataclass(frozen=True)
class AdmissionConfig:
    """Admission Guard backend configuration."""

    backend: str = field(
        default_factory=lambda: os.getenv("SANDBOX_ADMISSION_BACKEND", "memory")
    )
    # Redis lock expiry, bounds the lockout if a replica dies mid-creation.
    # Unset means derived from the timeouts, see creation_budget().
    lock_ttl: Optional[int] = field(
        default_factory=lambda: _env_optional_int("SANDBOX_ADMISSION_LOCK_TTL")
    )


@dataclass
class AppConfig:
    """Application-wide configuration container."""

    sandbox: SandboxConfig = field(default_factory=SandboxConfig)
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    driver: DriverConfig = field(default_factory=DriverConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    admission: AdmissionConfig = field(default_factory=AdmissionConfig)
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "3001")))


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global application configuration.

    Returns:
        AppConfig instance with all configuration values
    """
    global _config
    if _config is None:
        _config = AppConfig()
    return _config


def reset_config() -> None:
    """Reset the global configuration.

    This is primarily useful for testing purposes.
    """
    global _config
    _config = None
