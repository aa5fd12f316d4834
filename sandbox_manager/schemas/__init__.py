# SPDX-FileCopyrightText: 2025 WeCode, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Schemas package for sandbox_manager API."""

from sandbox_manager.schemas.sandbox import (
    CreateSandboxResponse,
    DeleteSandboxResponse,
    ErrorResponse,
    ExecuteRequest,
    ExecuteResponse,
    HealthResponse,
    SandboxStatusResponse,
)

__all__ = [
    "CreateSandboxResponse",
    "ExecuteRequest",
    "ExecuteResponse",
    "DeleteSandboxResponse",
    "SandboxStatusResponse",
    "HealthResponse",
    "ErrorResponse",
]
