# SPDX-FileCopyrightText: 2025 WeCode, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Error taxonomy for sandbox operations.

Each error carries the HTTP status and machine-readable code the transport
layer reports, so services raise them without knowing about FastAPI.
"""

from typing import Optional


class SandboxError(Exception):
    """Base exception for sandbox operations."""

    status_code: int = 500
    code: str = "internal_error"
    # Whether the error response should drop the session cookie
    clear_session: bool = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AdmissionDeniedError(SandboxError):
    """A creation request for the same client is already in flight."""

    status_code = 429
    code = "admission_denied"

    def __init__(self, client_key: str) -> None:
        self.client_key = client_key
        super().__init__(
            "A sandbox is already being created for this client. Please wait."
        )


class SessionMissingError(SandboxError):
    """No usable session token was presented."""

    status_code = 401
    code = "session_missing"

    def __init__(
        self, message: str = "Sandbox not found. Create a new sandbox first."
    ) -> None:
        super().__init__(message)


class SandboxNotFoundError(SandboxError):
    """The session token refers to a sandbox that no longer exists."""

    status_code = 404
    code = "sandbox_not_found"
    clear_session = True

    def __init__(self, sandbox_id: Optional[str] = None) -> None:
        self.sandbox_id = sandbox_id
        super().__init__("Sandbox not found or expired.")


class InvalidCommandError(SandboxError):
    """The command text is missing or cannot be split into arguments."""

    status_code = 400
    code = "invalid_command"


class DriverError(SandboxError):
    """A Cluster Driver call failed or timed out."""

    status_code = 500
    code = "driver_error"

    def __init__(self, message: str, diagnostic: str = "") -> None:
        self.diagnostic = diagnostic
        if diagnostic:
            message = f"{message}: {diagnostic}"
        super().__init__(message)


class SandboxIdCollisionError(SandboxError):
    """A generated sandbox id is already registered."""

    status_code = 500
    code = "sandbox_id_collision"

    def __init__(self, sandbox_id: str) -> None:
        self.sandbox_id = sandbox_id
        super().__init__(f"Sandbox {sandbox_id} is already registered")
