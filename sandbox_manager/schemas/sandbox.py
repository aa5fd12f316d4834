# SPDX-FileCopyrightText: 2025 WeCode, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Request and response schemas for the sandbox API.

Field names are snake_case in Python and camelCase on the wire.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateSandboxResponse(CamelModel):
    """Response for sandbox creation or reuse."""

    message: str
    sandbox_id: str
    expires_in: int = Field(description="Seconds until the sandbox is reclaimed")


class ExecuteRequest(CamelModel):
    """Command to run against the session's sandbox."""

    command: Optional[str] = Field(
        default=None, description="kubectl arguments, e.g. 'get pods -A'"
    )


class ExecuteResponse(CamelModel):
    message: str
    command: str
    output: str


class DeleteSandboxResponse(CamelModel):
    message: str


class SandboxStatusResponse(CamelModel):
    """Status of the sandbox bound to the session."""

    sandbox_id: str
    created_at: float
    expires_at: float
    expires_in: int


class HealthResponse(CamelModel):
    status: str
    sandboxes: int


class ErrorResponse(CamelModel):
    error: str
    code: str
