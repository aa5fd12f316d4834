# SPDX-FileCopyrightText: 2025 WeCode, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Sandbox REST API routes.

- POST   /sandbox       - Create a sandbox, or reuse the session's live one
- GET    /sandbox       - Status of the session's sandbox
- POST   /sandbox/exec  - Run a kubectl command in the session's sandbox
- DELETE /sandbox       - Delete the session's sandbox

The session is carried by the signed, httponly ``sandboxId`` cookie.
"""

from typing import Optional

from fastapi import APIRouter, Cookie, Request, Response

from sandbox_manager.common.config import SESSION_COOKIE_NAME, get_config
from sandbox_manager.schemas.sandbox import (
    CreateSandboxResponse,
    DeleteSandboxResponse,
    ExecuteRequest,
    ExecuteResponse,
    SandboxStatusResponse,
)
from sandbox_manager.services.sandbox import get_sandbox_manager
from shared.logger import setup_logger

logger = setup_logger(__name__)

router = APIRouter(prefix="/sandbox", tags=["sandbox"])


def client_key(request: Request) -> str:
    """Client identity used for admission control."""
    return request.client.host if request.client else "unknown"


def set_session_cookie(response: Response, token: str) -> None:
    config = get_config()
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        max_age=config.sandbox.lifetime,
        httponly=True,
        secure=config.session.secure_cookie,
        samesite=config.session.same_site,
    )


def clear_session_cookie(response: Response) -> None:
    config = get_config()
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        httponly=True,
        secure=config.session.secure_cookie,
        samesite=config.session.same_site,
    )


@router.post("", response_model=CreateSandboxResponse)
async def create_sandbox(
    http_request: Request,
    response: Response,
    session_token: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE_NAME),
):
    """Create a sandbox, or return the live sandbox already bound to the session.

    Only one creation per client may be in flight; concurrent attempts get 429.
    """
    key = client_key(http_request)
    logger.info(f"[SandboxAPI] Create sandbox from {key}")

    manager = get_sandbox_manager()
    result = await manager.create_or_reuse(key, session_token)

    if result.reused:
        message = "Using existing sandbox"
    else:
        set_session_cookie(response, result.token)
        message = "Sandbox created successfully"

    return CreateSandboxResponse(
        message=message,
        sandbox_id=result.sandbox.sandbox_id,
        expires_in=result.sandbox.time_remaining(),
    )


@router.get("", response_model=SandboxStatusResponse)
async def get_sandbox(
    session_token: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE_NAME),
):
    """Get the status of the session's sandbox."""
    manager = get_sandbox_manager()
    sandbox_id = await manager.binder.require_live(session_token)
    sandbox = await manager.get_status(sandbox_id)

    return SandboxStatusResponse(
        sandbox_id=sandbox.sandbox_id,
        created_at=sandbox.created_at,
        expires_at=sandbox.expires_at,
        expires_in=sandbox.time_remaining(),
    )


@router.post("/exec", response_model=ExecuteResponse)
async def execute_command(
    request: ExecuteRequest,
    http_request: Request,
    session_token: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE_NAME),
):
    """Run a kubectl command against the session's sandbox and return its stdout."""
    manager = get_sandbox_manager()
    # Reject malformed input before any driver call
    manager.split_command(request.command)
    sandbox_id = await manager.binder.require_live(session_token)

    logger.info(
        f"[SandboxAPI] Execute in {sandbox_id} from {client_key(http_request)}"
    )
    output = await manager.execute(sandbox_id, request.command)

    return ExecuteResponse(
        message="Command executed successfully",
        command=request.command,
        output=output,
    )


@router.delete("", response_model=DeleteSandboxResponse)
async def delete_sandbox(
    http_request: Request,
    response: Response,
    session_token: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE_NAME),
):
    """Delete the session's sandbox and clear the session cookie."""
    manager = get_sandbox_manager()
    sandbox_id = await manager.binder.require_live(session_token)

    logger.info(
        f"[SandboxAPI] Delete sandbox {sandbox_id} from {client_key(http_request)}"
    )
    await manager.delete_sandbox(sandbox_id)
    clear_session_cookie(response)

    return DeleteSandboxResponse(message="Sandbox deleted successfully")
