#!/usr/bin/env python

# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

# -*- coding: utf-8 -*-

"""
API routes module, defines the FastAPI application, middleware and error handlers
"""

import time
import uuid

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from sandbox_manager.common.config import ROUTE_PREFIX
from sandbox_manager.common.exceptions import SandboxError
from sandbox_manager.routers.sandbox import clear_session_cookie
from sandbox_manager.routers.sandbox import router as sandbox_router
from sandbox_manager.schemas.sandbox import ErrorResponse, HealthResponse
from sandbox_manager.services.sandbox import get_sandbox_registry
from shared.logger import setup_logger

# Setup logger
logger = setup_logger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Sandbox Manager API",
    description="API for creating, using and deleting ephemeral k3d sandboxes",
)

# Create main API router with unified prefix
api_router = APIRouter(prefix=ROUTE_PREFIX)
api_router.include_router(sandbox_router)

# Health check paths that should skip logging to reduce overhead
HEALTH_CHECK_PATHS = {"/", "/health"}


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Middleware: Log request duration, source IP and response status"""
    if request.url.path in HEALTH_CHECK_PATHS:
        return await call_next(request)

    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
    request.state.request_id = request_id

    start_time = time.time()
    client_ip = request.client.host if request.client else "unknown"

    logger.info(
        f"request : {request.method} {request.url.path} {request_id} {client_ip}"
    )

    response = await call_next(request)

    process_time = time.time() - start_time
    logger.info(
        f"response: {request.method} {request.url.path} {request_id} "
        f"status={response.status_code} time={process_time:.3f}s"
    )
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(SandboxError)
async def sandbox_error_handler(request: Request, exc: SandboxError) -> JSONResponse:
    """Turn sandbox errors into structured JSON responses."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(
            f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}"
        )

    response = JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.message, code=exc.code).model_dump(),
    )
    if exc.clear_session:
        # The client's binding refers to a sandbox confirmed dead
        clear_session_cookie(response)
    return response


@app.exception_handler(Exception)
async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected errors."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="An internal error occurred", code="internal_error"
        ).model_dump(),
    )


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Liveness probe reporting how many sandboxes this process tracks."""
    return HealthResponse(status="ok", sandboxes=len(get_sandbox_registry()))


app.include_router(api_router)
