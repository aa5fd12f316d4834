#!/usr/bin/env python

# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

# -*- coding: utf-8 -*-

"""
Main entry module, starts the sandbox sweeper and FastAPI server
Supports two startup modes:
1. Run directly: python -m sandbox_manager.main
2. Use uvicorn: uvicorn sandbox_manager.main:app --host 0.0.0.0 --port 3001
"""

from contextlib import asynccontextmanager

import uvicorn

from sandbox_manager.common.config import get_config
from sandbox_manager.routers.routers import app
from sandbox_manager.services.sandbox import get_sandbox_manager

# Import the shared logger
from shared.logger import setup_logger

# Setup logger
logger = setup_logger(__name__)


@asynccontextmanager
async def lifespan(app):
    """
    FastAPI application lifecycle manager.
    Rebuilds the registry and starts the expiry sweeper on startup, and stops
    the sweeper on shutdown. Live sandboxes are left running.
    """
    config = get_config()
    sandbox_manager = get_sandbox_manager()

    if config.sandbox.recover_on_startup:
        try:
            adopted = await sandbox_manager.recover_sandboxes()
            logger.info(f"Recovered {adopted} sandboxes from the cluster driver")
        except Exception as e:
            logger.warning(f"Failed to recover sandboxes on startup: {e}")

    try:
        await sandbox_manager.start_scheduler()
        logger.info("SandboxManager scheduler started successfully")
    except Exception as e:
        logger.warning(f"Failed to start SandboxManager scheduler: {e}")

    yield  # During FastAPI application runtime

    logger.info("Stopping SandboxManager...")
    await sandbox_manager.stop_scheduler()
    # Abandoned creations still own clusters that must not outlive them
    await sandbox_manager.wait_for_cleanup()


# Set the FastAPI application's lifecycle manager
app.router.lifespan_context = lifespan


def main():
    """
    Main function, starts the FastAPI server
    Used when running the script directly
    """
    try:
        port = get_config().port
        logger.info(f"Starting FastAPI server on port {port}...")
        uvicorn.run(app, host="0.0.0.0", port=port)
    except Exception as e:
        logger.error(f"Service startup failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    exit(main())
