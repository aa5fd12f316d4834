#!/usr/bin/env python

# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

# -*- coding: utf-8 -*-

"""
Logger setup shared by every module of the service.

Records are handed to a QueueHandler and written by a QueueListener thread,
so driver calls running in worker threads and the scheduler never interleave
partial lines on stdout.
"""

import logging
import os
import queue
import sys
from logging.handlers import QueueHandler, QueueListener

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level=None) -> int:
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    # getLevelName returns "Level X" strings for unknown names
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logger(name: str, level=None) -> logging.Logger:
    """
    Get a logger configured with the service format.

    Calling this twice for the same name returns the already configured logger.

    Args:
        name: Logger name, usually __name__
        level: Optional level name or number, defaults to LOG_LEVEL env var

    Returns:
        logging.Logger: Configured logger
    """
    logger = logging.getLogger(name)
    if getattr(logger, "_queue_listener", None) is not None:
        return logger

    logger.setLevel(_resolve_level(level))

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    log_queue: queue.Queue = queue.Queue(-1)
    listener = QueueListener(log_queue, stream_handler, respect_handler_level=True)
    listener.start()

    logger.handlers.clear()
    logger.addHandler(QueueHandler(log_queue))
    logger.propagate = False
    logger._queue_listener = listener

    return logger
