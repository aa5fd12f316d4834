# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

import importlib
import json
import threading
from typing import Dict, Optional

from sandbox_manager.common.config import get_config
from sandbox_manager.drivers.base import ClusterDriver
from shared.logger import setup_logger

logger = setup_logger(__name__)


class DriverDispatcher:
    """
    Select the Cluster Driver instance for a driver mode.

    Driver classes are loaded from the SANDBOX_DRIVER_CONFIG JSON map
    (mode -> "module.path.ClassName") the first time a driver is requested.
    """

    _drivers: Optional[Dict[str, ClusterDriver]] = None
    _lock = threading.Lock()

    @staticmethod
    def _load_drivers() -> Dict[str, ClusterDriver]:
        driver_config = get_config().driver.driver_config
        logger.info(f"Loading drivers from SANDBOX_DRIVER_CONFIG: {driver_config}")

        try:
            config = json.loads(driver_config) if driver_config else {}
        except json.JSONDecodeError as e:
            error_msg = f"Invalid JSON in SANDBOX_DRIVER_CONFIG: {e}"
            logger.error(error_msg)
            raise ValueError(error_msg)

        drivers: Dict[str, ClusterDriver] = {}
        for mode, driver_path in config.items():
            parts = driver_path.strip().split(".")
            if len(parts) < 2:
                raise ValueError(f"Invalid import path: {driver_path}")

            class_name = parts[-1]
            module_path = ".".join(parts[:-1])
            try:
                module = importlib.import_module(module_path)
                driver_class = getattr(module, class_name)
            except (ImportError, AttributeError) as e:
                logger.error(
                    f"Failed to load driver '{mode}' from '{driver_path}': {e}"
                )
                raise
            drivers[mode] = driver_class()
            logger.info(f"Loaded driver '{mode}' from '{driver_path}'")

        if not drivers:
            from sandbox_manager.drivers.k3d import K3dDriver

            drivers["k3d"] = K3dDriver()
            logger.info("Loaded default k3d driver")

        return drivers

    @classmethod
    def get_driver(cls, mode: Optional[str] = None) -> ClusterDriver:
        """
        Return the driver for ``mode`` (defaults to SANDBOX_DRIVER_MODE).

        Unknown modes fall back to the k3d driver.
        """
        if mode is None:
            mode = get_config().driver.mode

        if cls._drivers is None:
            with cls._lock:
                if cls._drivers is None:
                    cls._drivers = cls._load_drivers()

        if mode not in cls._drivers:
            logger.warning(
                f"Driver mode '{mode}' not found, using default 'k3d' driver"
            )
            if "k3d" not in cls._drivers:
                raise ValueError(
                    "Default 'k3d' driver not found in available drivers: "
                    f"{list(cls._drivers.keys())}"
                )
            return cls._drivers["k3d"]

        return cls._drivers[mode]

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._drivers = None
