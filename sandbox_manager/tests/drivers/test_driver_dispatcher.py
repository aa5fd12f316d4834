# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from unittest.mock import patch

import pytest

from sandbox_manager.drivers.dispatcher import DriverDispatcher
from sandbox_manager.drivers.k3d import K3dDriver


class TestDriverDispatcher:
    """Test cases for DriverDispatcher"""

    def test_default_driver_is_k3d(self):
        """Test the default configuration loads the k3d driver"""
        driver = DriverDispatcher.get_driver()

        assert isinstance(driver, K3dDriver)

    def test_driver_is_cached(self):
        """Test drivers are instantiated once"""
        assert DriverDispatcher.get_driver() is DriverDispatcher.get_driver()

    def test_unknown_mode_falls_back_to_k3d(self):
        """Test an unknown mode returns the k3d driver"""
        driver = DriverDispatcher.get_driver("kind")

        assert isinstance(driver, K3dDriver)

    @patch.dict("os.environ", {"SANDBOX_DRIVER_CONFIG": "{invalid"}, clear=False)
    def test_invalid_json_raises(self):
        """Test malformed driver config is rejected"""
        with pytest.raises(ValueError):
            DriverDispatcher.get_driver()

    @patch.dict("os.environ", {"SANDBOX_DRIVER_CONFIG": ""}, clear=False)
    def test_empty_config_loads_default(self):
        """Test empty driver config still yields the k3d driver"""
        assert isinstance(DriverDispatcher.get_driver(), K3dDriver)

    @patch.dict(
        "os.environ",
        {"SANDBOX_DRIVER_CONFIG": '{"k3d": "sandbox_manager.drivers.k3d.Missing"}'},
        clear=False,
    )
    def test_bad_import_path_raises(self):
        """Test a driver path that cannot be imported raises"""
        with pytest.raises(AttributeError):
            DriverDispatcher.get_driver()
