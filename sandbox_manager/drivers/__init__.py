# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from sandbox_manager.drivers.base import ClusterDriver
from sandbox_manager.drivers.dispatcher import DriverDispatcher
from sandbox_manager.drivers.k3d import K3dDriver

__all__ = ["ClusterDriver", "DriverDispatcher", "K3dDriver"]
