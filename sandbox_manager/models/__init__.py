# SPDX-FileCopyrightText: 2025 WeCode, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from sandbox_manager.models.sandbox import CreateResult, Sandbox

__all__ = ["Sandbox", "CreateResult"]
