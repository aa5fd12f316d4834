# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

import re
import secrets

from sandbox_manager.common.config import get_config


def generate_sandbox_id() -> str:
    """Random fixed-length id such as ``sb-abc1234567``.

    Every id has the same length, so no id can be a substring of another.
    The result is also a valid k3d cluster name.
    """
    config = get_config().sandbox
    suffix = "".join(
        secrets.choice(config.id_alphabet) for _ in range(config.id_length)
    )
    return f"{config.id_prefix}{suffix}"


def is_sandbox_id(name: str) -> bool:
    """True when ``name`` has the shape produced by generate_sandbox_id()."""
    config = get_config().sandbox
    pattern = (
        f"^{re.escape(config.id_prefix)}"
        f"[{re.escape(config.id_alphabet)}]{{{config.id_length}}}$"
    )
    return re.match(pattern, name) is not None
