# SPDX-FileCopyrightText: 2025 WeCode, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Thread-safe singleton metaclass shared by service classes."""

import threading
from typing import Any, Dict


class SingletonMeta(type):
    """Metaclass that returns one instance per class.

    reset_all_instances() drops every cached instance so tests start clean.
    """

    _instances: Dict[type, Any] = {}
    _lock = threading.Lock()

    def __call__(cls, *args, **kwargs):
        if cls not in cls._instances:
            with cls._lock:
                # Double-check after acquiring lock
                if cls not in cls._instances:
                    cls._instances[cls] = super().__call__(*args, **kwargs)
        return cls._instances[cls]

    @classmethod
    def reset_instance(mcs, cls: type) -> None:
        with mcs._lock:
            mcs._instances.pop(cls, None)

    @classmethod
    def reset_all_instances(mcs) -> None:
        with mcs._lock:
            mcs._instances.clear()
