# SPDX-FileCopyrightText: 2025 WeCode, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Sandbox domain model."""

import time
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Sandbox:
    """One ephemeral cluster owned by a client session.

    ``created_at`` is write-once; expiry is derived from it and the fixed
    lifetime, never extended.
    """

    sandbox_id: str
    created_at: float
    lifetime: int

    @property
    def expires_at(self) -> float:
        return self.created_at + self.lifetime

    def age(self, now: Optional[float] = None) -> float:
        return (time.time() if now is None else now) - self.created_at

    def time_remaining(self, now: Optional[float] = None) -> int:
        """Whole seconds left before the sandbox becomes eligible for sweeping."""
        return max(0, int(self.expires_at - (time.time() if now is None else now)))

    def is_expired(self, now: Optional[float] = None) -> bool:
        return self.age(now) >= self.lifetime


@dataclass(frozen=True)
class CreateResult:
    """Outcome of a create-or-reuse request."""

    sandbox: Sandbox
    token: str
    reused: bool = False
