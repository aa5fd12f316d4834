# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

import abc
from typing import List, Sequence


class ClusterDriver(abc.ABC):
    """Interface to the tool that actually creates and runs clusters.

    Every method is blocking and must be bounded by its own timeout; callers
    run them in worker threads. Failures are raised as DriverError carrying
    the tool's diagnostic output.
    """

    @abc.abstractmethod
    def create(self, name: str) -> None:
        """Provision a cluster addressable by ``name``."""
        pass

    @abc.abstractmethod
    def wait_ready(self, name: str, timeout: int) -> None:
        """Block until the cluster reports ready, or raise after ``timeout``."""
        pass

    @abc.abstractmethod
    def delete(self, name: str) -> None:
        """
        Delete a cluster.

        Deleting a cluster that does not exist is not an error.
        """
        pass

    @abc.abstractmethod
    def list_clusters(self) -> List[str]:
        """Return the names of all existing clusters."""
        pass

    @abc.abstractmethod
    def exec_in_context(self, name: str, argv: Sequence[str]) -> str:
        """
        Run an administrative command against a cluster's context.

        Args:
            name: Cluster name
            argv: Command arguments, already split

        Returns:
            Raw standard output of the command
        """
        pass

    def exists(self, name: str) -> bool:
        """Exact-match membership check against list_clusters()."""
        return name in self.list_clusters()
