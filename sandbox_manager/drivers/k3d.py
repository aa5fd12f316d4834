# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
k3d/kubectl backed Cluster Driver.

Clusters are created with ``k3d cluster create`` and addressed through the
kubeconfig context ``k3d-<name>`` that k3d registers for them.
"""

import json
import shlex
import subprocess
import time
from typing import List, Optional, Sequence

from sandbox_manager.common.config import READY_PROBE_GRACE, get_config
from sandbox_manager.common.exceptions import DriverError
from sandbox_manager.drivers.base import ClusterDriver
from shared.logger import setup_logger

logger = setup_logger(__name__)


def _diagnostic(error: Exception) -> str:
    """Best available text from a failed subprocess call."""
    stderr = getattr(error, "stderr", None)
    stdout = getattr(error, "output", None)
    for text in (stderr, stdout):
        if isinstance(text, bytes):
            text = text.decode("utf-8", errors="replace")
        if text and text.strip():
            return text.strip()
    return str(error)


class K3dDriver(ClusterDriver):
    """Cluster Driver that shells out to the k3d and kubectl binaries."""

    def __init__(self, config=None):
        app_config = get_config()
        self._config = config or app_config.driver
        self._timeouts = app_config.timeout

    def context_name(self, name: str) -> str:
        return f"{self._config.context_prefix}{name}"

    def _run(self, cmd: List[str], timeout: int, action: str) -> str:
        logger.info(f"[K3dDriver] Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd, check=True, capture_output=True, text=True, timeout=timeout
            )
        except subprocess.TimeoutExpired as e:
            logger.error(f"[K3dDriver] {action} timed out after {timeout}s")
            raise DriverError(
                f"Failed to {action}", f"timed out after {timeout}s"
            ) from e
        except subprocess.CalledProcessError as e:
            diagnostic = _diagnostic(e)
            logger.error(f"[K3dDriver] {action} failed: {diagnostic}")
            raise DriverError(f"Failed to {action}", diagnostic) from e
        except OSError as e:
            logger.error(f"[K3dDriver] {action} could not start: {e}")
            raise DriverError(f"Failed to {action}", str(e)) from e
        return result.stdout

    def build_create_command(self, name: str) -> List[str]:
        cmd = [self._config.k3d_binary, "cluster", "create", name]
        if self._config.api_port:
            cmd.extend(["--api-port", str(self._config.api_port)])
        cmd.extend(shlex.split(self._config.extra_args))
        cmd.append("--wait")
        return cmd

    def create(self, name: str) -> None:
        self._run(
            self.build_create_command(name),
            self._timeouts.create,
            f"create cluster {name}",
        )
        logger.info(f"[K3dDriver] Cluster created: {name}")

    def wait_ready(self, name: str, timeout: int) -> None:
        # k3d returns before the node objects report Ready
        if self._timeouts.ready_settle > 0:
            time.sleep(self._timeouts.ready_settle)

        cmd = [
            self._config.kubectl_binary,
            "--context",
            self.context_name(name),
            "wait",
            "--for=condition=Ready",
            "nodes",
            "--all",
            f"--timeout={timeout}s",
        ]
        # Give kubectl's own timeout room to expire before the subprocess one
        self._run(
            cmd,
            timeout + READY_PROBE_GRACE,
            f"wait for cluster {name} to become ready",
        )
        logger.info(f"[K3dDriver] Cluster ready: {name}")

    def delete(self, name: str) -> None:
        cmd = [self._config.k3d_binary, "cluster", "delete", name]
        try:
            self._run(cmd, self._timeouts.delete, f"delete cluster {name}")
        except DriverError:
            # A failed delete of a cluster that is already gone is a success
            if not self.exists(name):
                logger.info(f"[K3dDriver] Cluster {name} already absent")
                return
            raise
        logger.info(f"[K3dDriver] Cluster deleted: {name}")

    def list_clusters(self) -> List[str]:
        cmd = [self._config.k3d_binary, "cluster", "list", "-o", "json"]
        output = self._run(cmd, self._timeouts.list_clusters, "list clusters")
        return self.parse_cluster_list(output)

    @staticmethod
    def parse_cluster_list(output: Optional[str]) -> List[str]:
        """Extract cluster names from ``k3d cluster list -o json`` output."""
        if not output or not output.strip():
            return []
        try:
            clusters = json.loads(output)
        except json.JSONDecodeError as e:
            raise DriverError("Failed to parse cluster list", str(e)) from e
        if not isinstance(clusters, list):
            raise DriverError("Failed to parse cluster list", "expected a JSON array")
        return [c["name"] for c in clusters if isinstance(c, dict) and c.get("name")]

    def exec_in_context(self, name: str, argv: Sequence[str]) -> str:
        cmd = [
            self._config.kubectl_binary,
            "--context",
            self.context_name(name),
            *argv,
        ]
        return self._run(cmd, self._timeouts.execute, "execute command")
