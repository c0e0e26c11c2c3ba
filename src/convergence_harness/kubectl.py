"""ResourceAPI backed by the kubectl binary.

Every call shells out to kubectl. Failures are raised as ResourceAPIError
with the ErrorKind already resolved from kubectl's stderr, so nothing past
this module matches on error text.
"""

from __future__ import annotations

import json
import math
import subprocess
from typing import Any

from .errors import ErrorKind, ResourceAPIError, kind_from_message
from .operations import ResourceRef
from .shared.logging import get_logger

logger = get_logger(__name__)


class KubectlResourceAPI:
    """Get, patch and delete cluster objects using kubectl."""

    def __init__(
        self,
        kubeconfig: str | None = None,
        context: str | None = None,
        request_timeout: float | None = None,
    ):
        """Initialize the adapter.

        Args:
            kubeconfig: Path to kubeconfig file.
            context: kubeconfig context to use.
            request_timeout: Per-call timeout in seconds. Passed to kubectl and
                enforced on the process, which is killed when it runs over.
        """
        self.kubeconfig = kubeconfig
        self.context = context
        self.request_timeout = request_timeout

    def _kubectl_cmd(self) -> list[str]:
        """Build base kubectl command."""
        cmd = ["kubectl"]
        if self.kubeconfig:
            cmd.extend(["--kubeconfig", self.kubeconfig])
        if self.context:
            cmd.extend(["--context", self.context])
        if self.request_timeout:
            cmd.append(f"--request-timeout={math.ceil(self.request_timeout)}s")
        return cmd

    def _run(self, ref: ResourceRef, args: list[str]) -> str:
        """Run kubectl against one object and return its stdout.

        Raises:
            ResourceAPIError: kubectl is missing, timed out or exited non-zero.
        """
        cmd = self._kubectl_cmd() + ["-n", ref.namespace] + args
        logger.debug("kubectl", args=cmd[1:])
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=self.request_timeout
            )
        except FileNotFoundError:
            # The message says "not found" but the resource may well exist
            raise ResourceAPIError(
                "kubectl not found. Is kubectl installed?",
                kind=ErrorKind.OTHER,
                data={"resource": str(ref)},
            )
        except subprocess.TimeoutExpired:
            raise ResourceAPIError(
                f"kubectl did not answer within {self.request_timeout}s",
                kind=ErrorKind.OTHER,
                data={"resource": str(ref), "timeout": self.request_timeout},
            )

        if result.returncode != 0:
            message = result.stderr.strip() or f"kubectl exited with {result.returncode}"
            raise ResourceAPIError(
                message,
                kind=kind_from_message(message),
                data={"resource": str(ref), "returncode": result.returncode},
            )
        return result.stdout

    def get(self, ref: ResourceRef) -> dict[str, Any]:
        """Return the object's status block."""
        out = self._run(ref, ["get", ref.kind, ref.name, "-o", "json"])
        try:
            obj = json.loads(out)
        except json.JSONDecodeError as e:
            raise ResourceAPIError(
                f"Unparseable kubectl output for {ref}: {e}",
                data={"resource": str(ref)},
            )
        return obj.get("status") or {}

    def update(self, ref: ResourceRef, patch: dict[str, Any]) -> None:
        """Apply a merge patch to the object."""
        self._run(ref, ["patch", ref.kind, ref.name, "--type", "merge", "-p", json.dumps(patch)])

    def delete(self, ref: ResourceRef) -> None:
        """Request deletion without waiting for it to finish."""
        self._run(ref, ["delete", ref.kind, ref.name, "--wait=false"])
