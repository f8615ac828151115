from __future__ import annotations

import subprocess
from typing import Any

from .base import Operation
from ..errors import PackageError, describe_failure
from ..executors import Executor
from ..types import ActionResult, HostConfig

_LIST_FLAGS = {"disabled": "--disabled", "enabled": "--enabled"}


class DnfModuleOperation(Operation):
    """Enable, disable or reset a dnf module stream."""

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        raw_name = spec.get("name") or spec.get("module")
        if not raw_name:
            raise ValueError("dnf_module operation requires a name")
        self.name = str(raw_name)
        self.state = str(spec.get("state", "disabled"))
        if self.state not in {"disabled", "enabled", "reset"}:
            raise ValueError("dnf_module state must be 'disabled', 'enabled' or 'reset'")

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        try:
            if self._in_state(executor):
                return ActionResult(host=host.name, action="dnf_module", changed=False, details="noop")
            verb = {"disabled": "disable", "enabled": "enable", "reset": "reset"}[self.state]
            executor.run(["dnf", "-qy", "module", verb, self.name])
        except subprocess.CalledProcessError as exc:
            raise PackageError(describe_failure(exc)) from exc
        return ActionResult(host=host.name, action="dnf_module", changed=True, details=self.state)

    def _in_state(self, executor: Executor) -> bool:
        if self.state == "reset":
            # A reset module is neither listed as enabled nor disabled.
            return not any(self._listed(executor, flag) for flag in _LIST_FLAGS.values())
        return self._listed(executor, _LIST_FLAGS[self.state])

    def _listed(self, executor: Executor, flag: str) -> bool:
        result = executor.run(["dnf", "-q", "module", "list", flag, self.name], check=False, mutable=False)
        if result.returncode != 0:
            return False
        return any(line.split()[:1] == [self.name] for line in result.stdout.splitlines())
