from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from typing import Any

from .base import Operation, coerce_bool
from ..errors import ServiceError, describe_failure
from ..executors import Executor
from ..types import ActionResult, HostConfig

logger = logging.getLogger(__name__)


class ServiceManager:
    """Capability interface for an OS service manager."""

    name = "generic"

    def available(self) -> bool:
        raise NotImplementedError

    def is_enabled(self, executor: Executor, service: str) -> bool:
        raise NotImplementedError

    def is_active(self, executor: Executor, service: str) -> bool:
        raise NotImplementedError

    def enable(self, executor: Executor, service: str) -> None:
        raise NotImplementedError

    def disable(self, executor: Executor, service: str) -> None:
        raise NotImplementedError

    def start(self, executor: Executor, service: str) -> None:
        raise NotImplementedError

    def stop(self, executor: Executor, service: str) -> None:
        raise NotImplementedError

    def restart(self, executor: Executor, service: str) -> None:
        raise NotImplementedError


@dataclass
class SystemCtl(ServiceManager):
    executable: str = "systemctl"
    name = "systemd"

    def available(self) -> bool:
        return shutil.which(self.executable) is not None

    def is_enabled(self, executor: Executor, service: str) -> bool:
        result = executor.run([self.executable, "is-enabled", service], check=False, mutable=False)
        return result.returncode == 0

    def is_active(self, executor: Executor, service: str) -> bool:
        result = executor.run([self.executable, "is-active", service], check=False, mutable=False)
        return result.returncode == 0

    def enable(self, executor: Executor, service: str) -> None:
        executor.run([self.executable, "enable", service])

    def disable(self, executor: Executor, service: str) -> None:
        executor.run([self.executable, "disable", service])

    def start(self, executor: Executor, service: str) -> None:
        executor.run([self.executable, "start", service])

    def stop(self, executor: Executor, service: str) -> None:
        executor.run([self.executable, "stop", service])

    def restart(self, executor: Executor, service: str) -> None:
        executor.run([self.executable, "restart", service])


class ServiceOperation(Operation):
    """Manage systemd services."""

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        raw_name = spec.get("name") or spec.get("service")
        if not raw_name:
            raise ValueError("service operation requires a name")
        self.name = str(raw_name)
        raw_enabled = spec.get("enabled")
        self._enabled = None if raw_enabled is None else coerce_bool(raw_enabled)
        self._state = spec.get("state")
        if self._state == "started":
            self._state = "running"
        self.restart = coerce_bool(spec.get("restart", False))
        if self._state not in {None, "running", "stopped"}:
            raise ValueError("service state must be 'running' or 'stopped'")
        if self._enabled is None and self._state is None and not self.restart:
            raise ValueError("service operation requires enabled, state or restart")
        self.systemctl: ServiceManager = SystemCtl()

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        if not self.systemctl.available():
            raise ServiceError("systemctl is not available on this host")
        try:
            changes = self._converge(executor)
        except subprocess.CalledProcessError as exc:
            raise ServiceError(describe_failure(exc)) from exc

        changed = bool(changes)
        detail = ", ".join(changes) if changes else "noop"
        return ActionResult(host=host.name, action="service", changed=changed, details=detail)

    def _converge(self, executor: Executor) -> list[str]:
        changes: list[str] = []

        # stop, enable/disable, start, restart
        if self._state == "stopped" and self.systemctl.is_active(executor, self.name):
            logger.debug("Stopping service %s", self.name)
            if not executor.dry_run:
                self.systemctl.stop(executor, self.name)
            changes.append("stopped")

        if self._enabled is not None:
            enabled = self.systemctl.is_enabled(executor, self.name)
            if self._enabled and not enabled:
                logger.debug("Enabling service %s", self.name)
                if not executor.dry_run:
                    self.systemctl.enable(executor, self.name)
                changes.append("enabled")
            elif not self._enabled and enabled:
                logger.debug("Disabling service %s", self.name)
                if not executor.dry_run:
                    self.systemctl.disable(executor, self.name)
                changes.append("disabled")

        if self._state == "running" and not self.systemctl.is_active(executor, self.name):
            logger.debug("Starting service %s", self.name)
            if not executor.dry_run:
                self.systemctl.start(executor, self.name)
            changes.append("started")

        if self.restart:
            logger.debug("Restarting service %s", self.name)
            if not executor.dry_run:
                self.systemctl.restart(executor, self.name)
            changes.append("restarted")

        return changes
