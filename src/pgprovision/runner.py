from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from .errors import error_kind
from .executors import Executor, LocalExecutor
from .operations import OPERATION_REGISTRY, Operation
from .secrets import SecretResolver
from .templating import render_spec
from .types import ActionResult, ActionSpec, HostConfig, Plan, TaskSpec

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[HostConfig, ActionSpec], None]


class TaskRunner:
    """Reconciles hosts against a plan, one step at a time and in order.

    A failed step halts every remaining step for that host, in this task and
    in later ones, unless the step is marked ``ignore_errors``. Hosts do not
    affect each other.
    """

    def __init__(
        self,
        plan: Plan,
        *,
        dry_run: bool = False,
        progress_callback: Optional[ProgressCallback] = None,
        executor_factory: Optional[Callable[[HostConfig], Executor]] = None,
        secret_resolver: Optional[SecretResolver] = None,
    ):
        self.plan = plan
        self.dry_run = dry_run
        self.progress_callback = progress_callback
        self.executor_factory = executor_factory or self._executor_for
        self.secret_resolver = secret_resolver or SecretResolver()
        self.halted: dict[str, ActionResult] = {}
        self._contexts: dict[str, dict[str, Any]] = {}

    @property
    def succeeded(self) -> bool:
        return not self.halted

    def run(self) -> list[ActionResult]:
        results: list[ActionResult] = []
        self.halted = {}
        for task in self.plan.tasks:
            results.extend(self._run_task(task))
        return results

    def _run_task(self, task: TaskSpec) -> list[ActionResult]:
        results: list[ActionResult] = []
        logger.debug("task=%s hosts=%s", task.name, ",".join(task.hosts))
        for host_name in task.hosts:
            host = self.plan.hosts.get(host_name)
            if not host:
                raise KeyError(f"Host '{host_name}' is not defined")
            if host.name in self.halted:
                logger.info("task=%s host=%s skipped after earlier failure", task.name, host.name)
                continue
            executor = self.executor_factory(host)
            for action in task.actions:
                if self.progress_callback:
                    self.progress_callback(host, action)
                result = self._apply(host, executor, action)
                results.append(result)
                if result.failed and not result.ignored:
                    logger.error(
                        "halting host=%s after action=%s failed: %s",
                        host.name,
                        action.type,
                        result.details,
                    )
                    self.halted[host.name] = result
                    break
        return results

    def _apply(self, host: HostConfig, executor: Executor, action: ActionSpec) -> ActionResult:
        resource = self._resource_name(action.data)
        try:
            operation_cls = OPERATION_REGISTRY.get(action.type)
            if not operation_cls:
                raise ValueError(f"unknown operation '{action.type}'")
            spec = render_spec(action.data, self._context_for(host))
            operation: Operation = operation_cls(spec)
            result = operation.apply(host, executor)
        except Exception as exc:  # noqa: BLE001
            kind = error_kind(exc)
            if action.ignore_errors:
                logger.warning(
                    "action=%s host=%s failed (%s), ignoring: %s", action.type, host.name, kind, exc
                )
            else:
                logger.error(
                    "action=%s host=%s failed (%s): %s",
                    action.type,
                    host.name,
                    kind,
                    exc,
                    exc_info=logger.isEnabledFor(logging.DEBUG),
                )
            result = ActionResult(
                host=host.name,
                action=action.type,
                changed=False,
                details=str(exc),
                failed=True,
                ignored=action.ignore_errors,
                error=kind,
            )
        logger.debug("action=%s host=%s changed=%s", action.type, host.name, result.changed)
        if result.resource is None:
            result.resource = resource
        if result.label is None:
            result.label = action.label
        return result

    def _context_for(self, host: HostConfig) -> dict[str, Any]:
        if host.name not in self._contexts:
            context = {"inventory_hostname": host.name}
            context.update(self.secret_resolver.resolve(host.variables))
            self._contexts[host.name] = context
        return self._contexts[host.name]

    def _executor_for(self, host: HostConfig) -> Executor:
        if host.connection == "local":
            return LocalExecutor(host, dry_run=self.dry_run)
        raise ValueError(f"Unknown connection type '{host.connection}'")

    @staticmethod
    def _resource_name(data: dict[str, Any]) -> Optional[str]:
        for key in ("resource", "name", "path", "key", "service", "role"):
            value = data.get(key)
            if value and isinstance(value, (str, int)):
                return str(value)
        pkgs = data.get("packages")
        if isinstance(pkgs, (list, tuple)) and pkgs:
            rendered = ", ".join(str(p).rsplit("/", 1)[-1] for p in pkgs[:3])
            if len(pkgs) > 3:
                rendered += ", ..."
            return rendered
        files = data.get("files")
        if isinstance(files, (list, tuple)) and files:
            return ", ".join(str(f) for f in files)
        return None
