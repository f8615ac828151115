from __future__ import annotations

from pathlib import Path
from typing import Any

try:
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]

from .operations.base import coerce_bool
from .types import ActionSpec, HostConfig, Plan, TaskSpec

_RESERVED_KEYS = {"type", "label", "ignore_errors"}


class InventoryLoader:
    """Loads plan definitions from TOML files."""

    def load(self, path: Path) -> Plan:
        path = Path(path)
        try:
            data = tomllib.loads(path.read_text())
        except tomllib.TOMLDecodeError as exc:
            raise ValueError(f"{path}: {exc}") from None
        return self.load_data(data)

    def load_data(self, data: dict[str, Any]) -> Plan:
        hosts = self._parse_hosts(data.get("hosts", {}))
        tasks = self._parse_tasks(data.get("tasks", []), hosts)
        return Plan(hosts=hosts, tasks=tasks)

    @staticmethod
    def _parse_hosts(host_data: dict[str, Any]) -> dict[str, HostConfig]:
        if not host_data:
            host_data = {"local": {"connection": "local"}}
        hosts: dict[str, HostConfig] = {}
        for name, payload in host_data.items():
            variables = payload.get("variables", {})
            if not isinstance(variables, dict):
                raise ValueError(f"Host {name} variables must be a table")
            hosts[name] = HostConfig(
                name=name,
                connection=payload.get("connection", "local"),
                variables=variables,
            )
        return hosts

    @staticmethod
    def _parse_tasks(raw_tasks: list[dict[str, Any]], hosts: dict[str, HostConfig]) -> list[TaskSpec]:
        tasks: list[TaskSpec] = []
        for index, task in enumerate(raw_tasks, start=1):
            name = task.get("name", f"task-{index}")
            target_hosts = task.get("hosts") or list(hosts.keys())
            if isinstance(target_hosts, str):
                target_hosts = [target_hosts]
            for host_name in target_hosts:
                if host_name not in hosts:
                    raise ValueError(f"Task {name} targets undefined host '{host_name}'")
            actions = [
                InventoryLoader._parse_action(action, f"{index}.{pos}")
                for pos, action in enumerate(task.get("actions", []), start=1)
            ]
            tasks.append(TaskSpec(name=name, hosts=list(target_hosts), actions=actions))
        return tasks

    @staticmethod
    def _parse_action(action: dict[str, Any], action_index: str) -> ActionSpec:
        if not isinstance(action, dict):
            raise ValueError(f"Action {action_index} must be a table")
        action_type = action.get("type")
        if not action_type:
            raise ValueError(f"Action {action_index} is missing a type")
        try:
            ignore_errors = coerce_bool(action.get("ignore_errors", False))
        except ValueError as exc:
            raise ValueError(f"Action {action_index}: {exc}") from None
        label = action.get("label")
        data = {k: v for k, v in action.items() if k not in _RESERVED_KEYS}
        return ActionSpec(
            type=str(action_type),
            data=data,
            label=str(label) if label else None,
            ignore_errors=ignore_errors,
        )
