from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class HostConfig:
    name: str
    connection: str = "local"
    variables: dict[str, Any] = field(default_factory=dict)


@dataclass
class ActionSpec:
    type: str
    data: dict[str, Any]
    label: Optional[str] = None
    ignore_errors: bool = False


@dataclass
class TaskSpec:
    name: str
    hosts: list[str]
    actions: list[ActionSpec]


@dataclass
class Plan:
    hosts: dict[str, HostConfig]
    tasks: list[TaskSpec]


@dataclass
class TargetState:
    """Desired ``key = value`` lines for a single configuration file."""

    path: str
    settings: dict[str, Any] = field(default_factory=dict)

    def to_action(self, label: Optional[str] = None) -> ActionSpec:
        return ActionSpec(
            type="conf_settings",
            data={"path": self.path, "settings": dict(self.settings)},
            label=label,
        )


@dataclass
class ActionResult:
    host: str
    action: str
    changed: bool
    details: str
    failed: bool = False
    ignored: bool = False
    error: Optional[str] = None
    resource: Optional[str] = None
    label: Optional[str] = None
