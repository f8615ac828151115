"""Line-level edits of existing configuration files.

Both operations here are built on :func:`upsert_line`: the last line matching
a pattern is replaced, otherwise the line is appended. Settings edits also
drop older lines for the same key. Running the same edit twice leaves the
file unchanged the second time.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Union
import logging
import re

from .base import Operation, coerce_bool
from ..errors import FileEditError
from ..executors import Executor
from ..types import ActionResult, HostConfig

logger = logging.getLogger(__name__)

Pattern = Union[str, "re.Pattern[str]"]


def upsert_line(text: str, pattern: Pattern, line: str, *, unique: bool = False) -> tuple[str, str]:
    """Return ``(new_text, outcome)``; outcome is ``replaced``, ``appended`` or ``noop``.

    With ``unique`` every earlier line matching ``pattern`` is dropped, so the
    result holds exactly one matching line.
    """
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern
    # Only "\n" separates lines; other line-break characters are content.
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()

    matches = [index for index, current in enumerate(lines) if regex.search(current)]

    if matches:
        last = matches[-1]
        if lines[last] == line and (not unique or len(matches) == 1):
            return text, "noop"
        lines[last] = line
        if unique:
            stale = set(matches[:-1])
            lines = [current for index, current in enumerate(lines) if index not in stale]
        outcome = "replaced"
    elif line in lines:
        return text, "noop"
    else:
        lines.append(line)
        outcome = "appended"
    return "\n".join(lines) + "\n", outcome


def setting_pattern(key: str) -> "re.Pattern[str]":
    """Match ``key = ...`` whether active or commented out, and nothing longer."""
    return re.compile(rf"^#?\s*{re.escape(key)}\s*=")


def format_setting(key: str, value: Any) -> str:
    if isinstance(value, bool):
        value = "on" if value else "off"
    return f"{key} = {value}"


class LineInFileOperation(Operation):
    """Ensure a single line is present, replacing the last line matching ``regexp``."""

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        raw_path = spec.get("path")
        if not raw_path:
            raise ValueError("lineinfile operation requires a path")
        self.path = Path(str(raw_path))
        raw_line = spec.get("line")
        if raw_line is None:
            raise ValueError("lineinfile operation requires a line")
        self.line = str(raw_line)
        if "\n" in self.line:
            raise ValueError("lineinfile line must not contain newlines")
        raw_regexp = spec.get("regexp")
        try:
            self.regexp = re.compile(str(raw_regexp)) if raw_regexp else re.compile(f"^{re.escape(self.line)}$")
        except re.error as exc:
            raise ValueError(f"lineinfile regexp is invalid: {exc}") from exc
        self.create = coerce_bool(spec.get("create", False))

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        current = executor.read_file(self.path)
        if current is None:
            if not self.create:
                raise FileEditError(f"{self.path} does not exist")
            if not executor.dry_run and not executor.exists(self.path.parent):
                raise FileEditError(f"{self.path.parent} does not exist")
            current = ""

        updated, outcome = upsert_line(current, self.regexp, self.line)
        if outcome == "noop":
            return ActionResult(host=host.name, action="lineinfile", changed=False, details="noop")
        logger.debug("lineinfile %s path=%s line=%s", outcome, self.path, self.line)
        _write(executor, self.path, updated)
        return ActionResult(host=host.name, action="lineinfile", changed=True, details=outcome)


class ConfSettingsOperation(Operation):
    """Apply a TargetState: one ``key = value`` line per setting in a config file."""

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        raw_path = spec.get("path")
        if not raw_path:
            raise ValueError("conf_settings operation requires a path")
        self.path = Path(str(raw_path))
        settings = spec.get("settings")
        if not isinstance(settings, dict) or not settings:
            raise ValueError("conf_settings operation requires a non-empty settings mapping")
        for key in settings:
            if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_.]*", str(key)):
                raise ValueError(f"conf_settings key '{key}' is not a valid setting name")
        self.settings = {str(k): v for k, v in settings.items()}

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        text = executor.read_file(self.path)
        if text is None:
            raise FileEditError(f"{self.path} does not exist")

        outcomes: dict[str, list[str]] = {"replaced": [], "appended": []}
        for key, value in self.settings.items():
            text, outcome = upsert_line(
                text, setting_pattern(key), format_setting(key, value), unique=True
            )
            if outcome != "noop":
                outcomes[outcome].append(key)

        if not any(outcomes.values()):
            return ActionResult(host=host.name, action="conf_settings", changed=False, details="noop")
        _write(executor, self.path, text)
        detail = ", ".join(f"{name}={','.join(keys)}" for name, keys in outcomes.items() if keys)
        return ActionResult(host=host.name, action="conf_settings", changed=True, details=detail)


def _write(executor: Executor, path: Path, content: str) -> None:
    try:
        executor.write_file(path, content=content)
    except OSError as exc:
        raise FileEditError(f"Unable to write {path}: {exc}") from exc
