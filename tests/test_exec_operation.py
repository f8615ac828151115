from pathlib import Path

import pytest

from pgprovision.errors import CommandError
from pgprovision.executors import CommandResult, Executor, LocalExecutor
from pgprovision.operations.exec import ExecOperation
from pgprovision.types import HostConfig


class RecordingExecutor(Executor):
    def __init__(self):
        super().__init__(HostConfig(name="local"))
        self.commands: list[list[str]] = []

    def exists(self, path: Path) -> bool:
        return path.exists()

    def run(self, command, *, check: bool = True, mutable: bool = True, **kwargs):  # type: ignore[override]
        self.commands.append(list(command))
        return CommandResult(list(command), "", "", 0)


def test_exec_runs_command(tmp_path: Path) -> None:
    host = HostConfig("local")
    target = tmp_path / "out.txt"
    op = ExecOperation({"name": "write-file", "command": f"echo hi > {target}"})
    result = op.apply(host, LocalExecutor(host))

    assert target.read_text().strip() == "hi"
    assert result.changed is True
    assert "ran" in result.details


def test_exec_skips_when_creates_exists(tmp_path: Path) -> None:
    host = HostConfig("local")
    target = tmp_path / "PG_VERSION"
    target.write_text("17")
    op = ExecOperation({"name": "guard", "command": "echo should-not-run", "creates": str(target)})
    result = op.apply(host, LocalExecutor(host))

    assert result.changed is False
    assert "creates" in result.details


def test_exec_only_if_and_unless_guards() -> None:
    host = HostConfig("local")
    op_only_if = ExecOperation({"name": "guarded", "command": "echo skip", "only_if": "false"})
    result_only_if = op_only_if.apply(host, LocalExecutor(host))

    op_unless = ExecOperation({"name": "guarded2", "command": "echo skip", "unless": "true"})
    result_unless = op_unless.apply(host, LocalExecutor(host))

    assert result_only_if.changed is False
    assert "only_if" in result_only_if.details
    assert result_unless.changed is False
    assert "unless" in result_unless.details


def test_exec_respects_allowed_returns() -> None:
    host = HostConfig("local")
    op_ok = ExecOperation({"name": "rc-allowed", "command": "exit 3", "returns": [0, 3]})
    ok = op_ok.apply(host, LocalExecutor(host))

    assert ok.changed is True
    assert ok.failed is False

    op_fail = ExecOperation({"name": "rc-fail", "command": "echo boom >&2; exit 5"})
    with pytest.raises(CommandError) as excinfo:
        op_fail.apply(host, LocalExecutor(host))
    assert "rc=5" in str(excinfo.value)
    assert "boom" in str(excinfo.value)


def test_exec_passes_env() -> None:
    host = HostConfig("local")
    op = ExecOperation({"name": "env-check", "command": 'test "$FOO" = bar', "env": {"FOO": "bar"}})
    result = op.apply(host, LocalExecutor(host))

    assert result.changed is True


def test_exec_become_user_wraps_with_runuser() -> None:
    executor = RecordingExecutor()
    op = ExecOperation({"command": ["psql", "-c", "select 1"], "become_user": "postgres"})
    op.apply(HostConfig("local"), executor)

    assert executor.commands == [["runuser", "-u", "postgres", "--", "psql", "-c", "select 1"]]


def test_exec_dry_run_skips_command(tmp_path: Path) -> None:
    host = HostConfig("local")
    target = tmp_path / "out.txt"
    op = ExecOperation({"command": f"touch {target}"})
    result = op.apply(host, LocalExecutor(host, dry_run=True))

    assert result.details == "dry-run"
    assert not target.exists()


def test_exec_requires_command() -> None:
    with pytest.raises(ValueError):
        ExecOperation({"name": "nothing"})
