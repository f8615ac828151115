import subprocess
from pathlib import Path

import pytest

from pgprovision.errors import PackageError
from pgprovision.executors import CommandResult, Executor
from pgprovision.operations.rpm_key import RpmKeyOperation, parse_key_ids
from pgprovision.types import HostConfig

KEY_URL = "https://download.postgresql.org/pub/repos/yum/keys/RPM-GPG-KEY-PGDG"
GPG_OUTPUT = (
    "pub:-:4096:1:40BCA2B408B40D20:1673358364:::-:::scESC::::::23::0:\n"
    "fpr:::::::::D4BF08AE67A0B4C7A1DBCCD240BCA2B408B40D20:\n"
    "uid:-::::1673358364::0A1B2C::PostgreSQL RPM Repository <pgsql-pkg-yum@lists.postgresql.org>::::::::::0:\n"
)


class KeyExecutor(Executor):
    def __init__(self, installed: set[str], gpg_output: str = GPG_OUTPUT, fail_import: bool = False):
        super().__init__(HostConfig(name="local"))
        self.installed = installed
        self.gpg_output = gpg_output
        self.fail_import = fail_import
        self.commands: list[list[str]] = []

    def run(self, command, *, check: bool = True, mutable: bool = True, **kwargs):  # type: ignore[override]
        cmd = list(command)
        self.commands.append(cmd)
        result = CommandResult(cmd, "", "", 0)
        if cmd[0] == "gpg":
            result = CommandResult(cmd, self.gpg_output, "", 0)
        elif cmd[:2] == ["rpm", "-q"]:
            result = CommandResult(cmd, "", "", 0 if cmd[2] in self.installed else 1)
        elif cmd[:2] == ["rpm", "--import"] and self.fail_import:
            result = CommandResult(cmd, "", "error: key import failed", 1)
        if check and result.returncode != 0:
            raise subprocess.CalledProcessError(result.returncode, cmd, result.stdout, result.stderr)
        return result


@pytest.fixture
def stub_fetcher(monkeypatch, tmp_path: Path):
    key_file = tmp_path / "key.asc"

    class StubFetcher:
        def __init__(self, executor):
            pass

        def fetch(self, source: str) -> Path:  # noqa: ARG002
            key_file.write_text("-----BEGIN PGP PUBLIC KEY BLOCK-----")
            return key_file

        @staticmethod
        def cleanup(path: Path) -> None:
            path.unlink(missing_ok=True)

    monkeypatch.setattr("pgprovision.operations.rpm_key.RemoteFetcher", StubFetcher)
    return key_file


def test_parse_key_ids_uses_short_id():
    assert parse_key_ids(GPG_OUTPUT) == ["08b40d20"]


def test_rpm_key_imports_when_missing(stub_fetcher):
    executor = KeyExecutor(installed=set())
    op = RpmKeyOperation({"key": KEY_URL})

    result = op.apply(HostConfig("local"), executor)

    assert result.changed is True
    assert result.details == "imported=08b40d20"
    assert ["rpm", "--import", str(stub_fetcher)] in executor.commands
    assert not stub_fetcher.exists()


def test_rpm_key_noop_when_present(stub_fetcher):
    executor = KeyExecutor(installed={"gpg-pubkey-08b40d20"})
    op = RpmKeyOperation({"key": KEY_URL})

    result = op.apply(HostConfig("local"), executor)

    assert result.changed is False
    assert not any(cmd[:2] == ["rpm", "--import"] for cmd in executor.commands)


def test_rpm_key_without_public_key_raises(stub_fetcher):
    executor = KeyExecutor(installed=set(), gpg_output="")
    with pytest.raises(PackageError):
        RpmKeyOperation({"key": KEY_URL}).apply(HostConfig("local"), executor)


def test_rpm_key_import_failure_raises_package_error(stub_fetcher):
    executor = KeyExecutor(installed=set(), fail_import=True)
    with pytest.raises(PackageError) as excinfo:
        RpmKeyOperation({"key": KEY_URL}).apply(HostConfig("local"), executor)
    assert "key import failed" in str(excinfo.value)


def test_rpm_key_absent_removes(stub_fetcher):
    executor = KeyExecutor(installed={"gpg-pubkey-08b40d20"})
    result = RpmKeyOperation({"key": KEY_URL, "state": "absent"}).apply(HostConfig("local"), executor)

    assert result.changed is True
    assert ["rpm", "-e", "--allmatches", "gpg-pubkey-08b40d20"] in executor.commands


def test_rpm_key_missing_local_file_raises(tmp_path: Path):
    executor = KeyExecutor(installed=set())
    with pytest.raises(PackageError):
        RpmKeyOperation({"key": str(tmp_path / "nope.asc")}).apply(HostConfig("local"), executor)
