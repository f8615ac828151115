import subprocess

import pytest

from pgprovision.errors import PackageError
from pgprovision.executors import CommandResult, Executor
from pgprovision.operations import package as pkg
from pgprovision.operations.package import DnfPackageManager, PackageManager, is_package_file
from pgprovision.types import HostConfig

REPO_RPM = "https://download.postgresql.org/pub/repos/yum/reporpms/EL-8-x86_64/pgdg-redhat-repo-latest.noarch.rpm"


class FakePackageManager(PackageManager):
    name = "fake"

    def __init__(self, installed: set[str], fail: bool = False):
        self._installed = installed
        self.fail = fail
        self.installed_calls: list[list[str]] = []

    def install(self, executor, packages: list[str]) -> None:  # type: ignore[override]
        if self.fail:
            raise subprocess.CalledProcessError(1, ["dnf", "install", "-y", *packages], "", "No match")
        self.installed_calls.append(packages)
        self._installed.update(packages)

    def remove(self, executor, packages: list[str]) -> None:  # type: ignore[override]
        for pkg_name in packages:
            self._installed.discard(pkg_name)

    def is_installed(self, executor, package: str) -> bool:  # type: ignore[override]
        return package in self._installed


class RecordingExecutor(Executor):
    def __init__(self, responses: dict[tuple[str, ...], CommandResult] | None = None):
        super().__init__(HostConfig(name="local"))
        self.responses = responses or {}
        self.commands: list[tuple[str, ...]] = []

    def run(self, command, *, check: bool = True, mutable: bool = True, **kwargs):  # type: ignore[override]
        key = tuple(command)
        self.commands.append(key)
        result = self.responses.get(key, CommandResult(list(command), "", "", 0))
        if check and result.returncode != 0:
            raise subprocess.CalledProcessError(result.returncode, list(command), result.stdout, result.stderr)
        return result


@pytest.fixture
def fake_manager(monkeypatch):
    installed = {"python3-psycopg2"}

    def create(cls, preferred):
        return FakePackageManager(installed)

    monkeypatch.setattr(pkg.PackageManagerFactory, "create", classmethod(create))
    return installed


def test_package_present_installs_missing(fake_manager):
    spec = {"packages": ["postgresql17-server", "python3-psycopg2"], "state": "present"}
    op = pkg.PackageOperation(spec)
    result = op.apply(HostConfig("local"), RecordingExecutor())

    assert result.changed is True
    assert "installed=postgresql17-server" in result.details
    assert "postgresql17-server" in fake_manager


def test_package_present_noop_when_installed(fake_manager):
    op = pkg.PackageOperation({"name": "python3-psycopg2"})
    result = op.apply(HostConfig("local"), RecordingExecutor())

    assert result.changed is False
    assert "already-installed" in result.details


def test_package_absent_removes_installed(fake_manager):
    op = pkg.PackageOperation({"packages": ["python3-psycopg2"], "state": "absent"})
    result = op.apply(HostConfig("local"), RecordingExecutor())

    assert result.changed is True
    assert "python3-psycopg2" not in fake_manager


def test_package_install_failure_raises_package_error(monkeypatch):
    monkeypatch.setattr(
        pkg.PackageManagerFactory,
        "create",
        classmethod(lambda cls, preferred: FakePackageManager(set(), fail=True)),
    )
    op = pkg.PackageOperation({"packages": ["postgresql17-server"]})

    with pytest.raises(PackageError) as excinfo:
        op.apply(HostConfig("local"), RecordingExecutor())
    assert "No match" in str(excinfo.value)


def test_package_requires_names():
    with pytest.raises(ValueError):
        pkg.PackageOperation({})


def test_is_package_file():
    assert is_package_file(REPO_RPM)
    assert is_package_file("/tmp/local.rpm")
    assert not is_package_file("postgresql17-server")


def test_dnf_checks_repo_rpm_by_header_name():
    executor = RecordingExecutor(
        {
            ("rpm", "-qp", "--qf", "%{NAME}", REPO_RPM): CommandResult([], "pgdg-redhat-repo", "", 0),
            ("rpm", "-q", "pgdg-redhat-repo"): CommandResult([], "", "", 1),
        }
    )
    manager = DnfPackageManager()

    changed, detail = manager.ensure_present(executor, [REPO_RPM])

    assert changed is True
    assert ("rpm", "-q", "pgdg-redhat-repo") in executor.commands
    assert executor.commands[-1] == ("dnf", "install", "-y", REPO_RPM)


def test_dnf_repo_rpm_already_installed():
    executor = RecordingExecutor(
        {("rpm", "-qp", "--qf", "%{NAME}", REPO_RPM): CommandResult([], "pgdg-redhat-repo", "", 0)}
    )
    changed, detail = DnfPackageManager().ensure_present(executor, [REPO_RPM])

    assert changed is False
    assert detail == "already-installed"


def test_dnf_unreadable_repo_rpm_raises():
    executor = RecordingExecutor(
        {("rpm", "-qp", "--qf", "%{NAME}", REPO_RPM): CommandResult([], "", "404 Not Found", 1)}
    )
    with pytest.raises(PackageError):
        DnfPackageManager().ensure_present(executor, [REPO_RPM])


def test_factory_rejects_unknown_manager():
    with pytest.raises(ValueError):
        pkg.PackageManagerFactory.create("apt")
