from __future__ import annotations

from typing import Iterable, Optional
import logging
import shutil
import subprocess

from .base import Operation
from ..errors import PackageError, describe_failure
from ..executors import Executor
from ..types import ActionResult, HostConfig

logger = logging.getLogger(__name__)


def is_package_file(package: str) -> bool:
    """True for repository descriptors given as a URL or a local ``.rpm`` path."""
    return package.startswith(("http://", "https://", "ftp://", "file://", "/")) or package.endswith(".rpm")


class PackageOperation(Operation):
    """Install or remove packages using the detected package manager."""

    def __init__(self, spec: dict[str, object]):
        super().__init__(spec)
        packages = spec.get("packages") or spec.get("name")
        if isinstance(packages, str):
            self.packages = [packages]
        else:
            self.packages = [str(pkg) for pkg in (packages or [])]
        if not self.packages:
            raise ValueError("package operation requires at least one package")
        self.state = str(spec.get("state", "present"))
        if self.state not in {"present", "absent"}:
            raise ValueError("package operation state must be 'present' or 'absent'")
        self.preferred_manager = spec.get("manager")

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        manager = PackageManagerFactory.create(self.preferred_manager)
        logger.debug(
            "package-manager=%s host=%s packages=%s", manager.name, host.name, self.packages
        )
        try:
            if self.state == "present":
                changed, details = manager.ensure_present(executor, self.packages)
            else:
                changed, details = manager.ensure_absent(executor, self.packages)
        except subprocess.CalledProcessError as exc:
            raise PackageError(describe_failure(exc)) from exc
        detail_msg = f"manager={manager.name} {details}" if details else f"manager={manager.name}"
        return ActionResult(host=host.name, action="package", changed=changed, details=detail_msg)


class PackageManagerFactory:
    _MANAGERS = [
        ("dnf", "dnf", lambda: DnfPackageManager()),
        ("yum", "yum", lambda: YumPackageManager()),
    ]

    @classmethod
    def create(cls, preferred: Optional[object]) -> "PackageManager":
        if isinstance(preferred, str):
            preferred = preferred.lower()
            for _, key, factory in cls._MANAGERS:
                if key == preferred:
                    return factory()
            raise ValueError(f"Unknown package manager '{preferred}'")
        for binary, _, factory in cls._MANAGERS:
            if shutil.which(binary):
                return factory()
        raise PackageError("No supported package manager found on PATH")


class PackageManager:
    """Capability interface for an OS package manager."""

    name = "generic"

    def ensure_present(self, executor: Executor, packages: Iterable[str]) -> tuple[bool, str]:
        needed = [pkg for pkg in packages if not self.is_installed(executor, pkg)]
        if not needed:
            return False, "already-installed"
        self.install(executor, needed)
        return True, f"installed={','.join(needed)}"

    def ensure_absent(self, executor: Executor, packages: Iterable[str]) -> tuple[bool, str]:
        removable = [pkg for pkg in packages if self.is_installed(executor, pkg)]
        if not removable:
            return False, "already-removed"
        self.remove(executor, [self.package_name(executor, pkg) for pkg in removable])
        return True, f"removed={','.join(removable)}"

    def install(self, executor: Executor, packages: list[str]) -> None:
        raise NotImplementedError

    def remove(self, executor: Executor, packages: list[str]) -> None:
        raise NotImplementedError

    def is_installed(self, executor: Executor, package: str) -> bool:
        raise NotImplementedError

    def package_name(self, executor: Executor, package: str) -> str:
        return package


class DnfPackageManager(PackageManager):
    name = "dnf"
    executable = "dnf"

    def install(self, executor: Executor, packages: list[str]) -> None:
        executor.run([self.executable, "install", "-y", *packages])

    def remove(self, executor: Executor, packages: list[str]) -> None:
        executor.run([self.executable, "remove", "-y", *packages])

    def is_installed(self, executor: Executor, package: str) -> bool:
        name = self.package_name(executor, package)
        result = executor.run(["rpm", "-q", name], check=False, mutable=False)
        return result.returncode == 0

    def package_name(self, executor: Executor, package: str) -> str:
        if not is_package_file(package):
            return package
        # rpm reads the header of remote packages without installing them.
        result = executor.run(
            ["rpm", "-qp", "--qf", "%{NAME}", package],
            check=False,
            mutable=False,
        )
        if result.returncode != 0 or not result.stdout.strip():
            raise PackageError(f"Unable to read package name from {package}: {result.error_detail()}")
        return result.stdout.strip()


class YumPackageManager(DnfPackageManager):
    name = "yum"
    executable = "yum"
