from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any

from .base import Operation
from ..errors import PackageError, describe_failure
from ..executors import Executor
from ..types import ActionResult, HostConfig


class RemoteFetcher:
    def __init__(self, executor: Executor):
        self.executor = executor

    def fetch(self, source: str) -> Path:
        tmp_fd, tmp_name = tempfile.mkstemp(prefix="pgprovision-fetch-")
        os.close(tmp_fd)
        tmp_path = Path(tmp_name)
        if source.startswith(("http://", "https://")):
            # Downloading to a scratch file changes nothing on the host.
            self.executor.run(["curl", "-fsSL", source, "-o", str(tmp_path)], mutable=False)
        elif source.startswith("file://"):
            shutil.copyfile(Path(source[7:]), tmp_path)
        else:
            local = Path(source)
            if not local.exists():
                tmp_path.unlink(missing_ok=True)
                raise FileNotFoundError(f"Source {source} not found")
            shutil.copyfile(local, tmp_path)
        return tmp_path

    @staticmethod
    def cleanup(path: Path) -> None:
        path.unlink(missing_ok=True)


def parse_key_ids(gpg_output: str) -> list[str]:
    """Short (8 hex digit) ids of every public key in ``gpg --with-colons`` output."""
    ids: list[str] = []
    for line in gpg_output.splitlines():
        fields = line.split(":")
        if fields[0] == "pub" and len(fields) > 4 and fields[4]:
            ids.append(fields[4][-8:].lower())
    return ids


class RpmKeyOperation(Operation):
    """Import a package signing key into the rpm database."""

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        raw_key = spec.get("key") or spec.get("url") or spec.get("name")
        if not raw_key:
            raise ValueError("rpm_key operation requires a key")
        self.key = str(raw_key)
        self.state = str(spec.get("state", "present"))
        if self.state not in {"present", "absent"}:
            raise ValueError("rpm_key state must be 'present' or 'absent'")

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        fetcher = RemoteFetcher(executor)
        try:
            tmp = fetcher.fetch(self.key)
        except subprocess.CalledProcessError as exc:
            raise PackageError(describe_failure(exc)) from exc
        except FileNotFoundError as exc:
            raise PackageError(str(exc)) from exc
        try:
            return self._apply_key(host, executor, tmp)
        except subprocess.CalledProcessError as exc:
            raise PackageError(describe_failure(exc)) from exc
        finally:
            RemoteFetcher.cleanup(tmp)

    def _apply_key(self, host: HostConfig, executor: Executor, key_file: Path) -> ActionResult:
        shown = executor.run(
            ["gpg", "--batch", "--no-default-keyring", "--with-colons", "--show-keys", str(key_file)],
            mutable=False,
        )
        key_ids = parse_key_ids(shown.stdout)
        if not key_ids:
            raise PackageError(f"No public key found in {self.key}")
        installed = {key_id for key_id in key_ids if self._is_installed(executor, key_id)}

        if self.state == "absent":
            if not installed:
                return ActionResult(host=host.name, action="rpm_key", changed=False, details="noop")
            for key_id in sorted(installed):
                executor.run(["rpm", "-e", "--allmatches", f"gpg-pubkey-{key_id}"])
            detail = f"removed={','.join(sorted(installed))}"
            return ActionResult(host=host.name, action="rpm_key", changed=True, details=detail)

        missing = [key_id for key_id in key_ids if key_id not in installed]
        if not missing:
            return ActionResult(host=host.name, action="rpm_key", changed=False, details="already-imported")
        executor.run(["rpm", "--import", str(key_file)])
        return ActionResult(
            host=host.name, action="rpm_key", changed=True, details=f"imported={','.join(missing)}"
        )

    @staticmethod
    def _is_installed(executor: Executor, key_id: str) -> bool:
        result = executor.run(["rpm", "-q", f"gpg-pubkey-{key_id}"], check=False, mutable=False)
        return result.returncode == 0
