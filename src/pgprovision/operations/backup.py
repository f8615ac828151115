from __future__ import annotations

from pathlib import Path
from typing import Any

from .base import Operation
from ..errors import FileEditError
from ..executors import Executor
from ..types import ActionResult, HostConfig


class BackupOperation(Operation):
    """Keep a pristine copy of files before they are edited.

    An existing backup is never overwritten, so the copy always reflects the
    file as it was before the first run.
    """

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        raw_files = spec.get("files") or spec.get("path")
        if isinstance(raw_files, str):
            raw_files = [raw_files]
        if not raw_files:
            raise ValueError("backup operation requires files or a path")
        directory = spec.get("directory")
        base = Path(str(directory)) if directory else None
        self.files = [base / str(name) if base else Path(str(name)) for name in raw_files]
        self.suffix = str(spec.get("suffix", ".orig"))
        if not self.suffix:
            raise ValueError("backup suffix must not be empty")

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        created: list[str] = []
        for source in self.files:
            dest = source.with_name(source.name + self.suffix)
            if executor.exists(dest):
                continue
            if not executor.exists(source):
                raise FileEditError(f"{source} does not exist")
            try:
                executor.copy_file(source, dest)
            except OSError as exc:
                raise FileEditError(f"Unable to back up {source}: {exc}") from exc
            created.append(dest.name)

        if not created:
            return ActionResult(host=host.name, action="backup", changed=False, details="noop")
        return ActionResult(
            host=host.name, action="backup", changed=True, details=f"created={','.join(created)}"
        )
