from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union
import logging
import os
import shutil
import subprocess

from .types import HostConfig

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    command: list[str]
    stdout: str
    stderr: str
    returncode: int

    def summary(self) -> Optional[str]:
        """First non-empty output line, stderr preferred, clipped to 160 chars."""
        for text in (self.stderr, self.stdout):
            if not text:
                continue
            stripped = text.strip()
            if not stripped:
                continue
            line = stripped.splitlines()[0]
            return (line[:157] + "...") if len(line) > 160 else line
        return None

    def error_detail(self) -> str:
        message = self.summary()
        prefix = f"rc={self.returncode}"
        if message:
            return f"{prefix}: {message}"
        return prefix


class Executor:
    """Base executor abstraction used by operations."""

    def __init__(self, host: HostConfig, *, dry_run: bool = False):
        self.host = host
        self.dry_run = dry_run

    def run(
        self,
        command: Sequence[str],
        *,
        check: bool = True,
        mutable: bool = True,
        env: Optional[dict[str, str]] = None,
        cwd: Optional[Union[str, Path]] = None,
        timeout: Optional[float] = None,
        input: Optional[str] = None,
    ) -> CommandResult:
        """Run ``command`` and optionally skip it during dry-runs.

        ``input`` is written to the child's stdin and never logged; it is the
        channel for anything that must stay out of argv and the environment.
        """

        cmd_list = list(command)
        if self.dry_run and mutable:
            return CommandResult(cmd_list, "", "skipped (dry-run)", 0)

        exec_env = None
        if env:
            exec_env = os.environ.copy()
            exec_env.update(env)

        logger.debug("run host=%s cmd=%s", self.host.name, " ".join(cmd_list))
        proc = subprocess.run(
            cmd_list,
            capture_output=True,
            text=True,
            check=False,
            env=exec_env,
            cwd=str(cwd) if cwd is not None else None,
            timeout=timeout,
            input=input,
        )
        if check and proc.returncode != 0:
            raise subprocess.CalledProcessError(
                proc.returncode,
                cmd_list,
                proc.stdout,
                proc.stderr,
            )
        return CommandResult(cmd_list, proc.stdout, proc.stderr, proc.returncode)

    # File primitives -----------------------------------------------------
    def exists(self, path: Path) -> bool:
        raise NotImplementedError

    def read_file(self, path: Path) -> Optional[str]:
        raise NotImplementedError

    def write_file(self, path: Path, *, content: str, mode: Optional[int] = None) -> tuple[bool, str]:
        raise NotImplementedError

    def copy_file(self, source: Path, dest: Path) -> bool:
        raise NotImplementedError


class LocalExecutor(Executor):
    """Executor that acts directly on the local host."""

    def exists(self, path: Path) -> bool:
        return path.exists()

    def read_file(self, path: Path) -> Optional[str]:
        try:
            return path.read_text()
        except FileNotFoundError:
            return None

    def write_file(self, path: Path, *, content: str, mode: Optional[int] = None) -> tuple[bool, str]:
        current = self.read_file(path)
        changed = False
        reasons: list[str] = []

        if current != content:
            changed = True
            reasons.append("content")
            if not self.dry_run:
                # Rewriting in place keeps the existing owner and mode.
                path.write_text(content)

        if mode is not None and path.exists():
            existing_mode = path.stat().st_mode & 0o7777
            if existing_mode != mode:
                changed = True
                reasons.append(f"mode->{mode:04o}")
                if not self.dry_run:
                    os.chmod(path, mode)
        detail = ", ".join(reasons) if reasons else "noop"
        return changed, detail

    def copy_file(self, source: Path, dest: Path) -> bool:
        """Copy ``source`` to ``dest`` keeping mode, timestamps and ownership."""
        if self.dry_run:
            return True
        shutil.copy2(source, dest)
        st = source.stat()
        try:
            os.chown(dest, st.st_uid, st.st_gid)
        except PermissionError:
            logger.debug("Unable to preserve ownership on %s", dest, exc_info=True)
        return True
