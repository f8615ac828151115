"""Failure categories raised by operations.

Everything derives from :class:`ReconcileError` so the runner can tell an
expected step failure from a programming error, and so callers can report the
category without parsing messages.
"""

from __future__ import annotations

import subprocess


class ReconcileError(RuntimeError):
    kind = "error"


class PackageError(ReconcileError):
    """Repository, signing key or package install failure."""

    kind = "package"


class ServiceError(ReconcileError):
    """Service could not be enabled, disabled, started or stopped."""

    kind = "service"


class InitError(ReconcileError):
    """Database cluster initialisation failed."""

    kind = "init"


class FileEditError(ReconcileError):
    """Target file or directory is missing or unwritable."""

    kind = "file"


class CommandError(ReconcileError):
    """A command step exited with a status it was not allowed to return."""

    kind = "command"


def error_kind(exc: BaseException) -> str:
    if isinstance(exc, ReconcileError):
        return exc.kind
    if isinstance(exc, ValueError):
        return "invalid"
    return type(exc).__name__


def describe_failure(exc: subprocess.CalledProcessError) -> str:
    command = exc.cmd if isinstance(exc.cmd, str) else " ".join(str(part) for part in exc.cmd)
    output = (exc.stderr or exc.stdout or "").strip()
    message = f"{command} failed rc={exc.returncode}"
    if output:
        message = f"{message}: {output.splitlines()[0]}"
    return message
