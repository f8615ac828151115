"""PostgreSQL specific steps: cluster initialisation and role passwords."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional
import logging

from .base import Operation
from .exec import as_user
from ..errors import CommandError, InitError
from ..executors import Executor
from ..secrets import ScopedSecret, SecretResolver
from ..types import ActionResult, HostConfig

logger = logging.getLogger(__name__)

DEFAULT_SETUP = "/usr/pgsql-17/bin/postgresql-17-setup"
DEFAULT_DATA_DIR = "/var/lib/pgsql/17/data"


class PgInitdbOperation(Operation):
    """Create the cluster's on-disk layout unless ``PG_VERSION`` already exists."""

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        self.setup = str(spec.get("setup") or DEFAULT_SETUP)
        self.data_dir = Path(str(spec.get("data_dir") or DEFAULT_DATA_DIR))
        self.timeout = float(spec["timeout"]) if spec.get("timeout") is not None else None

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        marker = self.data_dir / "PG_VERSION"
        if executor.exists(marker):
            return ActionResult(
                host=host.name, action="pg_initdb", changed=False, details="already-initialized"
            )
        result = executor.run([self.setup, "initdb"], check=False, timeout=self.timeout)
        if result.returncode != 0:
            raise InitError(result.error_detail())
        detail = "dry-run" if executor.dry_run else "initialized"
        return ActionResult(host=host.name, action="pg_initdb", changed=True, details=detail)


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def quote_ident(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


class PgPasswordOperation(Operation):
    """Set a role's password through ``psql`` over the local socket.

    The statement travels on psql's stdin, so the password never appears in
    an argument list or an environment block that other processes can read.
    """

    secret_resolver = SecretResolver()

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        self.role = str(spec.get("role") or spec.get("name") or "postgres")
        raw_password = spec.get("password")
        if raw_password is None or raw_password == "":
            raise ValueError("pg_password operation requires a password")
        self._password_ref = raw_password
        self.database = str(spec.get("database", "postgres"))
        self.psql = str(spec.get("psql", "psql"))
        raw_user = spec.get("become_user", "postgres")
        self.become_user: Optional[str] = str(raw_user) if raw_user else None

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        credential = ScopedSecret.from_reference(self._password_ref, self.secret_resolver)
        command = as_user(
            [self.psql, "-X", "-q", "-v", "ON_ERROR_STOP=1", "-d", self.database, "-f", "-"],
            self.become_user,
        )
        with credential.reveal() as password:
            statement = f"ALTER ROLE {quote_ident(self.role)} WITH PASSWORD {quote_literal(password)};\n"
            result = executor.run(command, check=False, input=statement)
        if result.returncode != 0:
            raise CommandError(result.error_detail())
        detail = "dry-run" if executor.dry_run else "password-set"
        logger.debug("password updated for role %s", self.role)
        return ActionResult(host=host.name, action="pg_password", changed=True, details=detail)
