from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional
import os

try:
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]


DEFAULT_CONFIG = Path("/etc/pgprovision/main.conf")
DEFAULT_DATA_DIR = Path("/var/lib/pgsql/17/data")
PASSWORD_ENV = "PGPROVISION_ADMIN_PASSWORD"


@dataclass
class PgProvisionConfig:
    plan: Optional[Path] = None
    log_level: str = "INFO"
    data_dir: Path = DEFAULT_DATA_DIR
    # Either a literal string or an ``{aws_secret = ..., key = ...}`` reference.
    admin_password: Any = None
    aws_region: Optional[str] = None
    aws_profile: Optional[str] = None


def load_config(path: Path) -> PgProvisionConfig:
    if not path.exists():
        cfg = PgProvisionConfig()
    else:
        try:
            data = tomllib.loads(path.read_text())
        except tomllib.TOMLDecodeError as exc:
            raise ValueError(f"{path}: {exc}") from None
        defaults = data.get("defaults", {})
        postgres = data.get("postgres", {})
        plan = defaults.get("plan")
        aws_region = defaults.get("aws_region")
        aws_profile = defaults.get("aws_profile")
        admin_password = postgres.get("admin_password")
        if admin_password is not None and not isinstance(admin_password, (str, dict)):
            raise ValueError(f"{path}: postgres.admin_password must be a string or a secret table")
        cfg = PgProvisionConfig(
            plan=Path(plan) if plan else None,
            log_level=str(defaults.get("log_level", "INFO")),
            data_dir=Path(postgres.get("data_dir", DEFAULT_DATA_DIR)),
            admin_password=admin_password,
            aws_region=str(aws_region) if aws_region else None,
            aws_profile=str(aws_profile) if aws_profile else None,
        )
    env_password = os.environ.get(PASSWORD_ENV)
    if env_password:
        cfg.admin_password = env_password
    return cfg
