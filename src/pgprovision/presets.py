"""Built-in plan: PostgreSQL 17 server on Oracle Linux 8."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Union
import logging

from .config import DEFAULT_DATA_DIR
from .types import ActionSpec, HostConfig, Plan, TargetState, TaskSpec

logger = logging.getLogger(__name__)

PGDG_KEYS = [
    "https://download.postgresql.org/pub/repos/yum/keys/RPM-GPG-KEY-PGDG",
    "https://download.postgresql.org/pub/repos/yum/keys/PGDG-RPM-GPG-KEY-RHEL",
]
PGDG_REPO_RPM = (
    "https://download.postgresql.org/pub/repos/yum/reporpms/EL-8-x86_64/pgdg-redhat-repo-latest.noarch.rpm"
)
SERVER_PACKAGES = ["postgresql17-server", "python3-psycopg2"]
SERVICE = "postgresql-17"
SETUP = "/usr/pgsql-17/bin/postgresql-17-setup"
BACKUP_FILES = ["pg_hba.conf", "pg_ident.conf", "postgresql.conf"]

PG_HBA_PATTERN = "^#host"
PG_HBA_REMOTE_LINE = "host    all             all             0.0.0.0/0            md5"

# Sized for a 16GB / 4 core host.
POSTGRESQL_CONF_SETTINGS: dict[str, Any] = {
    "listen_addresses": "'*'",
    "max_connections": 300,
    "shared_buffers": "4GB",
    "effective_cache_size": "12GB",
    "maintenance_work_mem": "1GB",
    "checkpoint_completion_target": 0.9,
    "wal_buffers": "16MB",
    "default_statistics_target": 100,
    "random_page_cost": 1.1,
    "effective_io_concurrency": 200,
    "work_mem": "6990kB",
    "huge_pages": "off",
    "min_wal_size": "1GB",
    "max_wal_size": "4GB",
    "max_worker_processes": 4,
    "max_parallel_workers_per_gather": 2,
    "max_parallel_workers": 4,
    "max_parallel_maintenance_workers": 2,
}


def postgresql17_plan(
    *,
    data_dir: Union[str, Path],
    admin_password: Any,
    host: str = "local",
) -> Plan:
    """Build the install-and-configure plan for one host.

    ``admin_password`` may be a literal or a secret reference; it is kept in
    the host variables and only resolved when the password step runs.
    """
    if admin_password is None or admin_password == "":
        raise ValueError("an admin password is required")
    data_dir = Path(data_dir)
    if data_dir != DEFAULT_DATA_DIR:
        # The setup script initialises the PGDATA of the service unit, not this path.
        logger.warning(
            "data_dir=%s differs from %s; %s initdb only uses it when the %s unit "
            "has an override setting Environment=PGDATA=%s",
            data_dir,
            DEFAULT_DATA_DIR,
            SETUP,
            SERVICE,
            data_dir,
        )
    hosts = {
        host: HostConfig(
            name=host,
            variables={"pgsql_data_dir": str(data_dir), "postgres_password": admin_password},
        )
    }

    firewall = [
        ActionSpec("service", {"name": "firewalld", "state": "stopped"}, label="Stop firewalld"),
        ActionSpec("service", {"name": "firewalld", "enabled": False}, label="Disable firewalld"),
    ]

    packages = [
        *(
            ActionSpec("rpm_key", {"key": key}, label=f"Import {key.rsplit('/', 1)[-1]}")
            for key in PGDG_KEYS
        ),
        ActionSpec("package", {"packages": [PGDG_REPO_RPM]}, label="Install the PGDG repository RPM"),
        ActionSpec(
            "dnf_module",
            {"name": "postgresql", "state": "disabled"},
            label="Disable built-in PostgreSQL module",
        ),
        ActionSpec("package", {"packages": list(SERVER_PACKAGES)}, label="Install PostgreSQL 17 server"),
    ]

    configure = [
        ActionSpec(
            "pg_initdb",
            {"setup": SETUP, "data_dir": "{{ pgsql_data_dir }}"},
            label="Initialize the PostgreSQL database",
            ignore_errors=True,
        ),
        ActionSpec(
            "backup",
            {"directory": "{{ pgsql_data_dir }}", "files": list(BACKUP_FILES), "suffix": ".orig"},
            label="Backup PostgreSQL configuration files",
        ),
        ActionSpec(
            "lineinfile",
            {
                "path": "{{ pgsql_data_dir }}/pg_hba.conf",
                "regexp": PG_HBA_PATTERN,
                "line": PG_HBA_REMOTE_LINE,
            },
            label="Allow remote connections in pg_hba.conf",
        ),
        TargetState(
            path="{{ pgsql_data_dir }}/postgresql.conf",
            settings=dict(POSTGRESQL_CONF_SETTINGS),
        ).to_action(label="Update postgresql.conf settings"),
    ]

    service = [
        ActionSpec("service", {"name": SERVICE, "enabled": True}, label="Enable PostgreSQL service"),
        ActionSpec("service", {"name": SERVICE, "state": "running"}, label="Start PostgreSQL service"),
        ActionSpec(
            "pg_password",
            {"role": "postgres", "password": "{{ postgres_password }}"},
            label="Set the postgres user password",
        ),
    ]

    tasks = [
        TaskSpec(name="firewall", hosts=[host], actions=firewall),
        TaskSpec(name="packages", hosts=[host], actions=packages),
        TaskSpec(name="configure", hosts=[host], actions=configure),
        TaskSpec(name="service", hosts=[host], actions=service),
    ]
    return Plan(hosts=hosts, tasks=tasks)
