from .backup import BackupOperation
from .base import Operation
from .dnf_module import DnfModuleOperation
from .exec import ExecOperation
from .lineinfile import ConfSettingsOperation, LineInFileOperation
from .package import PackageOperation
from .postgres import PgInitdbOperation, PgPasswordOperation
from .rpm_key import RpmKeyOperation
from .service import ServiceOperation

OPERATION_REGISTRY = {
    "service": ServiceOperation,
    "package": PackageOperation,
    "rpm_key": RpmKeyOperation,
    "dnf_module": DnfModuleOperation,
    "exec": ExecOperation,
    "lineinfile": LineInFileOperation,
    "conf_settings": ConfSettingsOperation,
    "backup": BackupOperation,
    "pg_initdb": PgInitdbOperation,
    "pg_password": PgPasswordOperation,
}

__all__ = [
    "Operation",
    "ServiceOperation",
    "PackageOperation",
    "RpmKeyOperation",
    "DnfModuleOperation",
    "ExecOperation",
    "LineInFileOperation",
    "ConfSettingsOperation",
    "BackupOperation",
    "PgInitdbOperation",
    "PgPasswordOperation",
    "OPERATION_REGISTRY",
]
