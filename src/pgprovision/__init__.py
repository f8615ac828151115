"""PostgreSQL provisioning by ordered, idempotent reconciliation steps."""

from .runner import TaskRunner
from .inventory import InventoryLoader
from .presets import postgresql17_plan

__all__ = ["TaskRunner", "InventoryLoader", "postgresql17_plan"]
