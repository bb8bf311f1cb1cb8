"""Migration plans, their executor and the upgrader."""

from .executor import ExecutionResult, MigrationPlanExecutor
from .migration import (
    CallableMigration,
    Migration,
    MigrationContext,
    NoopMigration,
    SqlMigration,
)
from .plan import MigrationPlan, MigrationPlanBuilder, Transition
from .registry import MigrationRegistry
from .upgrader import UpgradeResult, Upgrader, run_upgrade

__all__ = [
    "CallableMigration",
    "ExecutionResult",
    "Migration",
    "MigrationContext",
    "MigrationPlan",
    "MigrationPlanBuilder",
    "MigrationPlanExecutor",
    "MigrationRegistry",
    "NoopMigration",
    "SqlMigration",
    "Transition",
    "UpgradeResult",
    "Upgrader",
    "run_upgrade",
]
