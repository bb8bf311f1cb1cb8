"""state-upgrader: resumable, transactional execution of migration plans."""

__version__ = "0.1.0"

from .database import DatabaseManager, KeyValueStateStore, ScopeProvider
from .migrations import (
    Migration,
    MigrationContext,
    MigrationPlan,
    MigrationPlanBuilder,
    MigrationPlanExecutor,
    MigrationRegistry,
    Upgrader,
    UpgradeResult,
    run_upgrade,
)
from .utils.logging import (
    ConfigurationError,
    IndeterminateStateError,
    MigrationExecutionError,
    PlanConfigurationError,
    StateStoreError,
    UnknownStateError,
    UpgraderException,
)

__all__ = [
    "DatabaseManager",
    "KeyValueStateStore",
    "ScopeProvider",
    "Migration",
    "MigrationContext",
    "MigrationPlan",
    "MigrationPlanBuilder",
    "MigrationPlanExecutor",
    "MigrationRegistry",
    "Upgrader",
    "UpgradeResult",
    "run_upgrade",
    "ConfigurationError",
    "IndeterminateStateError",
    "MigrationExecutionError",
    "PlanConfigurationError",
    "StateStoreError",
    "UnknownStateError",
    "UpgraderException",
    "__version__",
]
