"""Brings a plan's target up to date and records how far it got."""

from dataclasses import dataclass, field

from ..config.loader import DEFAULT_STATE_KEY_PREFIX
from ..database import DatabaseManager, KeyValueStateStore, ScopeProvider
from ..utils.logging import (
    IndeterminateStateError,
    LogContext,
    PlanConfigurationError,
    get_logger,
)
from .executor import MigrationPlanExecutor
from .plan import MigrationPlan, Transition

logger = get_logger(__name__, LogContext.UPGRADER)


@dataclass
class UpgradeResult:
    """What one upgrade run did."""

    plan_name: str
    state_key: str
    origin_state: str
    final_state: str
    first_run: bool
    applied: list[Transition] = field(default_factory=list)
    state_written: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.applied)


class Upgrader:
    """Runs one migration plan against persisted state.

    One run reads the plan's state record, walks the plan from there and
    stores the state it reached, all inside a single scope. If anything fails
    the scope rolls back and the record keeps its previous value.
    """

    def __init__(
        self, plan: MigrationPlan, state_key_prefix: str = DEFAULT_STATE_KEY_PREFIX
    ) -> None:
        if plan is None:
            raise PlanConfigurationError("Upgrader needs a plan")
        self.plan = plan
        self.state_key_prefix = state_key_prefix

    @property
    def name(self) -> str:
        return self.plan.name

    @property
    def state_value_key(self) -> str:
        """Key of this plan's state record."""
        return f"{self.state_key_prefix}{self.plan.name}"

    def execute(
        self,
        executor: MigrationPlanExecutor,
        scope_provider: ScopeProvider,
        state_store: KeyValueStateStore,
    ) -> UpgradeResult:
        """Run the plan from its persisted state to its final state.

        Args:
            executor: Walks the plan and applies migrations.
            scope_provider: Provides the transactional scope for the run.
            state_store: Holds the persisted state record.

        Returns:
            Summary of the run.

        Raises:
            PlanConfigurationError: If the persisted state is unknown to the plan.
            MigrationExecutionError: If a migration fails.
            IndeterminateStateError: If execution produced no usable state.
            StateStoreError: If reading or writing the state record fails.
        """
        if executor is None or scope_provider is None or state_store is None:
            raise ValueError("executor, scope_provider and state_store are required")

        key = self.state_value_key
        logger.set_plan_name(self.plan.name)
        try:
            with scope_provider.open_scope() as scope:
                current_state = state_store.get(key)
                first_run = current_state is None
                if first_run:
                    current_state = self.plan.initial_state
                    logger.info(
                        f"No state recorded under '{key}', starting from "
                        f"'{current_state}'",
                        state=current_state,
                    )
                else:
                    logger.info(f"Resuming from '{current_state}'", state=current_state)

                execution = executor.run(self.plan, current_state, scope)
                final_state = execution.final_state
                if final_state is None or not str(final_state).strip():
                    raise IndeterminateStateError(
                        "Plan execution returned an invalid null or empty state",
                        context={"plan": self.plan.name, "origin_state": current_state},
                    )

                result = UpgradeResult(
                    plan_name=self.plan.name,
                    state_key=key,
                    origin_state=current_state,
                    final_state=final_state,
                    first_run=first_run,
                    applied=list(execution.applied),
                )

                if first_run:
                    state_store.set_initial(key, final_state)
                    result.state_written = True
                elif current_state != final_state:
                    state_store.set_if_matches(key, current_state, final_state)
                    result.state_written = True
                else:
                    logger.info(f"Already at '{final_state}', nothing to do")

                scope.complete()
        except Exception as e:
            logger.error(f"Upgrade of plan '{self.plan.name}' aborted", exception=e)
            raise
        finally:
            logger.set_plan_name(None)

        logger.info(
            f"Plan '{self.plan.name}' is at '{result.final_state}'",
            origin_state=result.origin_state,
            final_state=result.final_state,
            applied_count=len(result.applied),
        )
        return result


def run_upgrade(
    plan: MigrationPlan,
    database_manager: DatabaseManager,
    state_key_prefix: str = DEFAULT_STATE_KEY_PREFIX,
) -> UpgradeResult:
    """Upgrade ``plan`` against the database behind ``database_manager``.

    Wires the default executor, scope provider and key/value state store
    together; hosting processes call this once at startup.
    """
    database_manager.create_tables()
    scope_provider = ScopeProvider(database_manager)
    upgrader = Upgrader(plan, state_key_prefix=state_key_prefix)
    return upgrader.execute(
        MigrationPlanExecutor(), scope_provider, KeyValueStateStore(scope_provider)
    )
