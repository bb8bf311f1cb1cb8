"""Walks a migration plan, applying each migration along the way."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..utils.logging import (
    IndeterminateStateError,
    LogContext,
    MigrationExecutionError,
    PlanConfigurationError,
    UnknownStateError,
    get_logger,
    log_performance,
)
from .migration import MigrationContext
from .plan import MigrationPlan, Transition

if TYPE_CHECKING:
    from ..database.scope import Scope

logger = get_logger(__name__, LogContext.EXECUTOR)


@dataclass
class ExecutionResult:
    """Outcome of one walk through a plan."""

    origin_state: str
    final_state: str
    applied: list[Transition] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.final_state != self.origin_state


class MigrationPlanExecutor:
    """Applies the migrations between a state and the end of a plan.

    Steps run strictly in path order, each once. The first failing migration
    stops the walk; nothing after it runs.
    """

    def execute(
        self, plan: MigrationPlan, from_state: str, scope: "Scope | None" = None
    ) -> str:
        """Run ``plan`` from ``from_state`` and return the state reached."""
        return self.run(plan, from_state, scope).final_state

    def run(
        self, plan: MigrationPlan, from_state: str, scope: "Scope | None" = None
    ) -> ExecutionResult:
        """Run ``plan`` from ``from_state``.

        Args:
            plan: A validated plan.
            from_state: The persisted state, or the plan's initial state.
            scope: Transactional scope handed to migrations, if any.

        Returns:
            The final state and the transitions applied to get there.

        Raises:
            UnknownStateError: If the plan does not know ``from_state``.
            MigrationExecutionError: If a migration raises.
            IndeterminateStateError: If the walk ends on an empty state.
        """
        if not from_state or not plan.is_known_state(from_state):
            raise UnknownStateError(plan.name, from_state)

        logger.set_plan_name(plan.name)
        result = ExecutionResult(origin_state=from_state, final_state=from_state)
        session = getattr(scope, "session", None)
        visited = {from_state}
        state = from_state

        try:
            while (transition := plan.next_transition(state)) is not None:
                context = MigrationContext(
                    plan_name=plan.name,
                    source_state=transition.source_state,
                    target_state=transition.target_state,
                    session=session,
                    scope=scope,
                )
                self._apply(transition, context, len(result.applied) + 1)
                result.applied.append(transition)

                state = transition.target_state
                if state in visited:
                    raise PlanConfigurationError(
                        f"Plan '{plan.name}' revisits state '{state}'",
                        context={"plan": plan.name, "state": state},
                    )
                visited.add(state)
        finally:
            logger.set_plan_name(None)

        if not state or not state.strip():
            raise IndeterminateStateError(
                f"Plan '{plan.name}' execution ended on an empty state",
                context={"plan": plan.name, "origin_state": from_state},
            )

        result.final_state = state
        return result

    @log_performance(LogContext.EXECUTOR)
    def _apply(self, transition: Transition, context: MigrationContext, step: int) -> None:
        logger.info(
            f"Step {step}: {transition}",
            step=step,
            source_state=transition.source_state,
            target_state=transition.target_state,
            migration=transition.migration.name,
        )
        try:
            transition.migration.migrate(context)
        except Exception as e:
            logger.error(
                f"Migration {transition.migration.name} failed at step {step}",
                exception=e,
                step=step,
                source_state=transition.source_state,
                target_state=transition.target_state,
            )
            raise MigrationExecutionError(
                f"Migration {transition.migration.name} failed "
                f"({transition.source_state} -> {transition.target_state}): {e}",
                migration=transition.migration,
                source_state=transition.source_state,
                target_state=transition.target_state,
                original_error=e,
            ) from e
