"""Migration plans: immutable graphs of states joined by migrations."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from ..utils.logging import (
    AmbiguousTransitionError,
    LogContext,
    PlanConfigurationError,
    UnknownStateError,
    get_logger,
)
from .migration import Migration
from .registry import MigrationRegistry

logger = get_logger(__name__, LogContext.PLAN)


def _check_state(state: object, what: str) -> str:
    if not isinstance(state, str) or not state.strip():
        raise PlanConfigurationError(
            f"{what} must be a non-empty string, got {state!r}"
        )
    return state


@dataclass(frozen=True)
class Transition:
    """One edge of a plan: applying ``migration`` moves source to target."""

    source_state: str
    target_state: str
    migration: Migration

    def __str__(self) -> str:
        return f"{self.source_state} -> {self.target_state} ({self.migration})"


class MigrationPlan:
    """An immutable, validated migration plan.

    States are opaque strings. Every declared state is reachable from
    ``initial_state``, each state has at most one outgoing transition, and the
    path from the initial state ends at a single terminal state,
    ``final_state``. Construction fails with PlanConfigurationError otherwise.
    """

    def __init__(
        self,
        name: str,
        initial_state: str,
        transitions: Iterable[Transition] = (),
    ) -> None:
        if not isinstance(name, str) or not name.strip():
            raise PlanConfigurationError("Plan name must be a non-empty string")

        self._name = name
        self._initial_state = _check_state(initial_state, "Initial state")

        by_source: dict[str, list[Transition]] = {}
        for transition in transitions:
            self._check_transition(transition)
            outgoing = by_source.setdefault(transition.source_state, [])
            if any(t.target_state == transition.target_state for t in outgoing):
                raise PlanConfigurationError(
                    f"Plan '{name}' declares {transition.source_state} -> "
                    f"{transition.target_state} more than once",
                    context={"plan": name},
                )
            outgoing.append(transition)

        self._transitions: Mapping[str, tuple[Transition, ...]] = MappingProxyType(
            {source: tuple(outgoing) for source, outgoing in by_source.items()}
        )
        self._known_states = frozenset(
            {self._initial_state}
            | {t.target_state for ts in by_source.values() for t in ts}
        )
        self._final_state = self._validate()

    def _check_transition(self, transition: Transition) -> None:
        if not isinstance(transition, Transition):
            raise PlanConfigurationError(f"Not a transition: {transition!r}")

        _check_state(transition.source_state, "Source state")
        _check_state(transition.target_state, "Target state")

        if transition.source_state == transition.target_state:
            raise PlanConfigurationError(
                f"Plan '{self._name}' has a transition from "
                f"'{transition.source_state}' to itself",
                context={"plan": self._name},
            )
        if not isinstance(transition.migration, Migration):
            raise PlanConfigurationError(
                f"Transition {transition.source_state} -> {transition.target_state} "
                f"is bound to {transition.migration!r}, which is not a Migration",
                context={"plan": self._name},
            )

    def _validate(self) -> str:
        """Check the plan's shape and return its final state."""
        for source, outgoing in self._transitions.items():
            if len(outgoing) > 1:
                targets = ", ".join(t.target_state for t in outgoing)
                raise AmbiguousTransitionError(
                    f"Plan '{self._name}' has several transitions from "
                    f"'{source}' ({targets})",
                    context={"plan": self._name, "state": source},
                )

        # Walk the single path from the initial state.
        visited = [self._initial_state]
        state = self._initial_state
        while state in self._transitions:
            state = self._transitions[state][0].target_state
            if state in visited:
                raise PlanConfigurationError(
                    f"Plan '{self._name}' loops back to '{state}' via "
                    f"{' -> '.join(visited)} -> {state}",
                    context={"plan": self._name, "state": state},
                )
            visited.append(state)

        unreachable = sorted(self._known_states.union(self._transitions) - set(visited))
        if unreachable:
            raise PlanConfigurationError(
                f"Plan '{self._name}' declares states unreachable from "
                f"'{self._initial_state}': {', '.join(unreachable)}",
                context={"plan": self._name, "unreachable": unreachable},
            )

        return state

    @property
    def name(self) -> str:
        return self._name

    @property
    def initial_state(self) -> str:
        return self._initial_state

    @property
    def final_state(self) -> str:
        """The terminal state every run ends at."""
        return self._final_state

    @property
    def transitions(self) -> Mapping[str, tuple[Transition, ...]]:
        """Read-only mapping of source state to its outgoing transitions."""
        return self._transitions

    @property
    def known_states(self) -> frozenset[str]:
        return self._known_states

    def is_known_state(self, state: str) -> bool:
        return state in self._known_states

    def next_transition(self, state: str) -> Transition | None:
        """Resolve the step out of ``state``.

        Returns:
            The transition to apply, or None when ``state`` is terminal.

        Raises:
            UnknownStateError: If the plan does not know ``state``.
            AmbiguousTransitionError: If more than one transition leaves it.
        """
        if state not in self._known_states:
            raise UnknownStateError(self._name, state)

        outgoing = self._transitions.get(state, ())
        if not outgoing:
            return None
        if len(outgoing) > 1:
            raise AmbiguousTransitionError(
                f"Plan '{self._name}' cannot choose a transition from '{state}'",
                context={"plan": self._name, "state": state},
            )
        return outgoing[0]

    def follow_path(
        self, from_state: str | None = None, to_state: str | None = None
    ) -> list[Transition]:
        """List the transitions between two states without running them.

        Args:
            from_state: Where to start; defaults to the initial state.
            to_state: Where to stop; defaults to the final state.

        Raises:
            UnknownStateError: If either state is unknown to the plan.
            PlanConfigurationError: If ``to_state`` is not ahead of ``from_state``.
        """
        state = self._initial_state if from_state is None else from_state
        if to_state is not None and to_state not in self._known_states:
            raise UnknownStateError(self._name, to_state)

        path: list[Transition] = []
        while state != to_state:
            transition = self.next_transition(state)
            if transition is None:
                if to_state is None:
                    break
                raise PlanConfigurationError(
                    f"State '{to_state}' cannot be reached from "
                    f"'{from_state}' in plan '{self._name}'",
                    context={"plan": self._name},
                )
            path.append(transition)
            state = transition.target_state

        return path

    def __repr__(self) -> str:
        return (
            f"<MigrationPlan(name='{self._name}', initial_state='{self._initial_state}', "
            f"final_state='{self._final_state}')>"
        )


class MigrationPlanBuilder:
    """Declare a plan one transition at a time.

    Example::

        plan = (
            MigrationPlanBuilder("core", registry)
            .from_state("0")
            .to("1", "create-tables")
            .to("2", AddIndexesMigration())
            .build()
        )

    The first ``from_state`` call fixes the initial state unless
    ``initial_state`` was called. Migrations given as strings are looked up in
    the registry when ``build`` runs.
    """

    def __init__(self, name: str, registry: MigrationRegistry | None = None) -> None:
        self.name = name
        self.registry = registry
        self._initial_state: str | None = None
        self._cursor: str | None = None
        self._declared: list[tuple[str, str, Migration | str]] = []

    def initial_state(self, state: str) -> "MigrationPlanBuilder":
        """Register the state assumed when nothing is persisted yet."""
        self._initial_state = _check_state(state, "Initial state")
        if self._cursor is None:
            self._cursor = state
        return self

    def from_state(self, state: str) -> "MigrationPlanBuilder":
        """Move the cursor; the next ``to`` starts here."""
        self._cursor = _check_state(state, "Source state")
        if self._initial_state is None:
            self._initial_state = state
        return self

    def to(self, target_state: str, migration: Migration | str) -> "MigrationPlanBuilder":
        """Add a transition from the cursor to ``target_state`` and move there."""
        if self._cursor is None:
            raise PlanConfigurationError(
                f"Plan '{self.name}': call from_state() before to()"
            )
        self.add_transition(self._cursor, target_state, migration)
        self._cursor = target_state
        return self

    def add_transition(
        self, source_state: str, target_state: str, migration: Migration | str
    ) -> "MigrationPlanBuilder":
        """Add a (source, target, migration) triple."""
        self._declared.append((source_state, target_state, migration))
        return self

    def _resolve(self, migration: Migration | str) -> Migration:
        if isinstance(migration, Migration):
            return migration
        if isinstance(migration, str):
            if self.registry is None:
                raise PlanConfigurationError(
                    f"Plan '{self.name}' refers to migration '{migration}' "
                    "but has no registry"
                )
            return self.registry.get(migration)
        raise PlanConfigurationError(
            f"Plan '{self.name}': expected a Migration instance or key, "
            f"got {migration!r}"
        )

    def build(self) -> MigrationPlan:
        """Validate the declarations and return the plan."""
        if self._initial_state is None:
            raise PlanConfigurationError(
                f"Plan '{self.name}' has no initial state"
            )

        transitions = [
            Transition(source, target, self._resolve(migration))
            for source, target, migration in self._declared
        ]
        plan = MigrationPlan(self.name, self._initial_state, transitions)
        logger.debug(
            f"Built plan '{plan.name}'",
            plan=plan.name,
            initial_state=plan.initial_state,
            final_state=plan.final_state,
            transition_count=len(transitions),
        )
        return plan
