"""Tests for migration plans and the plan builder."""

import pytest

from state_upgrader.migrations import (
    MigrationPlan,
    MigrationPlanBuilder,
    MigrationRegistry,
    NoopMigration,
    Transition,
)
from state_upgrader.utils.logging import (
    AmbiguousTransitionError,
    PlanConfigurationError,
    UnknownStateError,
)


@pytest.fixture
def linear_plan(make_migration):
    """S0 -> S1 -> S2."""
    return (
        MigrationPlanBuilder("core")
        .from_state("S0")
        .to("S1", make_migration("m1"))
        .to("S2", make_migration("m2"))
        .build()
    )


class TestMigrationPlanBuilder:
    """Test building plans."""

    def test_build_linear_plan(self, linear_plan):
        """Test a simple chain builds with the expected shape."""
        assert linear_plan.name == "core"
        assert linear_plan.initial_state == "S0"
        assert linear_plan.final_state == "S2"
        assert linear_plan.known_states == {"S0", "S1", "S2"}
        assert set(linear_plan.transitions) == {"S0", "S1"}

    def test_plan_without_transitions(self):
        """Test a plan with only an initial state is already final."""
        plan = MigrationPlanBuilder("empty").initial_state("v0").build()

        assert plan.final_state == "v0"
        assert plan.next_transition("v0") is None
        assert plan.follow_path() == []

    def test_initial_state_overrides_first_from_state(self, make_migration):
        """Test an explicit initial state wins over the cursor."""
        plan = (
            MigrationPlanBuilder("core")
            .initial_state("S0")
            .to("S1", make_migration("m1"))
            .from_state("S1")
            .to("S2", make_migration("m2"))
            .build()
        )

        assert plan.initial_state == "S0"
        assert plan.final_state == "S2"

    def test_add_transition_in_any_order(self, make_migration):
        """Test raw triples can be declared out of order."""
        plan = (
            MigrationPlanBuilder("core")
            .initial_state("a")
            .add_transition("b", "c", make_migration("bc"))
            .add_transition("a", "b", make_migration("ab"))
            .build()
        )

        assert [t.target_state for t in plan.follow_path()] == ["b", "c"]

    def test_to_without_cursor(self, make_migration):
        """Test to() needs a source state."""
        with pytest.raises(PlanConfigurationError, match="from_state"):
            MigrationPlanBuilder("core").to("S1", make_migration("m1"))

    def test_build_without_initial_state(self):
        """Test a plan needs an initial state."""
        with pytest.raises(PlanConfigurationError, match="no initial state"):
            MigrationPlanBuilder("core").build()

    def test_migration_keys_resolved_from_registry(self):
        """Test string migrations are looked up at build time."""
        registry = MigrationRegistry()
        noop = registry.register("noop", NoopMigration())

        plan = MigrationPlanBuilder("core", registry).from_state("0").to("1", "noop").build()

        assert plan.next_transition("0").migration is noop

    def test_unknown_migration_key(self):
        """Test a missing registry entry fails the build."""
        builder = MigrationPlanBuilder("core", MigrationRegistry())
        builder.from_state("0").to("1", "missing")

        with pytest.raises(PlanConfigurationError, match="missing"):
            builder.build()

    def test_migration_key_without_registry(self):
        """Test string migrations need a registry."""
        builder = MigrationPlanBuilder("core").from_state("0").to("1", "noop")

        with pytest.raises(PlanConfigurationError, match="no registry"):
            builder.build()

    def test_migration_class_rejected(self):
        """Test migrations must be instances, not classes."""
        builder = MigrationPlanBuilder("core").from_state("0").to("1", NoopMigration)

        with pytest.raises(PlanConfigurationError, match="expected a Migration"):
            builder.build()


class TestPlanValidation:
    """Test plans are rejected when their shape is invalid."""

    def test_unreachable_source_state(self, make_migration):
        """Test an edge out of an unreachable state fails the build."""
        builder = (
            MigrationPlanBuilder("core")
            .from_state("S0")
            .to("S1", make_migration("m1"))
            .add_transition("X", "S1", make_migration("x"))
        )

        with pytest.raises(PlanConfigurationError, match="unreachable.*X"):
            builder.build()

    def test_unreachable_target_state(self, make_migration):
        """Test a chain disconnected from the initial state fails the build."""
        builder = (
            MigrationPlanBuilder("core")
            .from_state("S0")
            .to("S1", make_migration("m1"))
            .from_state("X")
            .to("Y", make_migration("xy"))
        )

        with pytest.raises(PlanConfigurationError) as exc_info:
            builder.build()

        assert exc_info.value.context["unreachable"] == ["X", "Y"]

    def test_ambiguous_transitions(self, make_migration):
        """Test two edges out of one state fail the build."""
        builder = (
            MigrationPlanBuilder("core")
            .from_state("S0")
            .to("S1", make_migration("m1"))
            .add_transition("S0", "S2", make_migration("m2"))
        )

        with pytest.raises(AmbiguousTransitionError, match="S1, S2"):
            builder.build()

    def test_duplicate_transition(self, make_migration):
        """Test the same edge cannot be declared twice."""
        builder = (
            MigrationPlanBuilder("core")
            .from_state("S0")
            .to("S1", make_migration("m1"))
            .add_transition("S0", "S1", make_migration("again"))
        )

        with pytest.raises(PlanConfigurationError, match="more than once"):
            builder.build()

    def test_cycle(self, make_migration):
        """Test a path that loops forever fails the build."""
        builder = (
            MigrationPlanBuilder("core")
            .from_state("S0")
            .to("S1", make_migration("m1"))
            .to("S2", make_migration("m2"))
            .to("S1", make_migration("back"))
        )

        with pytest.raises(PlanConfigurationError, match="loops back to 'S1'"):
            builder.build()

    def test_self_transition(self, make_migration):
        """Test a state cannot transition to itself."""
        builder = MigrationPlanBuilder("core").from_state("S0").to("S0", make_migration("m"))

        with pytest.raises(PlanConfigurationError, match="to itself"):
            builder.build()

    @pytest.mark.parametrize("state", ["", "   ", None])
    def test_blank_states_rejected(self, state, make_migration):
        """Test states must be non-empty strings."""
        with pytest.raises(PlanConfigurationError):
            MigrationPlan("core", "S0", [Transition("S0", state, make_migration("m"))])

    def test_blank_name_rejected(self):
        """Test the plan name is required."""
        with pytest.raises(PlanConfigurationError, match="name"):
            MigrationPlan("  ", "S0")

    def test_non_migration_rejected(self):
        """Test transitions must carry a Migration."""
        with pytest.raises(PlanConfigurationError, match="not a Migration"):
            MigrationPlan("core", "S0", [Transition("S0", "S1", lambda ctx: None)])


class TestPlanTraversal:
    """Test resolving steps through a plan."""

    def test_next_transition(self, linear_plan):
        """Test each state resolves to its single outgoing edge."""
        first = linear_plan.next_transition("S0")

        assert first.source_state == "S0"
        assert first.target_state == "S1"
        assert linear_plan.next_transition("S1").target_state == "S2"
        assert linear_plan.next_transition("S2") is None

    def test_next_transition_unknown_state(self, linear_plan):
        """Test an unrecognized state is a configuration mismatch."""
        with pytest.raises(UnknownStateError) as exc_info:
            linear_plan.next_transition("removed")

        assert exc_info.value.state == "removed"
        assert exc_info.value.plan_name == "core"
        assert isinstance(exc_info.value, PlanConfigurationError)

    def test_follow_path_defaults(self, linear_plan):
        """Test the full path runs from initial to final state."""
        path = linear_plan.follow_path()

        assert [(t.source_state, t.target_state) for t in path] == [
            ("S0", "S1"),
            ("S1", "S2"),
        ]

    def test_follow_path_between_states(self, linear_plan):
        """Test a partial path."""
        assert [t.target_state for t in linear_plan.follow_path("S1")] == ["S2"]
        assert [t.target_state for t in linear_plan.follow_path("S0", "S1")] == ["S1"]
        assert linear_plan.follow_path("S2") == []

    def test_follow_path_backwards(self, linear_plan):
        """Test asking for a state behind the start fails."""
        with pytest.raises(PlanConfigurationError, match="cannot be reached"):
            linear_plan.follow_path("S2", "S0")

    def test_follow_path_unknown_target(self, linear_plan):
        """Test an unknown target state."""
        with pytest.raises(UnknownStateError):
            linear_plan.follow_path("S0", "S9")

    def test_transitions_are_read_only(self, linear_plan):
        """Test a built plan cannot be modified through its mapping."""
        with pytest.raises(TypeError):
            linear_plan.transitions["S2"] = ()

    def test_transition_str(self, linear_plan):
        """Test transitions render source, target and migration."""
        assert str(linear_plan.next_transition("S0")) == "S0 -> S1 (m1: record m1)"

    def test_repr(self, linear_plan):
        """Test plan repr."""
        assert repr(linear_plan) == (
            "<MigrationPlan(name='core', initial_state='S0', final_state='S2')>"
        )
