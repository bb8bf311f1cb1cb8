"""Base migration class and built-in migrations."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import text
from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from ..database.scope import Scope


@dataclass(frozen=True)
class MigrationContext:
    """Everything a migration gets to see while it runs.

    ``session`` is the transactional handle of the enclosing upgrade scope; it is
    ``None`` when a plan is executed outside of a scope.
    """

    plan_name: str
    source_state: str
    target_state: str
    session: Session | None = None
    scope: "Scope | None" = None


class Migration(ABC):
    """Base class for migrations bound to a single plan transition.

    Implementations must tolerate being re-applied to a target that already
    reflects the migration: a crash after ``migrate`` but before the state
    record is committed replays the step on the next run.
    """

    description: str = ""

    def __init__(self, description: str | None = None) -> None:
        """Initialize migration.

        Args:
            description: Human-readable description of the migration.
        """
        if description is not None:
            self.description = description

    @property
    def name(self) -> str:
        """Name used in logs and reports."""
        return type(self).__name__

    @abstractmethod
    def migrate(self, context: MigrationContext) -> None:
        """Apply the migration.

        Args:
            context: Plan position and transactional handle for this step.
        """
        pass

    def __str__(self) -> str:
        if self.description:
            return f"{self.name}: {self.description}"
        return self.name

    def __repr__(self) -> str:
        return f"<{self.name}(description='{self.description}')>"


class NoopMigration(Migration):
    """Migration that does nothing.

    Used to move a plan from one state to another without touching the target,
    e.g. to join a renamed or merged chain back onto the main line.
    """

    description = "No operation"

    def migrate(self, context: MigrationContext) -> None:
        return None


class CallableMigration(Migration):
    """Wrap a plain function as a migration."""

    def __init__(
        self,
        func: Callable[[MigrationContext], Any],
        description: str | None = None,
    ) -> None:
        super().__init__(description or (func.__doc__ or "").strip() or None)
        self.func = func

    @property
    def name(self) -> str:
        return getattr(self.func, "__name__", type(self).__name__)

    def migrate(self, context: MigrationContext) -> None:
        self.func(context)


class SqlMigration(Migration):
    """Execute raw SQL statements against the scope's session."""

    def __init__(self, statements: Sequence[str], description: str | None = None):
        if isinstance(statements, str):
            statements = [statements]
        if not statements:
            raise ValueError("SqlMigration needs at least one statement")
        super().__init__(description)
        self.statements = tuple(statements)

    def migrate(self, context: MigrationContext) -> None:
        if context.session is None:
            raise RuntimeError(
                f"{self.name} requires a database session; run it inside a scope"
            )

        for statement in self.statements:
            context.session.execute(text(statement))
