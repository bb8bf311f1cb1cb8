"""Registry of constructed migrations keyed by stable identifiers."""

from collections.abc import Callable, Iterator
from typing import Any

from ..utils.logging import LogContext, PlanConfigurationError, get_logger
from .migration import CallableMigration, Migration, MigrationContext

logger = get_logger(__name__, LogContext.PLAN)


class MigrationRegistry:
    """Maps migration keys to migration instances.

    Plans refer to migrations by key; the builder resolves each key here when
    the plan is built, so a missing migration is a build-time error.
    """

    def __init__(self) -> None:
        self._migrations: dict[str, Migration] = {}

    def register(self, key: str, migration: Migration) -> Migration:
        """Register a migration instance under ``key``.

        Raises:
            PlanConfigurationError: If the key is blank or already taken, or
                ``migration`` is not a Migration.
        """
        if not key or not key.strip():
            raise PlanConfigurationError("Migration key must not be empty")
        if not isinstance(migration, Migration):
            raise PlanConfigurationError(
                f"Cannot register {migration!r} as '{key}': not a Migration",
                context={"key": key},
            )
        if key in self._migrations:
            raise PlanConfigurationError(
                f"Migration key '{key}' is already registered",
                context={"key": key},
            )

        self._migrations[key] = migration
        logger.debug(f"Registered migration '{key}'", key=key, migration=str(migration))
        return migration

    def migration(
        self, key: str, description: str | None = None
    ) -> Callable[[Callable[[MigrationContext], Any]], Callable[[MigrationContext], Any]]:
        """Decorator registering a function as a CallableMigration."""

        def decorator(func: Callable[[MigrationContext], Any]):
            self.register(key, CallableMigration(func, description))
            return func

        return decorator

    def get(self, key: str) -> Migration:
        """Return the migration registered under ``key``.

        Raises:
            PlanConfigurationError: If nothing is registered under ``key``.
        """
        try:
            return self._migrations[key]
        except KeyError:
            raise PlanConfigurationError(
                f"No migration registered under key '{key}'",
                context={"key": key},
            ) from None

    def keys(self) -> list[str]:
        return list(self._migrations)

    def __contains__(self, key: object) -> bool:
        return key in self._migrations

    def __iter__(self) -> Iterator[str]:
        return iter(self._migrations)

    def __len__(self) -> int:
        return len(self._migrations)
