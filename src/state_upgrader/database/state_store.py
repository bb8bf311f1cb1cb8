"""Key/value state store backed by the key_values table."""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from ..utils.logging import (
    LogContext,
    StateConflictError,
    StateStoreError,
    get_logger,
)
from .models import KeyValue
from .scope import ScopeProvider

logger = get_logger(__name__, LogContext.STATE_STORE)


class KeyValueStateStore:
    """Reads and writes persisted upgrade state.

    Every operation joins the provider's ambient scope when one is open, so
    its effects commit or roll back with the upgrade run. Called outside a
    scope, each operation runs in its own short transaction.
    """

    def __init__(self, scope_provider: ScopeProvider) -> None:
        self.scope_provider = scope_provider

    def get(self, key: str) -> str | None:
        """Return the value stored under ``key``, or None if absent.

        Raises:
            StateStoreError: If the read fails.
        """
        try:
            with self.scope_provider.open_scope() as scope:
                value = scope.session.scalar(
                    select(KeyValue.value).where(KeyValue.key == key)
                )
                scope.complete()
        except SQLAlchemyError as e:
            raise StateStoreError(
                f"Failed to read state '{key}': {e}", context={"key": key}
            ) from e

        return value

    def set_initial(self, key: str, value: str) -> None:
        """Write ``value`` under ``key`` without comparing to a previous value.

        Raises:
            StateStoreError: If the value is empty or the write fails.
        """
        self._check_value(key, value)

        try:
            with self.scope_provider.open_scope() as scope:
                record = scope.session.get(KeyValue, key)
                if record is None:
                    scope.session.add(KeyValue(key=key, value=value))
                else:
                    record.value = value
                    record.updated_at = datetime.now()
                scope.session.flush()
                scope.complete()
        except SQLAlchemyError as e:
            raise StateStoreError(
                f"Failed to write state '{key}': {e}", context={"key": key}
            ) from e

        logger.info(f"Created state '{key}' = '{value}'", key=key, value=value)

    def set_if_matches(self, key: str, previous_value: str, new_value: str) -> None:
        """Replace ``previous_value`` with ``new_value`` under ``key``.

        Does nothing when the two values are equal.

        Raises:
            StateConflictError: If the stored value is not ``previous_value``.
            StateStoreError: If the value is empty or the write fails.
        """
        if previous_value == new_value:
            return
        self._check_value(key, new_value)

        try:
            with self.scope_provider.open_scope() as scope:
                result = scope.session.execute(
                    update(KeyValue)
                    .where(KeyValue.key == key, KeyValue.value == previous_value)
                    .values(value=new_value, updated_at=datetime.now())
                    .execution_options(synchronize_session=False)
                )
                updated = result.rowcount
                scope.complete()
        except SQLAlchemyError as e:
            raise StateStoreError(
                f"Failed to update state '{key}': {e}", context={"key": key}
            ) from e

        if updated == 0:
            raise StateConflictError(
                f"State '{key}' is no longer '{previous_value}'",
                context={"key": key, "expected": previous_value},
            )

        logger.info(
            f"Updated state '{key}' from '{previous_value}' to '{new_value}'",
            key=key,
            previous_value=previous_value,
            value=new_value,
        )

    @staticmethod
    def _check_value(key: str, value: str) -> None:
        if not isinstance(value, str) or not value.strip():
            raise StateStoreError(
                f"Refusing to store an empty state under '{key}'",
                context={"key": key},
            )
