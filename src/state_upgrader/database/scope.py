"""Transactional scopes for upgrade runs."""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..utils.logging import LogContext, StateStoreError, get_logger
from .connection import DatabaseManager

logger = get_logger(__name__, LogContext.DATABASE)


class Scope:
    """A unit of work over one database session.

    Call ``complete()`` as the last statement of the ``with`` block to commit.
    Leaving the block any other way rolls everything back.
    """

    def __init__(self, session: Session, parent: "Scope | None" = None) -> None:
        self.session = session
        self.parent = parent
        self.completed = False
        self._vetoed = False

    @property
    def is_root(self) -> bool:
        return self.parent is None

    def complete(self) -> None:
        """Mark the scope's work as ready to commit."""
        self.completed = True

    def _veto(self) -> None:
        root = self
        while root.parent is not None:
            root = root.parent
        root._vetoed = True

    @property
    def should_commit(self) -> bool:
        return self.completed and not self._vetoed


class ScopeProvider:
    """Opens transactional scopes on a DatabaseManager.

    Only the outermost scope owns the transaction. Nested scopes share its
    session; a nested scope that exits without ``complete()`` forces the
    outermost one to roll back.
    """

    def __init__(self, database_manager: DatabaseManager) -> None:
        self.database_manager = database_manager
        self._ambient: Scope | None = None

    @property
    def ambient_scope(self) -> Scope | None:
        """The scope currently open, if any."""
        return self._ambient

    @contextmanager
    def open_scope(self) -> Generator[Scope, None, None]:
        """Open a scope; commit on completed exit, roll back otherwise."""
        if self._ambient is not None:
            yield from self._nested_scope(self._ambient)
            return

        session = self.database_manager.create_session()
        scope = Scope(session)
        self._ambient = scope
        try:
            yield scope
        except BaseException:
            session.rollback()
            logger.debug("Scope rolled back after error")
            raise
        else:
            if scope.should_commit:
                try:
                    session.commit()
                except SQLAlchemyError as e:
                    session.rollback()
                    raise StateStoreError(f"Failed to commit scope: {e}") from e
                logger.debug("Scope committed")
            else:
                session.rollback()
                logger.debug("Scope rolled back, not completed")
        finally:
            self._ambient = None
            session.close()

    def _nested_scope(self, parent: Scope) -> Generator[Scope, None, None]:
        scope = Scope(parent.session, parent=parent)
        try:
            yield scope
        except BaseException:
            scope._veto()
            raise
        if not scope.completed:
            scope._veto()
