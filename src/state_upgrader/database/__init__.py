"""Database persistence for upgrade state."""

from .connection import DatabaseManager
from .models import Base, KeyValue
from .scope import Scope, ScopeProvider
from .state_store import KeyValueStateStore

__all__ = [
    # Connection management
    "DatabaseManager",
    # Transactional scopes
    "Scope",
    "ScopeProvider",
    # State store
    "KeyValueStateStore",
    # Models
    "Base",
    "KeyValue",
]
