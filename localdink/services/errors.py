"""
Domain exceptions shared by services and route handlers.

Validation problems are plain ``ValueError``; missing entities are
``LookupError`` subclasses so route handlers can map them to 404.
"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)

# Collections whose permission failures must not take the app down.
NON_CRITICAL_COLLECTIONS = frozenset({"notifications"})


class NotFoundError(LookupError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: Optional[str] = None):
        self.entity = entity
        self.entity_id = entity_id
        if entity_id:
            super().__init__(f"{entity} {entity_id} not found")
        else:
            super().__init__(f"{entity} not found")


class InvalidTransitionError(ValueError):
    """Raised when an invitation is moved out of a terminal state."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition invitation from {current} to {target}")


class PermissionDeniedError(Exception):
    """Raised when the caller may not read or write documents in a collection."""

    def __init__(self, collection: str, message: Optional[str] = None):
        self.collection = collection
        super().__init__(message or f"Permission denied on {collection}")

    @property
    def is_critical(self) -> bool:
        return is_critical_collection(self.collection)


class LoadingFailedError(Exception):
    """Raised when a whole list read fails (as opposed to one missing entity)."""

    def __init__(self, message: str = "Loading failed"):
        super().__init__(message)


def is_critical_collection(collection: str) -> bool:
    """Permission errors on non-critical collections are logged, not surfaced."""
    return collection not in NON_CRITICAL_COLLECTIONS


def report_permission_error(error: PermissionDeniedError) -> bool:
    """
    Log a permission error at the level its collection calls for.

    Returns:
        True if the error is critical and must be surfaced to the caller
    """
    if error.is_critical:
        logger.error(f"Permission error on critical collection {error.collection}: {error}")
        return True
    logger.warning(f"Non-critical permission error on {error.collection}: {error}")
    return False
