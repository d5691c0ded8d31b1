"""Error taxonomy for tree reads and writes.

Every failure a caller can observe is one of these classes.  Each carries the
HTTP status the API layer answers with, so routers never map codes by hand.
"""

from __future__ import annotations

from typing import Any


class TreeError(Exception):
    """Base class for all family-tree failures."""

    status_code: int = 500
    default_message: str = "An unknown error occurred"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationMissing(TreeError):
    status_code = 401
    default_message = "Unauthorized"


class AuthorizationDenied(TreeError):
    status_code = 403
    default_message = "Access denied"


class TreeNotFound(TreeError):
    status_code = 404
    default_message = "Family tree not found"


class NodeNotFound(TreeError):
    status_code = 404
    default_message = "Node not found"


class ValidationFailed(TreeError):
    """Malformed input detected before anything is persisted."""

    status_code = 400
    default_message = "Invalid tree data"

    def __init__(self, message: str | None = None, errors: list[Any] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class RelationshipInvalid(TreeError):
    """A relation was rejected by the relationship validator.

    Node changes committed before the relation phase are kept.
    """

    status_code = 400
    default_message = "Invalid relationship"


class NodeHasRelations(TreeError):
    status_code = 400
    default_message = (
        "Cannot delete a node with existing relationships. Remove all relationships first."
    )


class TreeAlreadyExists(TreeError):
    status_code = 409
    default_message = "A family tree already exists in this family"


class StaleTreeVersion(TreeError):
    status_code = 409
    default_message = "The family tree was modified by someone else. Reload and try again."


class StorageFailure(TreeError):
    """Backend or transaction failure.  The message is safe to show callers."""

    status_code = 500
    default_message = "Failed to update family tree"


class TransactionTimeout(StorageFailure):
    default_message = "The update took too long and was aborted"
