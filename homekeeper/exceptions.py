"""Exceptions raised by homekeeper.

The HTTP layer maps each class to a response: validation and missing
references become 400s, missing entities 404s, and transaction failures 500s.
Notification dispatch errors are never surfaced to a caller.
"""
from typing import Optional


class HomekeeperError(Exception):
    """Base exception for all homekeeper errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(HomekeeperError):
    """Input has the wrong shape or breaks a rule (e.g. a parent cycle)."""


class NotFoundError(HomekeeperError):
    """The entity addressed by the request does not exist."""


class MissingReferenceError(HomekeeperError):
    """Raised when referenced persons, roles, homes or parents do not exist.

    Attributes:
        missing: mapping of reference kind to the list of ids not found,
            e.g. ``{"person_id": [7], "role_id": [], "home_id": [3]}``
    """

    def __init__(self, missing: dict[str, list[int]]):
        missing = {kind: ids for kind, ids in missing.items() if ids}
        summary = ", ".join(f"{kind}={ids}" for kind, ids in missing.items())
        super().__init__(f"Missing references: {summary}", details=missing)
        self.missing = missing


class TransactionError(HomekeeperError):
    """A unit of work failed and every write in it was rolled back."""


class NotificationDispatchError(HomekeeperError):
    """A push message could not be delivered to its destination."""

    def __init__(self, message: str, destination: str):
        super().__init__(message, details={"destination": destination})
        self.destination = destination
