"""Error taxonomy for the relationship engine.

Capacity and validation failures are expected and normally travel inside
result models; only persistence failures propagate as raised errors.
"""

from circles.schemas.friend import OperationResult


class CirclesError(Exception):
    """Base class for relationship engine errors."""

    reason: str = "unknown"
    message: str = "Unknown error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_result(self, result_cls: type[OperationResult] = OperationResult) -> OperationResult:
        return result_cls(success=False, error=self.message, reason=self.reason)


class TierFullError(CirclesError):
    reason = "tier_full"
    message = "Tier is full"


class TargetTierFullError(CirclesError):
    reason = "target_tier_full"
    message = "Target tier is full"


class NoReservedCapacityError(CirclesError):
    reason = "no_capacity"
    message = "No capacity for reserved spots"


class FriendNotFoundError(CirclesError):
    reason = "not_found"
    message = "Friend not found"


class ReservedGroupNotFoundError(CirclesError):
    reason = "not_found"
    message = "Reserved group not found"


class InvalidTransitionError(CirclesError):
    reason = "invalid_transition"
    message = "Tier transition not allowed"


class ImportVersionMismatch(CirclesError):
    reason = "version_mismatch"
    message = "Unsupported export version"


class ImportValidationError(CirclesError):
    reason = "invalid_import"
    message = "Import data failed validation"

    def __init__(self, message: str | None = None, errors: list[str] | None = None) -> None:
        super().__init__(message or (errors[0] if errors else None))
        self.errors = errors or [self.message]


class PersistenceError(CirclesError):
    reason = "persistence"
    message = "Durable storage unavailable"


class PostNotFoundError(CirclesError):
    reason = "not_found"
    message = "Post not found"
