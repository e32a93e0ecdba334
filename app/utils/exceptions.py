"""
Exception handling utilities.

Defines categorized exception types for proper error handling:
validation errors are surfaced verbatim and never retried, conflict and
transient errors are retryable, internal errors indicate a bug.
"""

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError


class RewardsError(Exception):
    """Base class for all rewards engine errors."""

    code = "rewards_error"

    def __init__(self, message: str | None = None, **context: object) -> None:
        self.message = message or self.__class__.__doc__ or self.code
        self.context = context
        super().__init__(self.message)


# Validation errors (caller mistake)

class ValidationError(RewardsError):
    """Invalid request."""

    code = "validation_error"


class SelfReferralError(ValidationError):
    """A user cannot refer themselves."""

    code = "self_referral"


class AlreadyChainedError(ValidationError):
    """User has already been referred."""

    code = "already_chained"


class CircularReferralError(ValidationError):
    """Referral would close a cycle in the referral graph."""

    code = "circular_referral"


class InvalidAmountError(ValidationError):
    """Amount must be positive."""

    code = "invalid_amount"


class ReactivationWindowExpiredError(ValidationError):
    """Referred user has been inactive for too long to reactivate."""

    code = "reactivation_window_expired"


class ProfileNotFoundError(ValidationError):
    """Volunteer profile not found."""

    code = "profile_not_found"


class ReferralNotFoundError(ValidationError):
    """Referral edge not found."""

    code = "referral_not_found"


class InvalidTaskStateError(ValidationError):
    """Task assignment is not in a state that allows this transition."""

    code = "invalid_task_state"


class TaskTemplateNotFoundError(ValidationError):
    """Task template not found."""

    code = "task_template_not_found"


class LevelInsufficientError(ValidationError):
    """Volunteer level is below the task's required level."""

    code = "level_insufficient"


class MaxTasksReachedError(ValidationError):
    """Volunteer already holds the maximum number of recent open tasks."""

    code = "max_tasks_reached"


class InvalidPeriodError(ValidationError):
    """Unknown budget period type."""

    code = "invalid_period"


class InvalidSignatureError(ValidationError):
    """Webhook signature verification failed."""

    code = "invalid_signature"


# Conflict errors (retry from a fresh read)

class ConflictError(RewardsError):
    """Concurrent modification detected."""

    code = "conflict"


class ProfileConflictError(ConflictError):
    """Volunteer profile was modified concurrently."""

    code = "profile_conflict"


# Infrastructure

class TransientError(RewardsError):
    """Storage or queue temporarily unavailable."""

    code = "transient"


# Bugs / invariant violations

class InternalError(RewardsError):
    """Internal invariant violated."""

    code = "internal_error"


class ReferralInvariantError(InternalError):
    """Referral graph invariant violated."""

    code = "referral_invariant"


# Exception categories based on handling strategy

RETRYABLE = (
    ConflictError,
    TransientError,
    OperationalError,  # Database unavailable / deadlock
    StaleDataError,    # Optimistic version mismatch not yet translated
)


def is_retryable(exc: Exception) -> bool:
    """
    Check if the whole operation may be retried from a fresh read.

    Args:
        exc: Exception to check

    Returns:
        True if exception is retryable
    """
    return isinstance(exc, RETRYABLE)


def is_validation_error(exc: Exception) -> bool:
    """
    Check if exception is a caller mistake.

    Args:
        exc: Exception to check

    Returns:
        True if exception must be surfaced verbatim and never retried
    """
    return isinstance(exc, ValidationError)
