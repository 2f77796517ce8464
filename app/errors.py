"""Error types and shared error messages for BudgetFlow."""


class DomainError(ValueError):
    """Base class for domain-level errors.

    The HTTP layer maps each subclass to a status code; see
    ``app.main.domain_error_handler``.
    """

    status_code = 400


class UnauthenticatedError(DomainError):
    """Caller has no valid session."""

    status_code = 401


class NotFoundError(DomainError):
    """Referenced record does not exist or belongs to another user."""

    status_code = 404


class InvalidStateError(DomainError):
    """Operation does not apply to the record in its current state."""

    status_code = 400


class ValidationError(DomainError):
    """Malformed or missing input."""

    status_code = 400


class ConflictError(DomainError):
    """A concurrent write changed the record first."""

    status_code = 409


class IterationLimitExceeded(DomainError):
    """Occurrence stepping hit its safety cap.

    Carries the dates produced before the cap was reached so callers can keep
    the partial result.
    """

    status_code = 500

    def __init__(self, message: str, partial=None):
        super().__init__(message)
        self.partial = list(partial or [])


def transaction_not_found(transaction_id: str) -> str:
    """Return message for missing transaction."""
    return f"Transaction {transaction_id} not found"


def category_not_found(category_id: int) -> str:
    """Return message for missing category."""
    return f"Category {category_id} not found"


def not_recurring(transaction_id: str) -> str:
    """Return message for a transaction without a recurrence rule."""
    return f"Transaction {transaction_id} is not recurring or has no recurrence rule"


def invalid_mode(mode) -> str:
    """Return message for an unknown modification mode."""
    return f"Invalid modification mode '{mode}' (expected current, future or all)"


def generated_occurrence(occurrence_id: str) -> str:
    """Return message when a write targets a generated occurrence."""
    return (
        f"'{occurrence_id}' is a generated occurrence of a recurring transaction; "
        "edit the recurring series instead"
    )


def iteration_limit(anchor_id: str, max_steps: int) -> str:
    """Return message when occurrence stepping exceeds the safety cap."""
    return f"Recurring transaction {anchor_id} exceeded {max_steps} generation steps"
