class ApplicationError(Exception):
    """Base application-layer error, independent from transport concerns."""


class NotFoundError(ApplicationError):
    """Raised when an expected entity does not exist."""


class ConflictError(ApplicationError):
    """Raised when a uniqueness or state conflict occurs."""


class StateConflictError(ConflictError):
    """Raised when a billing mutation is rejected by the current invoice state."""


class DuplicateInvoiceError(StateConflictError):
    """Raised when a student already has an invoice for the semester."""


class HasPaymentsError(StateConflictError):
    """Raised when deleting an invoice that still carries payments."""


class HasEnrollmentsError(StateConflictError):
    """Raised when deleting a student that still has enrollments."""


class AmountExceedsBalanceError(StateConflictError):
    """Raised when a payment is larger than the invoice balance."""


class ExceedsTotalDebtError(StateConflictError):
    """Raised when a distributed payment is larger than all open balances together."""


class ExceedsPaidError(StateConflictError):
    """Raised when a refund is larger than what was paid on the invoice."""


class DuplicateError(ApplicationError):
    """Raised on a unique-constraint hit during an idempotent upsert; callers re-fetch."""


class ValidationError(ApplicationError):
    """Raised when application-level validation fails."""


class InvalidMethodError(ValidationError):
    """Raised when a payment has no usable method."""


class ConfigurationError(ApplicationError):
    """Raised when required configuration is missing; aborts the run."""


class TransientStorageError(ApplicationError):
    """Raised when the storage layer is temporarily unavailable; surfaced, not retried."""
