# backend/fabricstock/errors.py

"""
SERVICE ERRORS

Centralized domain errors shared by services and routes.

Mapping used by the HTTP layer:
- ValidationError      -> 400
- NotFoundError        -> 404
- ConflictError        -> 409
- PartialBatchFailure  -> 422
- DependencyFailure    -> 503 (retryable)

Duplicate ledger operations are NOT errors: the ledger reports them through
LedgerResult.duplicate and callers treat them as successful no-ops.
"""


class ValidationError(ValueError):
    """400-level input problem. Raised before any ledger mutation."""


class TransitionError(ValidationError):
    """Requested order status change is not allowed from the current status."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate order number)."""


class NotFoundError(LookupError):
    """Referenced entity does not exist for this user."""


class DependencyFailure(RuntimeError):
    """Persistent store or an external collaborator is unavailable."""

    retryable = True


class PartialBatchFailure(RuntimeError):
    """
    One or more line items of a multi-product operation failed.

    The whole batch has been rolled back; `failures` lists every failing line so
    the caller can fix and retry.
    """

    def __init__(self, message: str, failures: list[dict] | None = None):
        super().__init__(message)
        self.failures = failures or []
