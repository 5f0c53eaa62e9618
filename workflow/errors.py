"""
Exception hierarchy for the budget workflow.

Core operations raise these synchronously before mutating anything, so a
caller that catches a WorkflowError can rely on its inputs being unchanged.
"""


class WorkflowError(Exception):
    """Base class for every error the workflow reports to a caller."""


class ValidationError(WorkflowError):
    """Input is incomplete or malformed (empty submission, missing reason …)."""


class NotFoundError(ValidationError):
    """A referenced record id does not exist."""


class AuthorizationError(WorkflowError):
    """The acting user may not perform this action on this request."""


class InvalidStateError(WorkflowError):
    """The request's current status forbids the attempted action."""


class ExternalServiceError(WorkflowError):
    """The backend, transport or PDF service failed or answered malformed data."""


class DataIntegrityError(WorkflowError):
    """Master data is inconsistent, e.g. a product whose vendor is unknown."""
