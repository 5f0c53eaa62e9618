from .errors import (
    WorkflowError, ValidationError, NotFoundError, AuthorizationError,
    InvalidStateError, ExternalServiceError, DataIntegrityError,
)
from .po_generator import PurchaseOrderGenerator, GenerationResult
from .database import Database
from .service import BudgetWorkflowService

__all__ = [
    "WorkflowError", "ValidationError", "NotFoundError", "AuthorizationError",
    "InvalidStateError", "ExternalServiceError", "DataIntegrityError",
    "PurchaseOrderGenerator", "GenerationResult",
    "Database", "BudgetWorkflowService",
]
