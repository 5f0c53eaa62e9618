"""
Pydantic models for dashboard API requests and responses.
"""
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class ActionRequest(BaseModel):
    action: str
    data: dict = Field(default_factory=dict)


class Envelope(BaseModel):
    status: Literal["success", "error"]
    data: Any = None
    message: Optional[str] = None
    errorType: Optional[str] = None    # WorkflowError subclass name on failure


class SubmitItem(BaseModel):
    productId: str
    qty: int = Field(ge=0)
