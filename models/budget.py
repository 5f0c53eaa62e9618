import json
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from .base import WireModel
from .master_data import Product


class BudgetStatus(str, Enum):
    """Approval status. Values match the labels stored by the backend."""
    DRAFT = "DRAFT"
    PENDING_MANAGER_APPROVAL = "Pending Manager Approval"
    PENDING_BOD_APPROVAL = "Pending BOD Approval"
    APPROVED = "Approved"
    REJECTED = "Rejected"

    @property
    def is_pending(self) -> bool:
        return self in (BudgetStatus.PENDING_MANAGER_APPROVAL, BudgetStatus.PENDING_BOD_APPROVAL)


class ProcurementStatus(str, Enum):
    PENDING = "Pending Procurement"
    IN_PROGRESS = "In Progress"
    PROCURED = "Procured"


class BudgetItem(WireModel):
    """
    One requested product line.

    Product fields are a snapshot taken at submission time so later catalog
    edits do not change an already-submitted request.  ``total`` is always
    ``price * qty``; any incoming total is recomputed.
    """
    product_id: str
    product_name: str = ""
    product_image: str = ""
    unit: str = ""
    price: float = Field(ge=0)
    qty: int = Field(default=0, ge=0)
    total: float = 0.0

    @model_validator(mode="after")
    def _recompute_total(self) -> "BudgetItem":
        self.total = self.price * self.qty
        return self

    @classmethod
    def from_product(cls, product: Product, qty: int = 0) -> "BudgetItem":
        return cls(
            product_id=product.id,
            product_name=product.name,
            product_image=product.image_url,
            unit=product.unit,
            price=product.price,
            qty=qty,
        )

    def with_qty(self, qty: int) -> "BudgetItem":
        """Return a copy with a new quantity (and recomputed total)."""
        return BudgetItem.model_validate({**self.model_dump(), "qty": qty})


class BudgetRequest(WireModel):
    """
    A submitted purchase request and its approval / procurement state.

    procurement_status stays None until the request is APPROVED.
    The assigned company profile and delivery address are filled in by an
    administrator while procurement is PENDING and are required before a
    purchase order can be generated.
    """
    id: str
    user_id: str
    user_name: str = ""
    department: str = ""
    items: List[BudgetItem] = Field(default_factory=list)
    total: float = 0.0
    status: BudgetStatus = BudgetStatus.DRAFT
    procurement_status: Optional[ProcurementStatus] = None
    submitted_at: Optional[datetime] = None

    manager_approver_id: Optional[str] = None
    bod_approver_id: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejected_reason: Optional[str] = None

    po_generated: bool = False
    assigned_company_profile_id: Optional[str] = None
    assigned_delivery_address: Optional[str] = None

    @field_validator("items", mode="before")
    @classmethod
    def _decode_items(cls, value):
        # Some backends store the item list as a JSON string column
        if isinstance(value, (str, bytes)):
            value = json.loads(value) if value.strip() else []
        return value

    @field_validator(
        "procurement_status", "manager_approver_id", "bod_approver_id",
        "rejected_reason", "assigned_company_profile_id",
        "assigned_delivery_address", "approved_at", "rejected_at",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _recompute_total(self) -> "BudgetRequest":
        self.total = sum(item.total for item in self.items)
        return self

    @property
    def effective_procurement_status(self) -> ProcurementStatus:
        """Procurement status with the implicit PENDING default applied."""
        return self.procurement_status or ProcurementStatus.PENDING
