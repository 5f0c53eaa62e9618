import json
from datetime import datetime
from typing import List

from pydantic import ConfigDict, Field, field_validator

from .base import WireModel
from .budget import BudgetItem


class PurchaseOrder(WireModel):
    """
    A vendor-facing order aggregated from one or more approved requests.

    Items are summed per product across every contributing request;
    related_budget_ids lists those requests.  Purchase orders are created
    only by the generator and never modified afterwards.
    """
    model_config = ConfigDict(frozen=True)

    po_id: str
    vendor_id: str
    vendor_name: str = ""
    date_issued: datetime
    items: List[BudgetItem] = Field(default_factory=list)
    total_amount: float = 0.0
    related_budget_ids: List[str] = Field(default_factory=list)
    company_profile_id: str
    delivery_address: str

    @field_validator("items", "related_budget_ids", mode="before")
    @classmethod
    def _decode_json_list(cls, value):
        if isinstance(value, (str, bytes)):
            value = json.loads(value) if value.strip() else []
        return value
