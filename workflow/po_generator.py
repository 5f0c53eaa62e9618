"""
Purchase order generation.

Sweeps every request that is APPROVED, In Progress, has a company profile and
delivery address assigned, and has not been ordered yet.  Their items are
grouped by (vendor, company profile, delivery address), so a request whose
products come from several vendors feeds several purchase orders.  Identical
products are merged into one line per order.

The generator works on a snapshot: only the requests it scanned are marked
po_generated, anything that becomes eligible afterwards waits for the next
run.  Runs are assumed not to overlap.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from models.budget import BudgetItem, BudgetRequest
from models.master_data import Product, Vendor
from models.purchase_order import PurchaseOrder
from .errors import DataIntegrityError
from .procurement import is_ready_for_po

logger = logging.getLogger(__name__)


def new_po_id(now: datetime) -> str:
    return f"PO-{now:%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


@dataclass
class _Group:
    vendor: Vendor
    company_profile_id: str
    delivery_address: str
    lines: dict[str, BudgetItem] = field(default_factory=dict)   # product_id → line
    budget_ids: list[str] = field(default_factory=list)

    def add(self, request_id: str, item: BudgetItem) -> None:
        if request_id not in self.budget_ids:
            self.budget_ids.append(request_id)

        existing = self.lines.get(item.product_id)
        if existing is None:
            self.lines[item.product_id] = item.model_copy()
            return
        if existing.price != item.price:
            logger.warning(
                "Product %s requested at different prices (%.2f vs %.2f) — "
                "using the first-seen price for the PO line",
                item.product_id, existing.price, item.price,
            )
        self.lines[item.product_id] = existing.with_qty(existing.qty + item.qty)


@dataclass
class GenerationResult:
    """Outcome of one generator run."""
    purchase_orders: list[PurchaseOrder] = field(default_factory=list)
    updated_requests: list[BudgetRequest] = field(default_factory=list)
    skipped: list[DataIntegrityError] = field(default_factory=list)

    @property
    def nothing_eligible(self) -> bool:
        return not self.purchase_orders


class PurchaseOrderGenerator:
    """
    Builds purchase orders from eligible budget requests.

    Usage:
        generator = PurchaseOrderGenerator(products, vendors)
        result = generator.generate(requests)
    """

    def __init__(self, products: Iterable[Product], vendors: Iterable[Vendor]):
        self.products = {p.id: p for p in products}
        self.vendors = {v.vendor_id: v for v in vendors}

    def _resolve_vendor(self, request_id: str, item: BudgetItem) -> Vendor:
        product = self.products.get(item.product_id)
        if product is None:
            raise DataIntegrityError(
                f"Request {request_id}: product {item.product_id} not found in catalog"
            )
        vendor = self.vendors.get(product.vendor_id)
        if vendor is None:
            raise DataIntegrityError(
                f"Request {request_id}: vendor {product.vendor_id!r} of product "
                f"{item.product_id} not found"
            )
        return vendor

    def generate(
        self,
        requests: Iterable[BudgetRequest],
        now: Optional[datetime] = None,
    ) -> GenerationResult:
        now = now or datetime.now(timezone.utc)
        result = GenerationResult()

        eligible = [r for r in requests if is_ready_for_po(r)]
        if not eligible:
            logger.info("No eligible requests for purchase order generation")
            return result

        groups: dict[tuple[str, str, str], _Group] = {}
        for request in eligible:
            for item in request.items:
                try:
                    vendor = self._resolve_vendor(request.id, item)
                except DataIntegrityError as exc:
                    logger.warning("Skipping item: %s", exc)
                    result.skipped.append(exc)
                    continue

                key = (
                    vendor.vendor_id,
                    request.assigned_company_profile_id,
                    request.assigned_delivery_address,
                )
                group = groups.get(key)
                if group is None:
                    group = groups[key] = _Group(
                        vendor=vendor,
                        company_profile_id=request.assigned_company_profile_id,
                        delivery_address=request.assigned_delivery_address,
                    )
                group.add(request.id, item)

        for group in groups.values():
            lines = list(group.lines.values())
            po = PurchaseOrder(
                po_id=new_po_id(now),
                vendor_id=group.vendor.vendor_id,
                vendor_name=group.vendor.vendor_name,
                date_issued=now,
                items=lines,
                total_amount=sum(line.total for line in lines),
                related_budget_ids=group.budget_ids,
                company_profile_id=group.company_profile_id,
                delivery_address=group.delivery_address,
            )
            logger.info(
                "Generated %s for %s: %d line(s), total %.0f, from %s",
                po.po_id, po.vendor_name, len(lines), po.total_amount,
                ", ".join(po.related_budget_ids),
            )
            result.purchase_orders.append(po)

        # A request whose items were all skipped stays eligible for a later run
        contributing = {bid for g in groups.values() for bid in g.budget_ids}
        result.updated_requests = [
            r.model_copy(update={"po_generated": True})
            for r in eligible if r.id in contributing
        ]
        return result
