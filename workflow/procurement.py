"""
Procurement lane for approved budget requests.

Once a request is APPROVED an administrator tracks the physical purchase:

  Pending Procurement → In Progress → Procured

Any status may be set directly (no forward-only ordering).  Company profile
and delivery address can only be assigned while the request is still
Pending Procurement; both must be set before the request is swept into a
purchase order.
"""
import logging
from typing import Iterable, Optional

from models.budget import BudgetRequest, BudgetStatus, ProcurementStatus
from .errors import InvalidStateError

logger = logging.getLogger(__name__)


def _require_approved(request: BudgetRequest) -> None:
    if request.status != BudgetStatus.APPROVED:
        raise InvalidStateError(
            f"Request {request.id} is not approved (status: {request.status.value})"
        )


def assign_procurement_details(
    request: BudgetRequest,
    company_profile_id: Optional[str] = None,
    delivery_address: Optional[str] = None,
) -> BudgetRequest:
    """
    Set the purchasing company and/or delivery address.

    Partial update: an argument left as None keeps the current value.
    """
    _require_approved(request)
    if request.effective_procurement_status != ProcurementStatus.PENDING:
        raise InvalidStateError(
            f"Procurement details of {request.id} are locked "
            f"(procurement status: {request.effective_procurement_status.value})"
        )

    update: dict = {"procurement_status": request.effective_procurement_status}
    if company_profile_id is not None:
        update["assigned_company_profile_id"] = company_profile_id
    if delivery_address is not None:
        update["assigned_delivery_address"] = delivery_address

    logger.info(
        "Procurement details for %s: company=%s address=%s",
        request.id,
        update.get("assigned_company_profile_id", request.assigned_company_profile_id),
        update.get("assigned_delivery_address", request.assigned_delivery_address),
    )
    return request.model_copy(update=update)


def set_procurement_status(request: BudgetRequest, status: ProcurementStatus) -> BudgetRequest:
    _require_approved(request)
    status = ProcurementStatus(status)
    if request.procurement_status != status:
        logger.info(
            "Procurement status of %s: %s → %s",
            request.id, request.effective_procurement_status.value, status.value,
        )
    return request.model_copy(update={"procurement_status": status})


def is_ready_for_po(request: BudgetRequest) -> bool:
    """True if the purchase order generator should pick up *request*."""
    return (
        request.status == BudgetStatus.APPROVED
        and request.procurement_status == ProcurementStatus.IN_PROGRESS
        and bool(request.assigned_company_profile_id)
        and bool(request.assigned_delivery_address)
        and not request.po_generated
    )


def procurement_queue(
    requests: Iterable[BudgetRequest],
    status: Optional[ProcurementStatus] = None,
) -> list[BudgetRequest]:
    """Approved requests, optionally restricted to one procurement status."""
    queue = [r for r in requests if r.status == BudgetStatus.APPROVED]
    if status is not None:
        queue = [r for r in queue if r.effective_procurement_status == status]
    return queue
