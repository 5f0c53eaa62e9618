"""
Budget request approval state machine.

    PENDING_MANAGER_APPROVAL ──manager approves, total > threshold──► PENDING_BOD_APPROVAL
            │                                                                 │
            ├──manager approves, total <= threshold──► APPROVED ◄──BOD approves┘
            │                                                                 │
            └──────────────── reject (either pending state) ──► REJECTED ◄────┘

All functions are pure: they return a new BudgetRequest and leave the one
passed in untouched, raising before any change when the action is not allowed.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

from models.budget import BudgetItem, BudgetRequest, BudgetStatus, ProcurementStatus
from models.user import Role, User
from .errors import AuthorizationError, InvalidStateError, ValidationError

logger = logging.getLogger(__name__)

# Manager approvals above this amount are escalated to the BOD
ESCALATION_THRESHOLD = 5_000_000

SUBMITTER_ROLES = (Role.USER,)


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def new_request_id() -> str:
    return f"BR-{uuid.uuid4().hex[:8].upper()}"


def submit(
    submitter: User,
    items: Iterable[BudgetItem],
    request_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> BudgetRequest:
    """
    Build a new request from the submitter's item list.

    Lines with a zero quantity are dropped; at least one must remain.
    """
    if submitter.role not in SUBMITTER_ROLES:
        raise AuthorizationError(
            f"Role {submitter.role.value} cannot submit budget requests"
        )

    to_submit = [item for item in items if item.qty > 0]
    if not to_submit:
        raise ValidationError(
            "Cannot submit an empty request. Add a quantity for at least one item."
        )

    request = BudgetRequest(
        id=request_id or new_request_id(),
        user_id=submitter.id,
        user_name=submitter.name,
        department=submitter.department,
        items=to_submit,
        status=BudgetStatus.PENDING_MANAGER_APPROVAL,
        submitted_at=_now(now),
        manager_approver_id=submitter.manager_id,
        bod_approver_id=submitter.bod_id,
    )
    logger.info(
        "Request %s submitted by %s: %d item(s), total %.0f",
        request.id, submitter.id, len(to_submit), request.total,
    )
    return request


def _check_authority(request: BudgetRequest, approver: User) -> None:
    """Raise unless *approver* is the one this request is currently waiting on."""
    if request.status == BudgetStatus.PENDING_MANAGER_APPROVAL:
        expected, label = request.manager_approver_id, "manager"
    elif request.status == BudgetStatus.PENDING_BOD_APPROVAL:
        expected, label = request.bod_approver_id, "BOD"
    else:
        raise InvalidStateError(
            f"Request {request.id} is not awaiting approval (status: {request.status.value})"
        )

    if expected is None or approver.id != expected:
        raise AuthorizationError(
            f"User {approver.id} is not the designated {label} for request {request.id}"
        )


def escalates(request: BudgetRequest, threshold: float = ESCALATION_THRESHOLD) -> bool:
    """True if a manager approval of *request* would route it to the BOD."""
    return (
        request.status == BudgetStatus.PENDING_MANAGER_APPROVAL
        and request.total > threshold
    )


def approve(
    request: BudgetRequest,
    approver: User,
    threshold: float = ESCALATION_THRESHOLD,
    now: Optional[datetime] = None,
) -> BudgetRequest:
    """
    Record an approval decision.

    A manager approval of a request strictly above *threshold* escalates it
    to PENDING_BOD_APPROVAL.  Any other valid approval is final.
    """
    _check_authority(request, approver)

    if escalates(request, threshold):
        logger.info(
            "Request %s (total %.0f) exceeds %.0f — escalated to BOD %s",
            request.id, request.total, threshold, request.bod_approver_id,
        )
        return request.model_copy(update={"status": BudgetStatus.PENDING_BOD_APPROVAL})

    logger.info("Request %s approved by %s", request.id, approver.id)
    return request.model_copy(update={
        "status": BudgetStatus.APPROVED,
        "approved_at": _now(now),
        "procurement_status": ProcurementStatus.PENDING,
    })


def reject(
    request: BudgetRequest,
    approver: User,
    reason: str,
    now: Optional[datetime] = None,
) -> BudgetRequest:
    """Reject a pending request. The reason is stored verbatim."""
    if not reason or not reason.strip():
        raise ValidationError("A rejection reason is required")
    _check_authority(request, approver)

    logger.info("Request %s rejected by %s", request.id, approver.id)
    return request.model_copy(update={
        "status": BudgetStatus.REJECTED,
        "rejected_at": _now(now),
        "rejected_reason": reason,
    })


def pending_for(approver: User, requests: Iterable[BudgetRequest]) -> list[BudgetRequest]:
    """Requests currently waiting on *approver*'s decision."""
    match approver.role:
        case Role.MANAGER:
            return [
                r for r in requests
                if r.status == BudgetStatus.PENDING_MANAGER_APPROVAL
                and r.manager_approver_id == approver.id
            ]
        case Role.BOD:
            return [
                r for r in requests
                if r.status == BudgetStatus.PENDING_BOD_APPROVAL
                and r.bod_approver_id == approver.id
            ]
        case Role.USER | Role.ADMIN:
            return []


def visible_to(user: User, requests: Iterable[BudgetRequest]) -> list[BudgetRequest]:
    """
    Request history scoped by role.

    USER sees their own requests, MANAGER the requests they manage, BOD the
    requests routed to them, ADMIN everything.
    """
    match user.role:
        case Role.USER:
            return [r for r in requests if r.user_id == user.id]
        case Role.MANAGER:
            return [
                r for r in requests
                if r.manager_approver_id == user.id
            ]
        case Role.BOD:
            return [r for r in requests if r.bod_approver_id == user.id]
        case Role.ADMIN:
            return list(requests)
