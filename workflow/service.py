"""
Workflow service — one method per backend action.

BudgetWorkflowService loads records from the Database, runs the pure core
(approval, procurement, po_generator, reporting), persists the result and
writes an audit entry.  The acting user is always passed in explicitly.

Every core call happens before anything is written, so an operation that
raises leaves the stored state exactly as it was.
"""
import logging
from typing import Optional

from config import Config
from models.budget import BudgetItem, BudgetRequest, BudgetStatus, ProcurementStatus
from models.master_data import CompanyProfile, DeliveryAddress, Product, Vendor
from models.purchase_order import PurchaseOrder
from models.report import ReportFilter
from models.user import Role, User
from . import approval, procurement, reporting
from .database import Database
from .errors import AuthorizationError, NotFoundError
from .po_generator import GenerationResult, PurchaseOrderGenerator

logger = logging.getLogger(__name__)


def _require_role(user: User, *roles: Role) -> None:
    if user.role not in roles:
        allowed = ", ".join(r.value for r in roles)
        raise AuthorizationError(f"Action requires role {allowed}; {user.id} is {user.role.value}")


class BudgetWorkflowService:
    """
    Orchestrates the budget workflow against the SQLite store.

    Usage:
        service = BudgetWorkflowService(Config())
        request = service.submit_budget(user, items)
        service.approve_budget(request.id, manager)
    """

    def __init__(self, config: Optional[Config] = None, db: Optional[Database] = None):
        self.config = config or Config()
        self.db = db or Database(self.config.db_path)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get_request(self, budget_id: str) -> BudgetRequest:
        req = self.db.get_budget_request(budget_id)
        if req is None:
            raise NotFoundError(f"Budget request not found: {budget_id}")
        return req

    def get_user(self, user_id: str) -> User:
        user = self.db.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        return user

    def get_users(self) -> list[User]:
        return self.db.list_users()

    def get_products(self) -> list[Product]:
        return self.db.list_products()

    def get_vendors(self) -> list[Vendor]:
        return self.db.list_vendors()

    def get_company_profiles(self) -> list[CompanyProfile]:
        return self.db.list_company_profiles()

    def get_delivery_addresses(self) -> list[DeliveryAddress]:
        return self.db.list_delivery_addresses()

    def get_budget_requests(self, user: User) -> list[BudgetRequest]:
        return approval.visible_to(user, self.db.list_budget_requests())

    def get_pending_approvals(self, user: User) -> list[BudgetRequest]:
        return approval.pending_for(user, self.db.list_budget_requests())

    def get_purchase_orders(self) -> list[PurchaseOrder]:
        return self.db.list_purchase_orders()

    def get_purchase_order(self, po_id: str) -> PurchaseOrder:
        po = self.db.get_purchase_order(po_id)
        if po is None:
            raise NotFoundError(f"Purchase order not found: {po_id}")
        return po

    # ------------------------------------------------------------------
    # Approval workflow
    # ------------------------------------------------------------------

    def submit_budget(self, user: User, items: list[BudgetItem]) -> BudgetRequest:
        req = approval.submit(user, items)
        self.db.save_budget_request(
            req, "submitted", actor=user.id,
            detail={"items": len(req.items), "total": req.total},
        )
        return req

    def approve_budget(self, budget_id: str, approver: User) -> BudgetRequest:
        before = self._get_request(budget_id)
        after = approval.approve(before, approver, threshold=self.config.escalation_threshold)
        action = "escalated" if after.status == BudgetStatus.PENDING_BOD_APPROVAL else "approved"
        self.db.save_budget_request(
            after, action, actor=approver.id,
            detail={"from": before.status.value, "to": after.status.value, "total": after.total},
        )
        return after

    def reject_budget(self, budget_id: str, approver: User, reason: str) -> BudgetRequest:
        before = self._get_request(budget_id)
        after = approval.reject(before, approver, reason)
        self.db.save_budget_request(
            after, "rejected", actor=approver.id,
            detail={"from": before.status.value, "reason": reason},
        )
        return after

    # ------------------------------------------------------------------
    # Procurement
    # ------------------------------------------------------------------

    def update_procurement_status(
        self,
        budget_id: str,
        status: ProcurementStatus,
        actor: User,
    ) -> BudgetRequest:
        _require_role(actor, Role.ADMIN)
        before = self._get_request(budget_id)
        after = procurement.set_procurement_status(before, status)
        if before.procurement_status == after.procurement_status:
            self.db.save_budget_request(after)
        else:
            self.db.save_budget_request(
                after, "procurement_status_changed", actor=actor.id,
                detail={
                    "from": before.effective_procurement_status.value,
                    "to": after.effective_procurement_status.value,
                },
            )
        return after

    def update_budget_procurement_details(
        self,
        budget_id: str,
        actor: User,
        company_profile_id: Optional[str] = None,
        delivery_address: Optional[str] = None,
    ) -> BudgetRequest:
        _require_role(actor, Role.ADMIN)
        before = self._get_request(budget_id)
        after = procurement.assign_procurement_details(
            before, company_profile_id=company_profile_id, delivery_address=delivery_address,
        )
        self.db.save_budget_request(
            after, "procurement_details_updated", actor=actor.id,
            detail={
                "company_profile_id": after.assigned_company_profile_id,
                "delivery_address": after.assigned_delivery_address,
            },
        )
        return after

    def generate_purchase_orders(self, actor: User) -> GenerationResult:
        """
        Sweep eligible requests into purchase orders.

        An empty result means nothing was eligible; that is not an error.
        """
        _require_role(actor, Role.ADMIN)
        generator = PurchaseOrderGenerator(self.db.list_products(), self.db.list_vendors())
        result = generator.generate(self.db.list_budget_requests(BudgetStatus.APPROVED))
        if result.nothing_eligible:
            return result

        self.db.save_purchase_orders(
            result.purchase_orders, result.updated_requests, actor=actor.id,
        )
        if result.skipped:
            logger.warning(
                "%d item(s) left out of purchase orders due to master-data problems",
                len(result.skipped),
            )
        return result

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def build_report(self, user: User, filt: Optional[ReportFilter] = None) -> dict:
        """Dashboard report for MANAGER, BOD or ADMIN over the requests they can see."""
        _require_role(user, Role.MANAGER, Role.BOD, Role.ADMIN)
        requests = self.get_budget_requests(user)
        filt = filt or ReportFilter(timezone=self.config.report_timezone)
        return {
            "summary": reporting.approval_summary(requests, filt).model_dump(),
            "departments": [r.model_dump() for r in reporting.department_reports(requests, filt)],
            "procurement": reporting.procurement_stats(requests, filt).model_dump(),
            "total_approved_amount": reporting.approved_total(requests, filt),
            "periods": reporting.available_periods(requests, filt.timezone),
        }
