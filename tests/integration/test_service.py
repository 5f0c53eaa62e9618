"""
Integration tests for BudgetWorkflowService against a real SQLite file.
"""
import sqlite3
from datetime import datetime, timezone

import pytest

from models.budget import BudgetStatus, ProcurementStatus
from models.report import ReportFilter
from workflow.catalog import build_items
from workflow.errors import (
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)


def _submit(service, user, quantities):
    return service.submit_budget(user, build_items(service.get_products(), quantities))


def _ready_for_po(service, admin, budget_id, company="comp-1", address="Head Office"):
    service.update_budget_procurement_details(
        budget_id, admin, company_profile_id=company, delivery_address=address,
    )
    return service.update_procurement_status(budget_id, ProcurementStatus.IN_PROGRESS, admin)


@pytest.mark.integration
class TestApprovalFlow:

    def test_submit_persists_and_audits(self, service, users):
        req = _submit(service, users["user"], {"prod-001": 2, "prod-002": 0})

        stored = service.db.get_budget_request(req.id)
        assert stored.status == BudgetStatus.PENDING_MANAGER_APPROVAL
        assert [i.product_id for i in stored.items] == ["prod-001"]
        assert [e["action"] for e in service.db.get_audit_log(req.id)] == ["submitted"]

    def test_empty_submission_stores_nothing(self, service, users):
        with pytest.raises(ValidationError):
            _submit(service, users["user"], {"prod-001": 0})
        assert service.db.list_budget_requests() == []

    def test_manager_approval_below_threshold(self, service, users):
        req = _submit(service, users["user"], {"prod-001": 10})

        assert [r.id for r in service.get_pending_approvals(users["manager"])] == [req.id]
        after = service.approve_budget(req.id, users["manager"])

        assert after.status == BudgetStatus.APPROVED
        assert service.get_pending_approvals(users["manager"]) == []
        stored = service.db.get_budget_request(req.id)
        assert stored.procurement_status == ProcurementStatus.PENDING
        assert stored.approved_at is not None

    def test_escalation_then_bod_approval(self, service, users):
        req = _submit(service, users["user"], {"prod-004": 1})     # 6,000,000

        escalated = service.approve_budget(req.id, users["manager"])
        assert escalated.status == BudgetStatus.PENDING_BOD_APPROVAL
        assert [r.id for r in service.get_pending_approvals(users["bod"])] == [req.id]

        approved = service.approve_budget(req.id, users["bod"])
        assert approved.status == BudgetStatus.APPROVED
        actions = [e["action"] for e in service.db.get_audit_log(req.id)]
        assert actions == ["submitted", "escalated", "approved"]

    def test_configured_threshold_is_used(self, service, users):
        service.config.escalation_threshold = 10_000
        req = _submit(service, users["user"], {"prod-001": 1})

        assert service.approve_budget(req.id, users["manager"]).status == \
            BudgetStatus.PENDING_BOD_APPROVAL

    def test_reject(self, service, users):
        req = _submit(service, users["user"], {"prod-001": 1})

        after = service.reject_budget(req.id, users["manager"], "Belum prioritas")

        assert after.status == BudgetStatus.REJECTED
        assert service.db.get_budget_request(req.id).rejected_reason == "Belum prioritas"

    def test_failed_action_leaves_state_unchanged(self, service, users):
        """Test a refused approval writes neither the request nor the audit log."""
        req = _submit(service, users["user"], {"prod-001": 1})

        with pytest.raises(AuthorizationError):
            service.approve_budget(req.id, users["manager2"])
        with pytest.raises(ValidationError):
            service.reject_budget(req.id, users["manager"], "  ")

        assert service.db.get_budget_request(req.id) == req
        assert len(service.db.get_audit_log(req.id)) == 1

    def test_audit_failure_rolls_back_approval(self, service, users, monkeypatch):
        """Test the status change and its audit entry are written together."""
        req = _submit(service, users["user"], {"prod-001": 1})

        def broken_audit(*args):
            raise sqlite3.OperationalError("audit_log is locked")

        with monkeypatch.context() as mp:
            mp.setattr(service.db, "_insert_audit", broken_audit)
            with pytest.raises(sqlite3.OperationalError):
                service.approve_budget(req.id, users["manager"])

        assert service.db.get_budget_request(req.id).status == BudgetStatus.PENDING_MANAGER_APPROVAL
        assert [e["action"] for e in service.db.get_audit_log(req.id)] == ["submitted"]

    def test_unknown_request(self, service, users):
        with pytest.raises(NotFoundError):
            service.approve_budget("BR-MISSING", users["manager"])

    def test_unknown_user(self, service):
        with pytest.raises(NotFoundError):
            service.get_user("ghost")

    def test_history_is_scoped_by_role(self, service, users):
        mine = _submit(service, users["user"], {"prod-001": 1})
        other = _submit(service, users["user2"], {"prod-002": 1})

        assert [r.id for r in service.get_budget_requests(users["user"])] == [mine.id]
        assert [r.id for r in service.get_budget_requests(users["manager2"])] == [other.id]
        assert {r.id for r in service.get_budget_requests(users["admin"])} == {mine.id, other.id}


@pytest.mark.integration
class TestProcurementAndOrders:

    @pytest.fixture
    def approved(self, service, users):
        """Two approved requests for the same product (qty 3 and 5)."""
        ids = []
        for qty in (3, 5):
            req = _submit(service, users["user"], {"prod-001": qty})
            service.approve_budget(req.id, users["manager"])
            ids.append(req.id)
        return ids

    def test_admin_only(self, service, users, approved):
        with pytest.raises(AuthorizationError):
            service.update_procurement_status(approved[0], ProcurementStatus.IN_PROGRESS,
                                              users["manager"])
        with pytest.raises(AuthorizationError):
            service.update_budget_procurement_details(approved[0], users["user"],
                                                      company_profile_id="comp-1")
        with pytest.raises(AuthorizationError):
            service.generate_purchase_orders(users["bod"])

    def test_details_locked_after_in_progress(self, service, users, approved):
        _ready_for_po(service, users["admin"], approved[0])

        with pytest.raises(InvalidStateError):
            service.update_budget_procurement_details(
                approved[0], users["admin"], delivery_address="Gudang Cikarang",
            )

    def test_status_change_audited_only_on_change(self, service, users, approved):
        admin = users["admin"]
        service.update_procurement_status(approved[0], ProcurementStatus.PENDING, admin)
        service.update_procurement_status(approved[0], ProcurementStatus.PENDING, admin)
        service.update_procurement_status(approved[0], ProcurementStatus.IN_PROGRESS, admin)

        actions = [e["action"] for e in service.db.get_audit_log(approved[0])]
        assert actions.count("procurement_status_changed") == 1

    def test_generate_purchase_orders(self, service, users, approved):
        """Test two ready requests merge into one PO line of qty 8."""
        for budget_id in approved:
            _ready_for_po(service, users["admin"], budget_id)

        result = service.generate_purchase_orders(users["admin"])

        assert len(result.purchase_orders) == 1
        po = result.purchase_orders[0]
        assert po.items[0].qty == 8
        assert po.total_amount == 8 * 45000
        assert sorted(po.related_budget_ids) == sorted(approved)
        assert service.get_purchase_order(po.po_id) == po
        assert all(service.db.get_budget_request(b).po_generated for b in approved)
        assert [e["action"] for e in service.db.get_audit_log(po.po_id)] == ["po_generated"]

        again = service.generate_purchase_orders(users["admin"])
        assert again.nothing_eligible
        assert len(service.get_purchase_orders()) == 1

    def test_nothing_eligible(self, service, users, approved):
        result = service.generate_purchase_orders(users["admin"])

        assert result.nothing_eligible
        assert service.get_purchase_orders() == []

    def test_unknown_purchase_order(self, service):
        with pytest.raises(NotFoundError):
            service.get_purchase_order("PO-NOPE")


@pytest.mark.integration
class TestReport:

    def test_report_for_admin(self, service, users):
        approved = _submit(service, users["user2"], {"prod-001": 2})
        service.approve_budget(approved.id, users["manager2"])
        rejected = _submit(service, users["user2"], {"prod-003": 1})
        service.reject_budget(rejected.id, users["manager2"], "No")
        _submit(service, users["user"], {"prod-002": 1})

        report = service.build_report(users["admin"], ReportFilter(department="Sales"))

        assert report["summary"]["total_requests"] == 2
        assert report["summary"]["approved"] == 1
        assert report["summary"]["rejected"] == 1
        assert report["total_approved_amount"] == 2 * 45000
        assert report["procurement"] == {"pending": 1, "in_progress": 0, "procured": 0}
        assert report["periods"]["departments"] == ["Marketing", "Sales"]

    def test_manager_report_is_scoped(self, service, users):
        _submit(service, users["user"], {"prod-001": 1})
        _submit(service, users["user2"], {"prod-001": 1})

        report = service.build_report(users["manager"])

        assert report["summary"]["total_requests"] == 1

    def test_user_cannot_see_reports(self, service, users):
        with pytest.raises(AuthorizationError):
            service.build_report(users["user"])

    def test_report_buckets_in_configured_timezone(self, service, users):
        service.config.report_timezone = "UTC"
        req = _submit(service, users["user2"], {"prod-001": 1})
        late = req.model_copy(update={
            "submitted_at": datetime(2024, 12, 31, 20, 0, tzinfo=timezone.utc),
        })
        service.db.save_budget_request(late)

        report = service.build_report(users["admin"])

        assert report["periods"]["years"] == [2024]
        assert report["departments"][0]["year"] == 2024
