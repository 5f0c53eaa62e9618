"""
Unit tests for the approval state machine.
"""
from datetime import datetime, timezone

import pytest

from models.budget import BudgetItem, BudgetStatus, ProcurementStatus
from workflow import approval
from workflow.errors import AuthorizationError, InvalidStateError, ValidationError


@pytest.mark.unit
class TestSubmit:
    """Tests for approval.submit()."""

    def test_submit_creates_pending_request(self, users, catalog):
        """Test a valid submission routes to the submitter's manager."""
        items = [
            BudgetItem.from_product(catalog["prod-001"], 2),
            BudgetItem.from_product(catalog["prod-002"], 1),
        ]

        req = approval.submit(users["user"], items, request_id="BR-TEST0001")

        assert req.id == "BR-TEST0001"
        assert req.status == BudgetStatus.PENDING_MANAGER_APPROVAL
        assert req.user_id == "user-1"
        assert req.user_name == "Budi Hartono"
        assert req.department == "Marketing"
        assert req.manager_approver_id == "manager-1"
        assert req.bod_approver_id == "bod-1"
        assert req.total == 2 * 45000 + 25000
        assert req.submitted_at is not None
        assert req.procurement_status is None

    def test_zero_quantity_lines_are_dropped(self, users, catalog):
        """Test lines with qty 0 never reach the stored request."""
        items = [
            BudgetItem.from_product(catalog["prod-001"], 0),
            BudgetItem.from_product(catalog["prod-003"], 4),
        ]

        req = approval.submit(users["user"], items)

        assert [i.product_id for i in req.items] == ["prod-003"]
        assert req.total == 4 * 80000

    def test_all_zero_quantities_rejected(self, users, catalog):
        """Test an all-zero submission fails validation."""
        items = [BudgetItem.from_product(p, 0) for p in catalog.values()]

        with pytest.raises(ValidationError):
            approval.submit(users["user"], items)

    def test_empty_item_list_rejected(self, users):
        with pytest.raises(ValidationError):
            approval.submit(users["user"], [])

    @pytest.mark.parametrize("role", ["manager", "bod", "admin"])
    def test_only_user_role_may_submit(self, users, catalog, role):
        """Test approvers and admins cannot raise requests."""
        items = [BudgetItem.from_product(catalog["prod-001"], 1)]

        with pytest.raises(AuthorizationError):
            approval.submit(users[role], items)

    def test_generated_ids_are_unique(self):
        ids = {approval.new_request_id() for _ in range(50)}
        assert len(ids) == 50
        assert all(i.startswith("BR-") for i in ids)


@pytest.mark.unit
class TestApprove:
    """Tests for manager/BOD approval and escalation."""

    NOW = datetime(2024, 3, 16, 10, 30, tzinfo=timezone.utc)

    def test_manager_approves_below_threshold(self, users, make_request):
        """Test a manager approval at or under the threshold is final."""
        req = make_request("BR-1", {"prod-001": 10})   # 450,000

        after = approval.approve(req, users["manager"], now=self.NOW)

        assert after.status == BudgetStatus.APPROVED
        assert after.approved_at == self.NOW
        assert after.procurement_status == ProcurementStatus.PENDING

    def test_manager_approval_above_threshold_escalates(self, users, make_request):
        """Test totals over 5,000,000 are routed to the BOD instead."""
        req = make_request("BR-2", {"prod-004": 1})    # 6,000,000

        after = approval.approve(req, users["manager"])

        assert after.status == BudgetStatus.PENDING_BOD_APPROVAL
        assert after.approved_at is None
        assert after.procurement_status is None

    def test_exactly_at_threshold_does_not_escalate(self, users, make_request):
        """Test the threshold comparison is strictly greater-than."""
        req = make_request("BR-3", {"prod-002": 200})  # 200 * 25,000 = 5,000,000
        assert req.total == 5_000_000

        after = approval.approve(req, users["manager"])

        assert after.status == BudgetStatus.APPROVED

    def test_custom_threshold(self, users, make_request):
        req = make_request("BR-4", {"prod-001": 10})   # 450,000

        after = approval.approve(req, users["manager"], threshold=100_000)

        assert after.status == BudgetStatus.PENDING_BOD_APPROVAL

    def test_bod_approval_is_final_regardless_of_total(self, users, make_request):
        """Test the BOD approves any amount."""
        req = make_request(
            "BR-5", {"prod-004": 3}, status=BudgetStatus.PENDING_BOD_APPROVAL,
        )

        after = approval.approve(req, users["bod"], now=self.NOW)

        assert after.status == BudgetStatus.APPROVED
        assert after.approved_at == self.NOW

    def test_approve_does_not_mutate_input(self, users, make_request):
        req = make_request("BR-6", {"prod-001": 1})

        approval.approve(req, users["manager"])

        assert req.status == BudgetStatus.PENDING_MANAGER_APPROVAL
        assert req.approved_at is None

    def test_wrong_manager_is_refused(self, users, make_request):
        """Test only the designated manager can act."""
        req = make_request("BR-7", {"prod-001": 1})

        with pytest.raises(AuthorizationError):
            approval.approve(req, users["manager2"])

    def test_manager_cannot_act_on_bod_stage(self, users, make_request):
        req = make_request("BR-8", {"prod-004": 1}, status=BudgetStatus.PENDING_BOD_APPROVAL)

        with pytest.raises(AuthorizationError):
            approval.approve(req, users["manager"])

    def test_missing_approver_id_is_refused(self, users, make_request):
        req = make_request("BR-9", {"prod-001": 1}).model_copy(
            update={"manager_approver_id": None}
        )

        with pytest.raises(AuthorizationError):
            approval.approve(req, users["manager"])

    @pytest.mark.parametrize("status", [
        BudgetStatus.APPROVED, BudgetStatus.REJECTED, BudgetStatus.DRAFT,
    ])
    def test_non_pending_request_cannot_be_approved(self, users, make_request, status):
        req = make_request("BR-10", {"prod-001": 1}, status=status)

        with pytest.raises(InvalidStateError):
            approval.approve(req, users["manager"])


@pytest.mark.unit
class TestReject:
    """Tests for approval.reject()."""

    def test_reject_stores_reason_verbatim(self, users, make_request):
        req = make_request("BR-1", {"prod-001": 1})
        reason = "  Anggaran kuartal ini sudah habis.  "

        after = approval.reject(req, users["manager"], reason)

        assert after.status == BudgetStatus.REJECTED
        assert after.rejected_reason == reason
        assert after.rejected_at is not None

    def test_bod_can_reject_escalated_request(self, users, make_request):
        req = make_request("BR-2", {"prod-004": 1}, status=BudgetStatus.PENDING_BOD_APPROVAL)

        after = approval.reject(req, users["bod"], "Too expensive")

        assert after.status == BudgetStatus.REJECTED

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reason_is_required(self, users, make_request, reason):
        req = make_request("BR-3", {"prod-001": 1})

        with pytest.raises(ValidationError):
            approval.reject(req, users["manager"], reason)

    def test_wrong_approver_cannot_reject(self, users, make_request):
        req = make_request("BR-4", {"prod-001": 1})

        with pytest.raises(AuthorizationError):
            approval.reject(req, users["bod"], "No")

    def test_rejected_request_is_terminal(self, users, make_request):
        req = make_request("BR-5", {"prod-001": 1}, status=BudgetStatus.REJECTED)

        with pytest.raises(InvalidStateError):
            approval.reject(req, users["manager"], "Again")


@pytest.mark.unit
class TestQueues:
    """Tests for pending_for() and visible_to()."""

    @pytest.fixture
    def requests(self, make_request):
        return [
            make_request("BR-A", {"prod-001": 1}),
            make_request("BR-B", {"prod-004": 1}, status=BudgetStatus.PENDING_BOD_APPROVAL),
            make_request("BR-C", {"prod-001": 1}, status=BudgetStatus.APPROVED),
            make_request("BR-D", {"prod-002": 1}, user_id="user-2", department="Sales")
            .model_copy(update={"manager_approver_id": "manager-2"}),
        ]

    def test_manager_pending_queue(self, users, requests):
        pending = approval.pending_for(users["manager"], requests)
        assert [r.id for r in pending] == ["BR-A"]

    def test_bod_pending_queue(self, users, requests):
        pending = approval.pending_for(users["bod"], requests)
        assert [r.id for r in pending] == ["BR-B"]

    @pytest.mark.parametrize("role", ["user", "admin"])
    def test_non_approvers_have_nothing_pending(self, users, requests, role):
        assert approval.pending_for(users[role], requests) == []

    def test_user_sees_own_requests(self, users, requests):
        visible = approval.visible_to(users["user2"], requests)
        assert [r.id for r in visible] == ["BR-D"]

    def test_manager_sees_managed_requests(self, users, requests):
        visible = approval.visible_to(users["manager"], requests)
        assert {r.id for r in visible} == {"BR-A", "BR-B", "BR-C"}

    def test_admin_sees_everything(self, users, requests):
        assert len(approval.visible_to(users["admin"], requests)) == 4
