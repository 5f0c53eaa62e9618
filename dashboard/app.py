"""
Budget Workflow Backend — FastAPI action-dispatch API.

Serves the uniform action contract consumed by the budget client: every call
is a POST to /api naming an action and an optional data payload, answered
with a success or error envelope.

All state lives in a single SQLite database (output/budget.db).

Endpoints
---------
  POST /api                                 → {action, data} → {status, data | message}
  GET  /api/health                          → liveness probe
  GET  /api/stats                           → request counts by status, PO totals
  GET  /api/purchase-orders/{po_id}/export  → purchase order as XML

Actions
-------
  getBudgetRequests, getPendingApprovals, submitBudget, approveBudget,
  rejectBudget, updateProcurementStatus, updateBudgetProcurementDetails,
  generatePurchaseOrders, getPurchaseOrders, getCompanyProfiles,
  getDeliveryAddresses, getVendors, getProducts, getUsers

The acting user is identified by id in the payload (``user``, ``approver``
or ``actor``) and always re-read from the database; the role sent by the
client is ignored.
"""
import logging
from collections import defaultdict
from pathlib import Path
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import Response
from pydantic import ValidationError as PydanticValidationError

from config import Config
from models.budget import ProcurementStatus
from models.user import User
from workflow.catalog import build_items
from workflow.errors import ValidationError, WorkflowError
from workflow.service import BudgetWorkflowService
from .models import ActionRequest, Envelope, SubmitItem
from .services.export import build_export_payload, render_po_xml

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Service (opened lazily on first request; importing the app touches no disk)
# ---------------------------------------------------------------------------
_service: Optional[BudgetWorkflowService] = None


def get_service() -> BudgetWorkflowService:
    global _service
    if _service is None:
        config = Config()
        config.ensure_output_dir()
        _service = BudgetWorkflowService(config)
    return _service


def set_service(service: Optional[BudgetWorkflowService]) -> None:
    """Swap the backing service (tests, embedding)."""
    global _service
    _service = service


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(title="Budget Workflow Backend", docs_url=None, redoc_url=None)


# ── Payload helpers ──────────────────────────────────────────────────────────

def _require(data: dict, key: str):
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"Missing required field: {key}")
    return value


def _acting_user(svc: BudgetWorkflowService, data: dict, key: str) -> User:
    """Resolve the acting user from ``data[key]`` (a user object or an id)."""
    ref = _require(data, key)
    user_id = ref.get("id") if isinstance(ref, dict) else ref
    if not user_id:
        raise ValidationError(f"Field {key} does not identify a user")
    return svc.get_user(user_id)


def _wire(records) -> list[dict]:
    return [r.to_wire() for r in records]


# ── Action handlers ──────────────────────────────────────────────────────────

def _get_budget_requests(svc, data):
    return _wire(svc.get_budget_requests(_acting_user(svc, data, "user")))


def _get_pending_approvals(svc, data):
    return _wire(svc.get_pending_approvals(_acting_user(svc, data, "user")))


def _submit_budget(svc, data):
    user = svc.get_user(_require(data, "userId"))
    raw_items = data.get("items") or []
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list")

    # Prices are re-read from the catalog; only product and quantity are trusted
    quantities: dict[str, int] = defaultdict(int)
    for raw in raw_items:
        item = SubmitItem.model_validate(raw)
        quantities[item.productId] += item.qty

    items = build_items(svc.get_products(), quantities)
    return svc.submit_budget(user, items).to_wire()


def _approve_budget(svc, data):
    approver = _acting_user(svc, data, "approver")
    return svc.approve_budget(_require(data, "budgetId"), approver).to_wire()


def _reject_budget(svc, data):
    approver = _acting_user(svc, data, "approver")
    reason = data.get("reason") or ""
    if not isinstance(reason, str):
        raise ValidationError("reason must be a string")
    return svc.reject_budget(_require(data, "budgetId"), approver, reason).to_wire()


def _update_procurement_status(svc, data):
    actor = _acting_user(svc, data, "actor")
    try:
        status = ProcurementStatus(_require(data, "status"))
    except ValueError:
        raise ValidationError(f"Unknown procurement status: {data.get('status')!r}") from None
    return svc.update_procurement_status(_require(data, "budgetId"), status, actor).to_wire()


def _update_budget_procurement_details(svc, data):
    actor = _acting_user(svc, data, "actor")
    budget_id = _require(data, "budgetId")
    svc.update_budget_procurement_details(
        budget_id,
        actor,
        company_profile_id=data.get("companyProfileId"),
        delivery_address=data.get("deliveryAddress"),
    )
    return {"success": True, "budgetId": budget_id}


def _generate_purchase_orders(svc, data):
    result = svc.generate_purchase_orders(_acting_user(svc, data, "actor"))
    return _wire(result.purchase_orders)


ACTIONS: dict[str, Callable[[BudgetWorkflowService, dict], object]] = {
    "getBudgetRequests":              _get_budget_requests,
    "getPendingApprovals":            _get_pending_approvals,
    "submitBudget":                   _submit_budget,
    "approveBudget":                  _approve_budget,
    "rejectBudget":                   _reject_budget,
    "updateProcurementStatus":        _update_procurement_status,
    "updateBudgetProcurementDetails": _update_budget_procurement_details,
    "generatePurchaseOrders":         _generate_purchase_orders,
    "getPurchaseOrders":              lambda svc, data: _wire(svc.get_purchase_orders()),
    "getCompanyProfiles":             lambda svc, data: _wire(svc.get_company_profiles()),
    "getDeliveryAddresses":           lambda svc, data: _wire(svc.get_delivery_addresses()),
    "getVendors":                     lambda svc, data: _wire(svc.get_vendors()),
    "getProducts":                    lambda svc, data: _wire(svc.get_products()),
    "getUsers":                       lambda svc, data: _wire(svc.get_users()),
}


# ── Routes ───────────────────────────────────────────────────────────────────

@app.post("/api", response_model=Envelope, response_model_exclude_none=True)
def dispatch(req: ActionRequest) -> Envelope:
    handler = ACTIONS.get(req.action)
    if handler is None:
        return Envelope(
            status="error",
            message=f"Unknown action: {req.action}",
            errorType="ValidationError",
        )

    try:
        data = handler(get_service(), req.data)
    except WorkflowError as exc:
        logger.warning("Action %s failed: %s", req.action, exc)
        return Envelope(status="error", message=str(exc), errorType=type(exc).__name__)
    except PydanticValidationError as exc:
        logger.warning("Action %s rejected malformed payload: %s", req.action, exc)
        return Envelope(
            status="error",
            message=f"Malformed payload: {exc.errors()[0].get('msg')}",
            errorType="ValidationError",
        )
    except Exception:
        logger.exception("Action %s crashed", req.action)
        return Envelope(status="error", message="Internal server error")

    return Envelope(status="success", data=data)


@app.get("/api/health")
def health():
    svc = get_service()
    return {
        "status":    "ok",
        "db_path":   str(svc.config.db_path),
        "db_exists": Path(svc.config.db_path).exists(),
    }


@app.get("/api/stats")
def stats():
    return get_service().db.get_stats()


@app.get("/api/purchase-orders/{po_id}/export")
def export_purchase_order(po_id: str):
    svc = get_service()
    po = svc.db.get_purchase_order(po_id)
    if po is None:
        raise HTTPException(status_code=404, detail=f"Purchase order not found: {po_id}")

    vendor = svc.db.get_master("vendors", po.vendor_id)
    company = svc.db.get_master("company_profiles", po.company_profile_id)
    template = Path(svc.config.export_template) if svc.config.export_template else None
    xml = render_po_xml(
        build_export_payload(po, vendor, company),
        template_file=template,
        currency_symbol=svc.config.currency_symbol,
    )
    return Response(content=xml, media_type="application/xml")
