"""
Async client for the budget backend's action-dispatch API.

Every call is a POST of ``{"action": ..., "data": {...}}`` to one URL; the
backend answers with an envelope:

    {"status": "success", "data": ...}
    {"status": "error",   "message": "...", "errorType": "InvalidStateError"}

Transport failures, non-2xx responses, malformed JSON and error envelopes all
raise. Calls are never retried; cancel them with the usual asyncio
cancellation.  Records are parsed into models here so callers never see the
raw wire form (e.g. items stored as a JSON string).
"""
import logging
from typing import Any, Optional

import httpx

from models.budget import BudgetItem, BudgetRequest, ProcurementStatus
from models.master_data import CompanyProfile, DeliveryAddress, Product, Vendor
from models.purchase_order import PurchaseOrder
from models.user import User
from . import errors
from .errors import ExternalServiceError
from .pdf import decode_pdf_payload

logger = logging.getLogger(__name__)

# Domain errors the backend may report by name; anything else is external
_ERROR_TYPES = {
    cls.__name__: cls
    for cls in (
        errors.ValidationError,
        errors.NotFoundError,
        errors.AuthorizationError,
        errors.InvalidStateError,
        errors.DataIntegrityError,
    )
}


class ApiClient:
    """
    Usage:
        async with ApiClient("http://localhost:8000/api") as api:
            pending = await api.get_pending_approvals(manager)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        pdf_service_url: Optional[str] = None,
    ) -> None:
        self.base_url = base_url
        # PDF rendering may live behind a separate endpoint
        self.pdf_service_url = pdf_service_url or base_url
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
            headers={"User-Agent": "Budget-Workflow-Client/1.0"},
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def call(self, action: str, data: Optional[dict] = None, url: Optional[str] = None) -> Any:
        """Dispatch one action and return the envelope's data payload."""
        payload: dict = {"action": action}
        if data:
            payload["data"] = data

        try:
            response = await self._client.post(url or self.base_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error("API call %s failed: HTTP %d", action, exc.response.status_code)
            raise ExternalServiceError(
                f"Backend returned HTTP {exc.response.status_code} for {action}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("API call %s failed: %s", action, exc)
            raise ExternalServiceError(f"Backend unreachable for {action}: {exc}") from exc

        try:
            envelope = response.json()
        except ValueError as exc:
            raise ExternalServiceError(f"Backend sent malformed JSON for {action}") from exc

        if not isinstance(envelope, dict) or envelope.get("status") not in ("success", "error"):
            raise ExternalServiceError(f"Backend sent an unexpected response for {action}")

        if envelope["status"] == "error":
            message = envelope.get("message") or "An unknown backend error occurred."
            logger.error("Backend error for action %r: %s", action, message)
            error_cls = _ERROR_TYPES.get(envelope.get("errorType"), ExternalServiceError)
            raise error_cls(message)

        return envelope.get("data")

    @staticmethod
    def _parse_list(model, data: Any) -> list:
        if data is None:
            return []
        if not isinstance(data, list):
            raise ExternalServiceError(f"Expected a list of {model.__name__}, got {type(data).__name__}")
        try:
            return [model.model_validate(item) for item in data]
        except ValueError as exc:
            raise ExternalServiceError(f"Malformed {model.__name__} record: {exc}") from exc

    @staticmethod
    def _parse_one(model, data: Any):
        try:
            return model.model_validate(data)
        except ValueError as exc:
            raise ExternalServiceError(f"Malformed {model.__name__} record: {exc}") from exc

    # ------------------------------------------------------------------
    # Budget requests
    # ------------------------------------------------------------------

    async def get_budget_requests(self, user: User) -> list[BudgetRequest]:
        data = await self.call("getBudgetRequests", {"user": user.to_wire()})
        return self._parse_list(BudgetRequest, data)

    async def get_pending_approvals(self, user: User) -> list[BudgetRequest]:
        data = await self.call("getPendingApprovals", {"user": user.to_wire()})
        return self._parse_list(BudgetRequest, data)

    async def submit_budget(self, user: User, items: list[BudgetItem]) -> BudgetRequest:
        to_submit = [item for item in items if item.qty > 0]
        data = await self.call("submitBudget", {
            "userId": user.id,
            "userName": user.name,
            "department": user.department,
            "items": [item.to_wire() for item in to_submit],
            "total": sum(item.total for item in to_submit),
            "managerApproverId": user.manager_id,
            "bodApproverId": user.bod_id,
        })
        return self._parse_one(BudgetRequest, data)

    async def approve_budget(self, budget_id: str, approver: User) -> BudgetRequest:
        data = await self.call("approveBudget", {
            "budgetId": budget_id, "approver": approver.to_wire(),
        })
        return self._parse_one(BudgetRequest, data)

    async def reject_budget(self, budget_id: str, approver: User, reason: str) -> BudgetRequest:
        data = await self.call("rejectBudget", {
            "budgetId": budget_id, "approver": approver.to_wire(), "reason": reason,
        })
        return self._parse_one(BudgetRequest, data)

    # ------------------------------------------------------------------
    # Procurement & purchase orders
    # ------------------------------------------------------------------

    async def update_procurement_status(
        self, budget_id: str, status: ProcurementStatus, actor: User,
    ) -> BudgetRequest:
        data = await self.call("updateProcurementStatus", {
            "budgetId": budget_id,
            "status": ProcurementStatus(status).value,
            "actor": actor.to_wire(),
        })
        return self._parse_one(BudgetRequest, data)

    async def update_budget_procurement_details(
        self,
        budget_id: str,
        actor: User,
        company_profile_id: Optional[str] = None,
        delivery_address: Optional[str] = None,
    ) -> dict:
        details: dict = {"budgetId": budget_id, "actor": actor.to_wire()}
        if company_profile_id is not None:
            details["companyProfileId"] = company_profile_id
        if delivery_address is not None:
            details["deliveryAddress"] = delivery_address
        return await self.call("updateBudgetProcurementDetails", details)

    async def generate_purchase_orders(self, actor: User) -> list[PurchaseOrder]:
        data = await self.call("generatePurchaseOrders", {"actor": actor.to_wire()})
        return self._parse_list(PurchaseOrder, data)

    async def get_purchase_orders(self) -> list[PurchaseOrder]:
        return self._parse_list(PurchaseOrder, await self.call("getPurchaseOrders"))

    async def create_po_pdf(self, po_id: str) -> bytes:
        """
        Ask the PDF service to render *po_id*; returns the PDF bytes.

        Any failure of the renderer, including an error envelope such as
        "Unknown action", is an ExternalServiceError.
        """
        try:
            payload = await self.call("createPoPdf", {"poId": po_id}, url=self.pdf_service_url)
        except ExternalServiceError:
            raise
        except errors.WorkflowError as exc:
            raise ExternalServiceError(f"PDF service failed for {po_id}: {exc}") from exc
        return decode_pdf_payload(payload)

    # ------------------------------------------------------------------
    # Master data
    # ------------------------------------------------------------------

    async def get_users(self) -> list[User]:
        return self._parse_list(User, await self.call("getUsers"))

    async def get_products(self) -> list[Product]:
        return self._parse_list(Product, await self.call("getProducts"))

    async def get_vendors(self) -> list[Vendor]:
        return self._parse_list(Vendor, await self.call("getVendors"))

    async def get_company_profiles(self) -> list[CompanyProfile]:
        return self._parse_list(CompanyProfile, await self.call("getCompanyProfiles"))

    async def get_delivery_addresses(self) -> list[DeliveryAddress]:
        return self._parse_list(DeliveryAddress, await self.call("getDeliveryAddresses"))
