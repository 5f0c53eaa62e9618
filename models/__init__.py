from .user import Role, User
from .master_data import CompanyProfile, DeliveryAddress, Product, Vendor
from .budget import BudgetItem, BudgetRequest, BudgetStatus, ProcurementStatus
from .purchase_order import PurchaseOrder
from .report import ApprovalSummary, DepartmentReport, ProcurementStats, ReportFilter

__all__ = [
    "Role", "User",
    "CompanyProfile", "DeliveryAddress", "Product", "Vendor",
    "BudgetItem", "BudgetRequest", "BudgetStatus", "ProcurementStatus",
    "PurchaseOrder",
    "ApprovalSummary", "DepartmentReport", "ProcurementStats", "ReportFilter",
]
