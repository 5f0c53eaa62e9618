from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from .budget import BudgetStatus

# Requests are stored in UTC; reports bucket them by this local calendar
DEFAULT_REPORT_TIMEZONE = "Asia/Jakarta"


class ReportFilter(BaseModel):
    """
    Optional filters shared by every report.  ``None`` means "all".
    month is 1-12, matched against the submission date in ``timezone``.
    """
    month: Optional[int] = Field(default=None, ge=1, le=12)
    year: Optional[int] = None
    department: Optional[str] = None
    submitted_by: Optional[str] = None      # submitter display name
    status: Optional[BudgetStatus] = None
    timezone: str = DEFAULT_REPORT_TIMEZONE

    @field_validator("timezone")
    @classmethod
    def _known_zone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}") from None
        return v

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class DepartmentReport(BaseModel):
    """One (department, year, month) row of the budget report."""
    department: str
    year: int
    month: int
    month_name: str
    total_requests: int = 0
    total_approved_amount: float = 0.0


class ProcurementStats(BaseModel):
    """Procurement pipeline counts over APPROVED requests."""
    pending: int = 0
    in_progress: int = 0
    procured: int = 0


class ApprovalSummary(BaseModel):
    total_requests: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    total_approved_amount: float = 0.0
