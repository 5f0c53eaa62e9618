"""
Read-only report rollups over budget requests.

Everything here is recomputed from the list it is given; nothing is stored.
Submission times are converted to the filter's local timezone before they
are bucketed by month and year.
"""
import calendar
from datetime import datetime, timezone, tzinfo
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from models.budget import BudgetRequest, BudgetStatus, ProcurementStatus
from models.report import (
    DEFAULT_REPORT_TIMEZONE,
    ApprovalSummary,
    DepartmentReport,
    ProcurementStats,
    ReportFilter,
)

MONTH_NAMES = list(calendar.month_name)[1:]


def local_submitted_at(req: BudgetRequest, tz: tzinfo) -> Optional[datetime]:
    if req.submitted_at is None:
        return None
    ts = req.submitted_at
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(tz)


def _matches(req: BudgetRequest, filt: ReportFilter) -> bool:
    if filt.month is not None or filt.year is not None:
        submitted = local_submitted_at(req, filt.tz)
        if submitted is None:
            return False
        if filt.month is not None and submitted.month != filt.month:
            return False
        if filt.year is not None and submitted.year != filt.year:
            return False
    if filt.department is not None and req.department != filt.department:
        return False
    if filt.submitted_by is not None and req.user_name != filt.submitted_by:
        return False
    if filt.status is not None and req.status != filt.status:
        return False
    return True


def filter_requests(
    requests: Iterable[BudgetRequest],
    filt: Optional[ReportFilter] = None,
) -> list[BudgetRequest]:
    filt = filt or ReportFilter()
    return [r for r in requests if _matches(r, filt)]


def department_reports(
    requests: Iterable[BudgetRequest],
    filt: Optional[ReportFilter] = None,
) -> list[DepartmentReport]:
    """
    One row per (department, year, month) of submission.

    total_requests counts every request; total_approved_amount only sums
    APPROVED ones.  Rows are ordered by approved amount, largest first.
    """
    filt = filt or ReportFilter()
    rows: dict[tuple[str, int, int], DepartmentReport] = {}
    for req in filter_requests(requests, filt):
        submitted = local_submitted_at(req, filt.tz)
        if submitted is None:
            continue
        key = (req.department, submitted.year, submitted.month)
        row = rows.get(key)
        if row is None:
            row = rows[key] = DepartmentReport(
                department=req.department,
                year=submitted.year,
                month=submitted.month,
                month_name=MONTH_NAMES[submitted.month - 1],
            )
        row.total_requests += 1
        if req.status == BudgetStatus.APPROVED:
            row.total_approved_amount += req.total

    return sorted(rows.values(), key=lambda r: r.total_approved_amount, reverse=True)


def procurement_stats(
    requests: Iterable[BudgetRequest],
    filt: Optional[ReportFilter] = None,
) -> ProcurementStats:
    stats = ProcurementStats()
    for req in filter_requests(requests, filt):
        if req.status != BudgetStatus.APPROVED:
            continue
        status = req.effective_procurement_status
        if status == ProcurementStatus.PENDING:
            stats.pending += 1
        elif status == ProcurementStatus.IN_PROGRESS:
            stats.in_progress += 1
        elif status == ProcurementStatus.PROCURED:
            stats.procured += 1
    return stats


def approved_total(
    requests: Iterable[BudgetRequest],
    filt: Optional[ReportFilter] = None,
) -> float:
    return sum(
        r.total for r in filter_requests(requests, filt)
        if r.status == BudgetStatus.APPROVED
    )


def approval_summary(
    requests: Iterable[BudgetRequest],
    filt: Optional[ReportFilter] = None,
) -> ApprovalSummary:
    """Headline counts for the approver's report page."""
    selected = filter_requests(requests, filt)
    return ApprovalSummary(
        total_requests=len(selected),
        pending=sum(1 for r in selected if r.status.is_pending),
        approved=sum(1 for r in selected if r.status == BudgetStatus.APPROVED),
        rejected=sum(1 for r in selected if r.status == BudgetStatus.REJECTED),
        total_approved_amount=approved_total(selected),
    )


def available_periods(
    requests: Iterable[BudgetRequest],
    timezone_name: str = DEFAULT_REPORT_TIMEZONE,
) -> dict:
    """Years (newest first) and departments present, for filter drop-downs."""
    requests = list(requests)
    tz = ZoneInfo(timezone_name)
    years = {
        submitted.year for submitted in (local_submitted_at(r, tz) for r in requests)
        if submitted is not None
    }
    departments = {r.department for r in requests if r.department}
    return {
        "years": sorted(years, reverse=True),
        "departments": sorted(departments),
    }
