#!/usr/bin/env python3
"""
Budget Workflow — CLI entry point.

Usage examples:
  python main.py init                                 # Restore settings and seed CSVs
  python main.py import-data                          # Load master data CSVs from data/
  python main.py products kertas                       # Search the product catalog
  python main.py submit user-1 -i prod-001=3 -i prod-003=2
  python main.py pending --as manager-1               # Requests awaiting a decision
  python main.py approve BR-1A2B3C4D --as manager-1
  python main.py reject BR-1A2B3C4D --as bod-1 --reason "Over budget"

  python main.py procurement assign BR-1A2B3C4D --company comp-1 --address "Jl. Sudirman 1" --as admin-1
  python main.py procurement status BR-1A2B3C4D IN_PROGRESS --as admin-1
  python main.py generate-pos --as admin-1
  python main.py export-po PO-20240105-ABC123 -o po.xml
  python main.py fetch-pdf PO-20240105-ABC123        # Download via the remote PDF service

  python main.py report --as admin-1 --year 2024 --department Sales
  python main.py serve --port 8000                    # Run the backend API
"""
import asyncio
import logging
import sys
from pathlib import Path

import click

from config import Config
from models.budget import BudgetStatus, ProcurementStatus
from models.report import ReportFilter
from workflow import approval
from workflow.api_client import ApiClient
from workflow.catalog import build_items, import_master_data, search_products
from workflow.errors import WorkflowError
from workflow.formatting import format_currency
from workflow.pdf import save_pdf
from workflow.service import BudgetWorkflowService


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quieten noisy third-party loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _service() -> BudgetWorkflowService:
    config = Config()
    config.ensure_output_dir()
    return BudgetWorkflowService(config)


def _fail(exc: WorkflowError) -> None:
    click.echo(f"✗ {exc}", err=True)
    sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Budget Workflow — submit, approve, procure and order."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _setup_logging(verbose)


# --------------------------------------------------------------------
# master data
# --------------------------------------------------------------------

@cli.command()
def init() -> None:
    """Restore missing settings and seed CSVs from defaults/."""
    from bootstrap import ensure_config_files

    restored = ensure_config_files()
    click.echo(f"✓ {len(restored)} file(s) restored" if restored else "✓ Nothing to restore")


@cli.command("import-data")
@click.option("--data-dir", default=None, type=click.Path(file_okay=False), help="Directory of master data CSVs")
def import_data(data_dir: str | None) -> None:
    """Load users, vendors, products, companies and addresses from CSV."""
    svc = _service()
    source = Path(data_dir) if data_dir else svc.config.data_dir
    counts = import_master_data(svc.db, source)
    click.echo(f"\n=== Master data imported from {source} ===\n")
    for table, count in counts.items():
        click.echo(f"  {table:<22} {count}")
    click.echo()


@cli.command()
@click.argument("term", required=False, default="")
def products(term: str) -> None:
    """Search the product catalog by name."""
    svc = _service()
    symbol = svc.config.currency_symbol
    hits = search_products(svc.get_products(), term)
    if not hits:
        click.echo("No products found.")
        return
    for p in hits:
        click.echo(f"  {p.id:<12} {p.name:<40} {format_currency(p.price, symbol):>14} / {p.unit}")


# --------------------------------------------------------------------
# approval workflow
# --------------------------------------------------------------------

@cli.command()
@click.argument("user_id")
@click.option("--item", "-i", "item_specs", multiple=True, required=True,
              help="PRODUCT_ID=QTY (repeatable)")
def submit(user_id: str, item_specs: tuple[str, ...]) -> None:
    """Submit a budget request on behalf of USER_ID."""
    svc = _service()
    quantities: dict[str, int] = {}
    for spec in item_specs:
        pid, sep, qty = spec.partition("=")
        if not sep or not qty.strip().isdigit():
            raise click.BadParameter(f"Expected PRODUCT_ID=QTY, got {spec!r}", param_hint="--item")
        quantities[pid.strip()] = quantities.get(pid.strip(), 0) + int(qty)

    try:
        user = svc.get_user(user_id)
        req = svc.submit_budget(user, build_items(svc.get_products(), quantities))
    except WorkflowError as exc:
        _fail(exc)

    click.echo(f"✓ Submitted {req.id}: {len(req.items)} item(s), "
               f"total {format_currency(req.total, svc.config.currency_symbol)}")
    click.echo(f"  Awaiting approval from manager {req.manager_approver_id or '(none)'}")


@cli.command()
@click.option("--as", "user_id", required=True, help="Approver user id")
def pending(user_id: str) -> None:
    """List requests awaiting a decision by the given approver."""
    svc = _service()
    try:
        requests = svc.get_pending_approvals(svc.get_user(user_id))
    except WorkflowError as exc:
        _fail(exc)

    if not requests:
        click.echo("No pending approvals at the moment.")
        return
    symbol = svc.config.currency_symbol
    for r in requests:
        flag = "  → BOD" if approval.escalates(r, svc.config.escalation_threshold) else ""
        click.echo(f"  {r.id}  {r.user_name:<20} {r.department:<12} "
                   f"{format_currency(r.total, symbol):>16}{flag}")


@cli.command()
@click.argument("budget_id")
@click.option("--as", "user_id", required=True, help="Approver user id")
def approve(budget_id: str, user_id: str) -> None:
    """Approve BUDGET_ID (escalates to BOD above the threshold)."""
    svc = _service()
    try:
        req = svc.approve_budget(budget_id, svc.get_user(user_id))
    except WorkflowError as exc:
        _fail(exc)

    if req.status == BudgetStatus.PENDING_BOD_APPROVAL:
        click.echo(f"✓ {req.id} approved; total exceeds "
                   f"{format_currency(svc.config.escalation_threshold, svc.config.currency_symbol)}"
                   f" — escalated to BOD {req.bod_approver_id} for final approval")
    else:
        click.echo(f"✓ {req.id} approved — forwarded to procurement")


@cli.command()
@click.argument("budget_id")
@click.option("--as", "user_id", required=True, help="Approver user id")
@click.option("--reason", "-r", required=True, help="Rejection reason")
def reject(budget_id: str, user_id: str, reason: str) -> None:
    """Reject BUDGET_ID with a reason."""
    svc = _service()
    try:
        req = svc.reject_budget(budget_id, svc.get_user(user_id), reason)
    except WorkflowError as exc:
        _fail(exc)
    click.echo(f"✓ {req.id} rejected: {req.rejected_reason}")


# --------------------------------------------------------------------
# procurement
# --------------------------------------------------------------------

@cli.group()
def procurement() -> None:
    """Track procurement of approved requests."""


@procurement.command("list")
@click.option("--status", type=click.Choice([s.name for s in ProcurementStatus]), default=None)
def procurement_list(status: str | None) -> None:
    """List approved requests and their procurement state."""
    from workflow.procurement import procurement_queue

    svc = _service()
    queue = procurement_queue(
        svc.db.list_budget_requests(BudgetStatus.APPROVED),
        ProcurementStatus[status] if status else None,
    )
    if not queue:
        click.echo("No approved requests match the current filters.")
        return
    for r in queue:
        click.echo(
            f"  {r.id}  {r.effective_procurement_status.value:<20} "
            f"company={r.assigned_company_profile_id or '-':<10} "
            f"address={r.assigned_delivery_address or '-'}"
            f"{'  [PO]' if r.po_generated else ''}"
        )


@procurement.command("status")
@click.argument("budget_id")
@click.argument("status", type=click.Choice([s.name for s in ProcurementStatus]))
@click.option("--as", "user_id", required=True, help="Admin user id")
def procurement_status(budget_id: str, status: str, user_id: str) -> None:
    """Set the procurement status of BUDGET_ID."""
    svc = _service()
    try:
        req = svc.update_procurement_status(
            budget_id, ProcurementStatus[status], svc.get_user(user_id),
        )
    except WorkflowError as exc:
        _fail(exc)
    click.echo(f"✓ {req.id}: {req.effective_procurement_status.value}")


@procurement.command("assign")
@click.argument("budget_id")
@click.option("--company", default=None, help="Company profile id")
@click.option("--address", default=None, help="Delivery address text")
@click.option("--as", "user_id", required=True, help="Admin user id")
def procurement_assign(budget_id: str, company: str | None, address: str | None, user_id: str) -> None:
    """Assign company profile and/or delivery address (Pending only)."""
    if company is None and address is None:
        raise click.UsageError("Give --company and/or --address")
    svc = _service()
    try:
        req = svc.update_budget_procurement_details(
            budget_id, svc.get_user(user_id),
            company_profile_id=company, delivery_address=address,
        )
    except WorkflowError as exc:
        _fail(exc)
    click.echo(f"✓ {req.id}: company={req.assigned_company_profile_id or '-'} "
               f"address={req.assigned_delivery_address or '-'}")


# --------------------------------------------------------------------
# purchase orders
# --------------------------------------------------------------------

@cli.command("generate-pos")
@click.option("--as", "user_id", required=True, help="Admin user id")
def generate_pos(user_id: str) -> None:
    """Generate purchase orders from every eligible request."""
    svc = _service()
    try:
        result = svc.generate_purchase_orders(svc.get_user(user_id))
    except WorkflowError as exc:
        _fail(exc)

    for problem in result.skipped:
        click.echo(f"  ⚠ {problem}", err=True)
    if result.nothing_eligible:
        click.echo("No new Purchase Orders were generated. Ensure requests are set to "
                   "\"In Progress\" with an assigned company and address.")
        return

    symbol = svc.config.currency_symbol
    click.echo(f"✓ {len(result.purchase_orders)} new Purchase Order(s) generated:\n")
    for po in result.purchase_orders:
        click.echo(f"  {po.po_id}  {po.vendor_name:<24} {format_currency(po.total_amount, symbol):>16}"
                   f"  ({', '.join(po.related_budget_ids)})")


@cli.command("list-pos")
def list_pos() -> None:
    """List purchase orders, newest first."""
    svc = _service()
    pos = svc.get_purchase_orders()
    if not pos:
        click.echo("No purchase orders yet.")
        return
    symbol = svc.config.currency_symbol
    for po in pos:
        click.echo(f"  {po.po_id}  {po.date_issued:%Y-%m-%d}  {po.vendor_name:<24} "
                   f"{format_currency(po.total_amount, symbol):>16}  {len(po.items)} line(s)")


@cli.command("export-po")
@click.argument("po_id")
@click.option("--output", "-o", default=None, type=click.Path(dir_okay=False), help="Output file")
def export_po(po_id: str, output: str | None) -> None:
    """Render PO_ID as XML."""
    from dashboard.services.export import build_export_payload, render_po_xml

    svc = _service()
    try:
        po = svc.get_purchase_order(po_id)
    except WorkflowError as exc:
        _fail(exc)

    template = Path(svc.config.export_template) if svc.config.export_template else None
    xml = render_po_xml(
        build_export_payload(
            po,
            svc.db.get_master("vendors", po.vendor_id),
            svc.db.get_master("company_profiles", po.company_profile_id),
        ),
        template_file=template,
        currency_symbol=svc.config.currency_symbol,
    )
    out_path = Path(output) if output else svc.config.export_dir / f"{po_id}.xml"
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(xml, encoding="utf-8")
    click.echo(f"✓ Exported {po_id} → {out_path}")


@cli.command("fetch-pdf")
@click.argument("po_id")
@click.option("--api-url", default=None, help="PDF service URL (default: PDF_SERVICE_URL, then API_BASE_URL)")
def fetch_pdf(po_id: str, api_url: str | None) -> None:
    """Download the rendered PDF of PO_ID from the remote PDF service."""
    config = Config()
    pdf_url = api_url or config.pdf_service_url

    async def _fetch() -> bytes:
        async with ApiClient(
            config.api_base_url, config.api_timeout_seconds, pdf_service_url=pdf_url,
        ) as api:
            return await api.create_po_pdf(po_id)

    try:
        pdf_bytes = asyncio.run(_fetch())
    except WorkflowError as exc:
        _fail(exc)
    path = save_pdf(po_id, pdf_bytes, config.export_dir)
    click.echo(f"✓ Saved {path}")


# --------------------------------------------------------------------
# reports
# --------------------------------------------------------------------

@cli.command()
@click.option("--as", "user_id", required=True, help="Manager, BOD or admin user id")
@click.option("--month", type=click.IntRange(1, 12), default=None)
@click.option("--year", type=int, default=None)
@click.option("--department", default=None)
def report(user_id: str, month: int | None, year: int | None, department: str | None) -> None:
    """Budget and procurement report over the requests visible to the user."""
    svc = _service()
    filt = ReportFilter(
        month=month, year=year, department=department,
        timezone=svc.config.report_timezone,
    )
    try:
        data = svc.build_report(svc.get_user(user_id), filt)
    except WorkflowError as exc:
        _fail(exc)

    symbol = svc.config.currency_symbol
    s = data["summary"]
    p = data["procurement"]
    click.echo("\n=== Budget Report ===\n")
    click.echo(f"  Total requests:   {s['total_requests']}")
    click.echo(f"  Pending:          {s['pending']}")
    click.echo(f"  Approved:         {s['approved']}")
    click.echo(f"  Rejected:         {s['rejected']}")
    click.echo(f"  Approved amount:  {format_currency(data['total_approved_amount'], symbol)}")
    click.echo(f"\n  Procurement:  pending {p['pending']} · in progress {p['in_progress']}"
               f" · procured {p['procured']}\n")
    if not data["departments"]:
        click.echo("  No data found for the selected filters.\n")
        return
    for row in data["departments"]:
        click.echo(f"  {row['department']:<16} {row['month_name']:<10} {row['year']}  "
                   f"{row['total_requests']:>4} req  "
                   f"{format_currency(row['total_approved_amount'], symbol):>18}")
    click.echo()


# --------------------------------------------------------------------
# serve command
# --------------------------------------------------------------------

@cli.command()
@click.option("--host", default="0.0.0.0")
@click.option("--port", default=8000, type=int)
def serve(host: str, port: int) -> None:
    """Run the backend API (FastAPI via uvicorn)."""
    import uvicorn
    from dashboard.app import app

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    cli()
