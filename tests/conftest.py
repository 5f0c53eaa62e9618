"""
Pytest configuration and shared fixtures for the budget workflow test suite.
"""
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
os.chdir(PROJECT_ROOT)

from models.budget import BudgetItem, BudgetRequest, BudgetStatus, ProcurementStatus  # noqa: E402
from models.master_data import CompanyProfile, DeliveryAddress, Product, Vendor  # noqa: E402
from models.user import Role, User  # noqa: E402


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for test files."""
    tmp_path = tempfile.mkdtemp(prefix="budget_test_")
    yield Path(tmp_path)
    shutil.rmtree(tmp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path, monkeypatch) -> "Config":
    """Provide a test configuration with isolated directories."""
    # Keep a developer's config/workflow_settings.json out of the tests
    monkeypatch.setenv("CONFIG_DIR", str(temp_dir / "config"))
    monkeypatch.delenv("ESCALATION_THRESHOLD", raising=False)
    monkeypatch.delenv("REPORT_TIMEZONE", raising=False)
    from config import Config

    config = Config()
    config.output_dir = temp_dir / "output"
    config.db_path = temp_dir / "output" / "budget.db"
    config.export_dir = temp_dir / "output" / "export"
    config.data_dir = temp_dir / "data"
    config.escalation_threshold = 5_000_000
    config.ensure_output_dir()
    config.data_dir.mkdir(parents=True, exist_ok=True)
    return config


# ---------------------------------------------------------------------------
# Master data
# ---------------------------------------------------------------------------

@pytest.fixture
def users() -> dict[str, User]:
    return {
        "user": User(id="user-1", name="Budi Hartono", email="user@budget.com",
                     role=Role.USER, department="Marketing",
                     manager_id="manager-1", bod_id="bod-1"),
        "user2": User(id="user-2", name="Eko Widodo", email="user2@budget.com",
                      role=Role.USER, department="Sales",
                      manager_id="manager-2", bod_id="bod-1"),
        "manager": User(id="manager-1", name="Citra Kirana", email="manager@budget.com",
                        role=Role.MANAGER, department="Marketing", bod_id="bod-1"),
        "manager2": User(id="manager-2", name="Fajar Nugroho", email="manager2@budget.com",
                         role=Role.MANAGER, department="Sales", bod_id="bod-1"),
        "bod": User(id="bod-1", name="Dewi Lestari", email="bod@budget.com",
                    role=Role.BOD, department="Head Office"),
        "admin": User(id="admin-1", name="Admin Utama", email="admin@budget.com",
                      role=Role.ADMIN, department="IT"),
    }


@pytest.fixture
def vendors() -> list[Vendor]:
    return [
        Vendor(vendor_id="vendor-1", vendor_name="CV Sinar Jaya ATK",
               vendor_address="Jl. Mangga Dua Raya 12, Jakarta", term_of_payment="Net 30"),
        Vendor(vendor_id="vendor-2", vendor_name="PT Tinta Nusantara"),
    ]


@pytest.fixture
def products() -> list[Product]:
    return [
        Product(id="prod-001", name="Kertas HVS A4 70gr", unit="Rim", price=45000, vendor_id="vendor-1"),
        Product(id="prod-002", name="Pulpen Standard AE7", unit="Lusin", price=25000, vendor_id="vendor-1"),
        Product(id="prod-003", name="Tinta Printer Epson 003 Black", unit="Botol", price=80000, vendor_id="vendor-2"),
        Product(id="prod-004", name="Proyektor Epson EB-X500", unit="Unit", price=6_000_000, vendor_id="vendor-2"),
        Product(id="prod-099", name="Barang Tanpa Vendor", unit="Pcs", price=1000, vendor_id="vendor-missing"),
    ]


@pytest.fixture
def company_profiles() -> list[CompanyProfile]:
    return [CompanyProfile(profile_id="comp-1", company_name="PT Anggaran Sejahtera",
                           company_address="Jl. Jend. Sudirman Kav. 21, Jakarta",
                           npwp="01.234.567.8-901.000")]


@pytest.fixture
def delivery_addresses() -> list[DeliveryAddress]:
    return [DeliveryAddress(address_id="addr-1", address_label="Head Office",
                            full_address="Jl. Jend. Sudirman Kav. 21, Jakarta 12920")]


@pytest.fixture
def catalog(products) -> dict[str, Product]:
    return {p.id: p for p in products}


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

@pytest.fixture
def make_request(catalog):
    """
    Factory for BudgetRequest records in any state.

        make_request("BR-1", {"prod-001": 3}, status=BudgetStatus.APPROVED, ...)
    """
    def _make(
        request_id: str,
        quantities: dict[str, int],
        status: BudgetStatus = BudgetStatus.PENDING_MANAGER_APPROVAL,
        procurement_status: ProcurementStatus | None = None,
        department: str = "Marketing",
        user_id: str = "user-1",
        user_name: str = "Budi Hartono",
        submitted_at: datetime | None = None,
        company: str | None = None,
        address: str | None = None,
        **extra,
    ) -> BudgetRequest:
        items = [BudgetItem.from_product(catalog[pid], qty) for pid, qty in quantities.items()]
        if status == BudgetStatus.APPROVED and procurement_status is None:
            procurement_status = ProcurementStatus.PENDING
        if status == BudgetStatus.REJECTED:
            extra.setdefault("rejected_reason", "Not needed")
        return BudgetRequest(
            id=request_id,
            user_id=user_id,
            user_name=user_name,
            department=department,
            items=items,
            status=status,
            procurement_status=procurement_status,
            submitted_at=submitted_at or datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc),
            manager_approver_id="manager-1",
            bod_approver_id="bod-1",
            assigned_company_profile_id=company,
            assigned_delivery_address=address,
            **extra,
        )
    return _make


# ---------------------------------------------------------------------------
# Database / service
# ---------------------------------------------------------------------------

@pytest.fixture
def test_db(test_config) -> "Database":
    """Provide an empty test database instance."""
    from workflow.database import Database
    return Database(test_config.db_path)


@pytest.fixture
def seeded_db(test_db, users, vendors, products, company_profiles, delivery_addresses):
    """Test database loaded with the master data fixtures."""
    for user in users.values():
        test_db.upsert_master("users", user)
    for vendor in vendors:
        test_db.upsert_master("vendors", vendor)
    for product in products:
        test_db.upsert_master("products", product)
    for profile in company_profiles:
        test_db.upsert_master("company_profiles", profile)
    for address in delivery_addresses:
        test_db.upsert_master("delivery_addresses", address)
    return test_db


@pytest.fixture
def service(test_config, seeded_db) -> "BudgetWorkflowService":
    from workflow.service import BudgetWorkflowService
    return BudgetWorkflowService(test_config, db=seeded_db)


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    """A minimal PDF document."""
    return b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF"


# Configure pytest markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "api: API tests")
