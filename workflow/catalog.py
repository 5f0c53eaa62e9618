"""
Master data loading and product catalog search.

CSV files in the data directory seed the database:

  users.csv               id, name, email, role, department, manager_id, bod_id, password
  vendors.csv             vendor_id, vendor_name, vendor_address, vendor_contact, term_of_payment
  products.csv            id, name, image_url, unit, price, vendor_id
  company_profiles.csv    profile_id, company_name, company_address, npwp
  delivery_addresses.csv  address_id, address_label, full_address

Product search is what the request form uses: a case-insensitive substring
match, falling back to fuzzy matching (rapidfuzz) for typos.
"""
import csv
import logging
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError as PydanticValidationError
from rapidfuzz import fuzz

from models.budget import BudgetItem
from models.master_data import CompanyProfile, DeliveryAddress, Product, Vendor
from models.user import User
from .database import Database
from .errors import ValidationError

logger = logging.getLogger(__name__)

# Minimum fuzzy score (0-100) for a product name to count as a search hit
FUZZY_THRESHOLD = 70

# Import order matters: products reference vendors, users reference users
MASTER_FILES = [
    ("vendors", "vendors.csv", Vendor),
    ("products", "products.csv", Product),
    ("company_profiles", "company_profiles.csv", CompanyProfile),
    ("delivery_addresses", "delivery_addresses.csv", DeliveryAddress),
    ("users", "users.csv", User),
]


def _clean_row(row: dict) -> dict:
    """Strip whitespace and drop empty cells so optional fields stay None."""
    cleaned = {}
    for key, value in row.items():
        if key is None:
            continue
        value = (value or "").strip()
        if value:
            cleaned[key.strip()] = value
    if "role" in cleaned:
        cleaned["role"] = cleaned["role"].upper()
    return cleaned


def load_csv(path: Path, model) -> list:
    """Parse one master-data CSV into model instances, skipping bad rows."""
    if not path.exists():
        logger.warning("Master data CSV not found: %s", path)
        return []

    records = []
    with open(path, newline="", encoding="utf-8") as f:
        for line_no, row in enumerate(csv.DictReader(f), start=2):
            try:
                records.append(model.model_validate(_clean_row(row)))
            except PydanticValidationError as exc:
                logger.warning(
                    "%s line %d skipped: %s",
                    path.name, line_no, exc.errors()[0].get("msg"),
                )
    logger.info("Loaded %d %s record(s) from %s", len(records), model.__name__, path.name)
    return records


def import_master_data(db: Database, data_dir: Path) -> dict[str, int]:
    """Upsert every master-data CSV found in *data_dir*. Returns counts per table."""
    counts: dict[str, int] = {}
    for table, filename, model in MASTER_FILES:
        records = load_csv(data_dir / filename, model)
        for record in records:
            db.upsert_master(table, record)
        counts[table] = len(records)

    vendor_ids = {v.vendor_id for v in db.list_vendors()}
    for product in db.list_products():
        if product.vendor_id not in vendor_ids:
            logger.warning(
                "Product %s references unknown vendor %s — it will be left out "
                "of purchase orders", product.id, product.vendor_id,
            )
    return counts


def search_products(products: Iterable[Product], term: str) -> list[Product]:
    """
    Products whose name matches *term*.

    Substring hits come first in catalog order, followed by fuzzy hits
    ranked by score.  An empty term returns the whole catalog.
    """
    products = list(products)
    term = (term or "").strip().lower()
    if not term:
        return products

    exact = [p for p in products if term in p.name.lower()]
    scored = []
    for p in products:
        if p in exact:
            continue
        score = fuzz.partial_ratio(term, p.name.lower())
        if score >= FUZZY_THRESHOLD:
            scored.append((score, p))
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return exact + [p for _, p in scored]


def build_items(products: Iterable[Product], quantities: dict[str, int]) -> list[BudgetItem]:
    """
    Turn a {product_id: qty} mapping into BudgetItem snapshots.

    Unknown product ids are rejected; zero quantities are kept and filtered
    out later by submission.
    """
    catalog = {p.id: p for p in products}
    unknown = sorted(pid for pid in quantities if pid not in catalog)
    if unknown:
        raise ValidationError(f"Unknown product id(s): {', '.join(unknown)}")
    items = []
    for pid, qty in quantities.items():
        if qty < 0:
            raise ValidationError(f"Quantity for {pid} cannot be negative")
        items.append(BudgetItem.from_product(catalog[pid], qty))
    return items
