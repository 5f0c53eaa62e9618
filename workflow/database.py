"""
SQLite persistence layer for the budget workflow.

One database file (output/budget.db) holds:

  - Master data: users, vendors, products, company profiles, delivery addresses
  - Budget requests, with their line items stored as a JSON column
  - Generated purchase orders
  - An append-only audit log of every workflow action

Writes are last-write-wins; there is no row locking beyond what SQLite does
for a single statement.  Purchase order creation and the matching
``po_generated`` flags are written in one transaction.
"""
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from models.budget import BudgetRequest, BudgetStatus
from models.master_data import CompanyProfile, DeliveryAddress, Product, Vendor
from models.purchase_order import PurchaseOrder
from models.user import User

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    email       TEXT NOT NULL,
    role        TEXT NOT NULL,
    department  TEXT NOT NULL DEFAULT '',
    manager_id  TEXT,
    bod_id      TEXT,
    password    TEXT
);

CREATE TABLE IF NOT EXISTS vendors (
    vendor_id        TEXT PRIMARY KEY,
    vendor_name      TEXT NOT NULL,
    vendor_address   TEXT NOT NULL DEFAULT '',
    vendor_contact   TEXT NOT NULL DEFAULT '',
    term_of_payment  TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS products (
    id         TEXT PRIMARY KEY,
    name       TEXT NOT NULL,
    image_url  TEXT NOT NULL DEFAULT '',
    unit       TEXT NOT NULL DEFAULT '',
    price      REAL NOT NULL,
    vendor_id  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS company_profiles (
    profile_id       TEXT PRIMARY KEY,
    company_name     TEXT NOT NULL,
    company_address  TEXT NOT NULL DEFAULT '',
    npwp             TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS delivery_addresses (
    address_id     TEXT PRIMARY KEY,
    address_label  TEXT NOT NULL,
    full_address   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS budget_requests (
    id                           TEXT PRIMARY KEY,
    user_id                      TEXT NOT NULL,
    user_name                    TEXT NOT NULL DEFAULT '',
    department                   TEXT NOT NULL DEFAULT '',

    -- BudgetItem list serialised as JSON
    items                        TEXT NOT NULL,
    total                        REAL NOT NULL DEFAULT 0,

    status                       TEXT NOT NULL,
    procurement_status           TEXT,
    submitted_at                 TEXT,
    manager_approver_id          TEXT,
    bod_approver_id              TEXT,
    approved_at                  TEXT,
    rejected_at                  TEXT,
    rejected_reason              TEXT,

    po_generated                 INTEGER NOT NULL DEFAULT 0,
    assigned_company_profile_id  TEXT,
    assigned_delivery_address    TEXT
);

CREATE INDEX IF NOT EXISTS idx_requests_status     ON budget_requests (status);
CREATE INDEX IF NOT EXISTS idx_requests_user       ON budget_requests (user_id);
CREATE INDEX IF NOT EXISTS idx_requests_submitted  ON budget_requests (submitted_at DESC);

CREATE TABLE IF NOT EXISTS purchase_orders (
    po_id               TEXT PRIMARY KEY,
    vendor_id           TEXT NOT NULL,
    vendor_name         TEXT NOT NULL DEFAULT '',
    date_issued         TEXT NOT NULL,
    items               TEXT NOT NULL,      -- aggregated BudgetItem list (JSON)
    total_amount        REAL NOT NULL,
    related_budget_ids  TEXT NOT NULL,      -- JSON list of request ids
    company_profile_id  TEXT NOT NULL,
    delivery_address    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_po_date_issued ON purchase_orders (date_issued DESC);

CREATE TABLE IF NOT EXISTS audit_log (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    record_id   TEXT    NOT NULL,   -- budget request id or PO id
    timestamp   TEXT    NOT NULL,   -- ISO-8601 UTC
    action      TEXT    NOT NULL,   -- submitted | approved | escalated | rejected |
                                    -- procurement_status_changed |
                                    -- procurement_details_updated | po_generated
    actor       TEXT    NOT NULL DEFAULT 'system',
    detail      TEXT                -- optional JSON blob with action-specific context
);

CREATE INDEX IF NOT EXISTS idx_audit_record    ON audit_log (record_id);
CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log (timestamp DESC);
"""

# table name → (model, primary key column)
_MASTER_TABLES = {
    "users":              (User, "id"),
    "vendors":            (Vendor, "vendor_id"),
    "products":           (Product, "id"),
    "company_profiles":   (CompanyProfile, "profile_id"),
    "delivery_addresses": (DeliveryAddress, "address_id"),
}


def _request_row(req: BudgetRequest) -> dict:
    row = req.model_dump(mode="json", exclude={"items"})
    row["items"] = json.dumps([item.model_dump(mode="json") for item in req.items])
    row["po_generated"] = int(req.po_generated)
    return row


def _po_row(po: PurchaseOrder) -> dict:
    row = po.model_dump(mode="json", exclude={"items", "related_budget_ids"})
    row["items"] = json.dumps([item.model_dump(mode="json") for item in po.items])
    row["related_budget_ids"] = json.dumps(po.related_budget_ids)
    return row


class Database:
    """Thin wrapper around an SQLite database file for workflow state."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    @contextmanager
    def _conn(self):
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._conn() as conn:
            conn.executescript(_SCHEMA)
        logger.debug("Database schema ready: %s", self.db_path)

    # ------------------------------------------------------------------
    # Master data
    # ------------------------------------------------------------------

    def upsert_master(self, table: str, record) -> None:
        """Insert or replace one master-data record (User, Vendor, Product …)."""
        model, key = _MASTER_TABLES[table]
        if not isinstance(record, model):
            raise TypeError(f"{table} expects {model.__name__}, got {type(record).__name__}")
        row = record.model_dump(mode="json")
        cols = ", ".join(row)
        placeholders = ", ".join(f":{c}" for c in row)
        updates = ", ".join(f"{c} = excluded.{c}" for c in row if c != key)
        with self._conn() as conn:
            conn.execute(
                f"INSERT INTO {table} ({cols}) VALUES ({placeholders}) "
                f"ON CONFLICT({key}) DO UPDATE SET {updates}",
                row,
            )

    def get_master(self, table: str, record_id: str):
        model, key = _MASTER_TABLES[table]
        with self._conn() as conn:
            row = conn.execute(
                f"SELECT * FROM {table} WHERE {key} = ?", (record_id,)
            ).fetchone()
        return model.model_validate(dict(row)) if row else None

    def list_master(self, table: str) -> list:
        model, key = _MASTER_TABLES[table]
        with self._conn() as conn:
            rows = conn.execute(f"SELECT * FROM {table} ORDER BY {key}").fetchall()
        return [model.model_validate(dict(r)) for r in rows]

    # Convenience accessors used throughout the service layer

    def get_user(self, user_id: str) -> Optional[User]:
        return self.get_master("users", user_id)

    def list_users(self) -> list[User]:
        return self.list_master("users")

    def list_products(self) -> list[Product]:
        return self.list_master("products")

    def list_vendors(self) -> list[Vendor]:
        return self.list_master("vendors")

    def list_company_profiles(self) -> list[CompanyProfile]:
        return self.list_master("company_profiles")

    def list_delivery_addresses(self) -> list[DeliveryAddress]:
        return self.list_master("delivery_addresses")

    # ------------------------------------------------------------------
    # Budget requests
    # ------------------------------------------------------------------

    def save_budget_request(
        self,
        req: BudgetRequest,
        audit_action: Optional[str] = None,
        actor: str = "system",
        detail: Optional[dict] = None,
    ) -> None:
        """
        Insert or fully replace a budget request (last write wins).

        With *audit_action* the matching audit entry is written in the same
        transaction, so either both land or neither does.
        """
        row = _request_row(req)
        cols = ", ".join(row)
        placeholders = ", ".join(f":{c}" for c in row)
        updates = ", ".join(f"{c} = excluded.{c}" for c in row if c != "id")
        with self._conn() as conn:
            conn.execute(
                f"INSERT INTO budget_requests ({cols}) VALUES ({placeholders}) "
                f"ON CONFLICT(id) DO UPDATE SET {updates}",
                row,
            )
            if audit_action is not None:
                self._insert_audit(conn, req.id, audit_action, actor, detail)
        logger.debug("DB saved request %s  status=%s", req.id, req.status.value)

    def get_budget_request(self, request_id: str) -> Optional[BudgetRequest]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM budget_requests WHERE id = ?", (request_id,)
            ).fetchone()
        return BudgetRequest.model_validate(dict(row)) if row else None

    def list_budget_requests(self, status: Optional[BudgetStatus] = None) -> list[BudgetRequest]:
        """All requests, newest submission first, optionally by approval status."""
        where, params = "", []
        if status is not None:
            where, params = "WHERE status = ?", [BudgetStatus(status).value]
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT * FROM budget_requests {where} ORDER BY submitted_at DESC",
                params,
            ).fetchall()
        return [BudgetRequest.model_validate(dict(r)) for r in rows]

    # ------------------------------------------------------------------
    # Purchase orders
    # ------------------------------------------------------------------

    def save_purchase_orders(
        self,
        purchase_orders: list[PurchaseOrder],
        updated_requests: list[BudgetRequest],
        actor: str = "system",
    ) -> None:
        """
        Insert new purchase orders, persist their source requests
        (po_generated = 1) and log one po_generated audit entry per order,
        all in a single transaction.
        """
        with self._conn() as conn:
            for po in purchase_orders:
                row = _po_row(po)
                cols = ", ".join(row)
                placeholders = ", ".join(f":{c}" for c in row)
                conn.execute(
                    f"INSERT INTO purchase_orders ({cols}) VALUES ({placeholders})",
                    row,
                )
            for req in updated_requests:
                conn.execute(
                    "UPDATE budget_requests SET po_generated = ? WHERE id = ?",
                    (int(req.po_generated), req.id),
                )
            for po in purchase_orders:
                self._insert_audit(conn, po.po_id, "po_generated", actor, {
                    "vendor_id": po.vendor_id,
                    "total_amount": po.total_amount,
                    "related_budget_ids": po.related_budget_ids,
                })
        logger.info(
            "DB stored %d purchase order(s), marked %d request(s)",
            len(purchase_orders), len(updated_requests),
        )

    def get_purchase_order(self, po_id: str) -> Optional[PurchaseOrder]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM purchase_orders WHERE po_id = ?", (po_id,)
            ).fetchone()
        return PurchaseOrder.model_validate(dict(row)) if row else None

    def list_purchase_orders(self) -> list[PurchaseOrder]:
        """All purchase orders, newest first."""
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM purchase_orders ORDER BY date_issued DESC"
            ).fetchall()
        return [PurchaseOrder.model_validate(dict(r)) for r in rows]

    # ------------------------------------------------------------------
    # Audit log / stats
    # ------------------------------------------------------------------

    @staticmethod
    def _insert_audit(
        conn: sqlite3.Connection,
        record_id: str,
        action: str,
        actor: str,
        detail: Optional[dict],
    ) -> None:
        """Append one audit entry inside the caller's transaction."""
        conn.execute(
            """INSERT INTO audit_log (record_id, timestamp, action, actor, detail)
               VALUES (?, ?, ?, ?, ?)""",
            (
                record_id,
                datetime.now(timezone.utc).isoformat(),
                action,
                actor,
                json.dumps(detail) if detail is not None else None,
            ),
        )

    def get_audit_log(self, record_id: str) -> list[dict]:
        """Return all audit entries for one record, oldest first."""
        with self._conn() as conn:
            rows = conn.execute(
                """SELECT id, timestamp, action, actor, detail
                   FROM audit_log WHERE record_id = ?
                   ORDER BY timestamp ASC, id ASC""",
                (record_id,),
            ).fetchall()
        return [dict(r) for r in rows]

    def get_stats(self) -> dict:
        """Aggregate request counts by approval status plus PO totals."""
        with self._conn() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    SUM(CASE WHEN status IN (?, ?) THEN 1 ELSE 0 END) AS pending,
                    SUM(CASE WHEN status = ? THEN 1 ELSE 0 END) AS approved,
                    SUM(CASE WHEN status = ? THEN 1 ELSE 0 END) AS rejected,
                    SUM(CASE WHEN po_generated = 1 THEN 1 ELSE 0 END) AS ordered
                FROM budget_requests
                """,
                (
                    BudgetStatus.PENDING_MANAGER_APPROVAL.value,
                    BudgetStatus.PENDING_BOD_APPROVAL.value,
                    BudgetStatus.APPROVED.value,
                    BudgetStatus.REJECTED.value,
                ),
            ).fetchone()
            po_row = conn.execute(
                "SELECT COUNT(*) AS purchase_orders, SUM(total_amount) AS po_total "
                "FROM purchase_orders"
            ).fetchone()
        stats = dict(row) if row else {}
        stats.update(dict(po_row) if po_row else {})
        return stats
