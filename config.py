"""
Central configuration for the budget workflow.

All paths, thresholds, and backend settings are defined here.
Override via environment variables or by passing a Config instance directly.

Settings priority (highest wins):
  1. Environment variables
  2. config/workflow_settings.json  (admin-editable, persisted)
  3. Hardcoded defaults in this file
"""
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Project root (directory containing this file)
PROJECT_ROOT = Path(__file__).parent

# Default data locations (relative to project root)
DEFAULT_DATA_DIR    = PROJECT_ROOT / "data"
DEFAULT_OUTPUT_DIR  = PROJECT_ROOT / "output"
DEFAULT_DB_PATH     = DEFAULT_OUTPUT_DIR / "budget.db"
DEFAULT_EXPORT_DIR  = DEFAULT_OUTPUT_DIR / "export"
DEFAULT_REPORT_TIMEZONE = "Asia/Jakarta"


@dataclass
class Config:
    # --- Approval rules ---
    escalation_threshold: float = field(
        default_factory=lambda: float(os.getenv("ESCALATION_THRESHOLD", "5000000"))
    )
    # Manager approvals strictly above this total are routed to the BOD.

    # --- Storage ---
    data_dir: Path = field(
        default_factory=lambda: Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    )
    # Master-data CSVs (users.csv, vendors.csv, products.csv,
    # company_profiles.csv, delivery_addresses.csv) for `main.py import`.
    output_dir: Path = field(default_factory=lambda: DEFAULT_OUTPUT_DIR)
    db_path: Path = field(
        default_factory=lambda: Path(os.getenv("DB_PATH", str(DEFAULT_DB_PATH)))
    )
    export_dir: Path = field(
        default_factory=lambda: Path(os.getenv("EXPORT_DIR", str(DEFAULT_EXPORT_DIR)))
    )

    # --- Remote backend (action-dispatch API) ---
    api_base_url: str = field(
        default_factory=lambda: os.getenv("API_BASE_URL", "http://localhost:8000/api")
    )
    api_timeout_seconds: float = field(
        default_factory=lambda: float(os.getenv("API_TIMEOUT", "30"))
    )
    pdf_service_url: Optional[str] = field(
        default_factory=lambda: os.getenv("PDF_SERVICE_URL")
    )
    # createPoPdf endpoint; unset means the action backend above

    # --- Display ---
    currency_symbol: str = field(
        default_factory=lambda: os.getenv("CURRENCY_SYMBOL", "Rp")
    )
    export_template: Optional[str] = field(
        default_factory=lambda: os.getenv("EXPORT_TEMPLATE")
    )
    # Optional Jinja2 template file for purchase order export (XML by default)
    report_timezone: str = field(
        default_factory=lambda: os.getenv("REPORT_TIMEZONE", DEFAULT_REPORT_TIMEZONE)
    )
    # IANA zone used to bucket reports by month and year

    def __post_init__(self) -> None:
        """Overlay runtime-tunable settings from workflow_settings.json if present."""
        config_dir = Path(os.getenv("CONFIG_DIR", str(PROJECT_ROOT / "config")))
        settings_file = config_dir / "workflow_settings.json"
        if not settings_file.exists():
            return
        _type_map: dict[str, type] = {
            "escalation_threshold":  float,
            "api_base_url":          str,
            "api_timeout_seconds":   float,
            "pdf_service_url":       str,
            "currency_symbol":       str,
            "export_template":       str,
            "report_timezone":       str,
        }
        try:
            with open(settings_file, encoding="utf-8") as f:
                overrides = {k: v for k, v in json.load(f).items() if not k.startswith("_")}
            for key, val in overrides.items():
                if key in _type_map and hasattr(self, key):
                    # Environment variables win over the settings file
                    env_key = _ENV_NAMES.get(key)
                    if env_key and os.getenv(env_key) is not None:
                        continue
                    setattr(self, key, _type_map[key](val))
        except Exception as exc:
            logger.warning("Failed to load workflow_settings.json: %s", exc)

    def ensure_output_dir(self) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.export_dir.mkdir(parents=True, exist_ok=True)


_ENV_NAMES = {
    "escalation_threshold": "ESCALATION_THRESHOLD",
    "api_base_url":         "API_BASE_URL",
    "api_timeout_seconds":  "API_TIMEOUT",
    "pdf_service_url":      "PDF_SERVICE_URL",
    "currency_symbol":      "CURRENCY_SYMBOL",
    "export_template":      "EXPORT_TEMPLATE",
    "report_timezone":      "REPORT_TIMEZONE",
}
