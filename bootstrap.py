"""
Bootstrap script to ensure essential configuration and seed data exist.
Copies factory defaults from defaults/ into the config and data directories
when files are missing; existing files are never overwritten.
"""
import json
import os
import shutil
from pathlib import Path
from typing import Optional

# Project structure
PROJECT_ROOT = Path(__file__).parent
DEFAULTS_DIR = PROJECT_ROOT / "defaults"


def ensure_config_files(
    config_dir: Optional[Path] = None,
    data_dir: Optional[Path] = None,
) -> list[str]:
    """Verify and restore missing config / seed files from the defaults folder.

    Returns the names of the files that were restored or repaired.
    """
    config_dir = config_dir or Path(os.getenv("CONFIG_DIR", str(PROJECT_ROOT / "config")))
    data_dir = data_dir or Path(os.getenv("DATA_DIR", str(PROJECT_ROOT / "data")))
    config_dir.mkdir(parents=True, exist_ok=True)
    data_dir.mkdir(parents=True, exist_ok=True)
    restored: list[str] = []

    if not DEFAULTS_DIR.exists():
        print(f"[Bootstrap] Warning: Defaults directory not found at {DEFAULTS_DIR}")
        return restored

    # 1. Runtime settings
    src = DEFAULTS_DIR / "workflow_settings.json"
    dst = config_dir / "workflow_settings.json"
    if not dst.exists() and src.exists():
        print("[Bootstrap] Restoring missing config file: workflow_settings.json")
        shutil.copy2(src, dst)
        restored.append(dst.name)
    elif dst.exists() and src.exists():
        # Repair corrupted settings
        try:
            if dst.stat().st_size == 0:
                raise ValueError("Empty file")
            with open(dst, "r", encoding="utf-8") as f:
                json.load(f)
        except (json.JSONDecodeError, ValueError):
            print("[Bootstrap] Repairing invalid workflow_settings.json")
            shutil.copy2(src, dst)
            restored.append(dst.name)

    # 2. Master data seed CSVs
    for src_csv in sorted((DEFAULTS_DIR / "data").glob("*.csv")):
        dst_csv = data_dir / src_csv.name
        if not dst_csv.exists():
            print(f"[Bootstrap] Restoring missing seed data: {src_csv.name}")
            shutil.copy2(src_csv, dst_csv)
            restored.append(src_csv.name)

    # 3. Jinja2 templates
    for src_template in DEFAULTS_DIR.glob("*.j2"):
        dst_template = config_dir / src_template.name
        if not dst_template.exists():
            print(f"[Bootstrap] Restoring missing template: {src_template.name}")
            shutil.copy2(src_template, dst_template)
            restored.append(src_template.name)

    return restored


if __name__ == "__main__":
    ensure_config_files()
