# venmito/seed.py
"""
Load the bundled sample files through the same reconcilers the upload
endpoints use.

    python -m venmito.seed --data-dir data --no-reset
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple

from .db import Database
from .db_bootstrap import ensure_schema, wipe_all_data
from .logging_config import configure_logging
from .parsers import parse_file
from .registry import get_reconciler

logger = logging.getLogger(__name__)

# order matters: people first, everything else hangs off them
SAMPLE_FILES: Tuple[Tuple[str, str], ...] = (
    ("people.json", "people"),
    ("people.yml", "people"),
    ("promotions.csv", "promotions"),
    ("transfers.csv", "transfers"),
    ("transactions.xml", "transactions"),
)


def load_sample_data(db: Database, data_dir: str | Path, reset: bool = True) -> Dict[str, Any]:
    """
    Parse and reconcile every sample file present in `data_dir`.
    Missing files are skipped; a missing directory is an error.
    """
    base = Path(data_dir)
    if not base.is_dir():
        raise FileNotFoundError(f"Sample data directory not found: {base}")

    if reset:
        wipe_all_data(db)
    ensure_schema(db)

    files: List[Dict[str, Any]] = []
    totals: Dict[str, int] = {}
    for filename, family in SAMPLE_FILES:
        path = base / filename
        if not path.is_file():
            logger.info("Sample file %s not found, skipping", path)
            continue

        rows = parse_file(str(path))
        with db.session() as session:
            report = get_reconciler(family)(session).run(rows)

        inserted = 0 if report.rejected else len(report.successes)
        totals[family] = totals.get(family, 0) + inserted
        files.append({
            "file": filename,
            "family": family,
            "received": report.received,
            "inserted_count": inserted,
            "skipped_count": len(report.skipped),
            "rejected": report.rejected,
        })
        logger.info("Loaded %s: %d of %d %s rows", filename, inserted, report.received, family)

    return {"files": files, "totals": totals}


def main(argv: List[str] | None = None) -> int:
    from .settings import settings

    ap = argparse.ArgumentParser(description="Load Venmito sample files into the database.")
    ap.add_argument("--data-dir", default=settings.SAMPLE_DATA_DIR)
    ap.add_argument("--no-reset", action="store_true", help="keep existing rows")
    args = ap.parse_args(argv)

    configure_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    db = Database(settings.DATABASE_URL, echo=settings.SQL_ECHO)
    try:
        stats = load_sample_data(db, args.data_dir, reset=not args.no_reset)
    finally:
        db.dispose()
    for entry in stats["files"]:
        print(f"{entry['file']:<18} {entry['inserted_count']:>6} / {entry['received']:<6} {entry['family']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
