from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path


REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from backend.app.config.env import get_db_url, get_engine_settings, load_env  # noqa: E402
from backend.app.metrics.normalizer import normalize_dataset  # noqa: E402
from backend.app.snapshots.builder import SnapshotBuilder  # noqa: E402
from backend.app.snapshots.errors import ImportValidationError, SnapshotError  # noqa: E402
from backend.app.snapshots.models import ImportProgress  # noqa: E402
from backend.app.snapshots.postgres_store import PostgresSnapshotStore  # noqa: E402
from backend.app.snapshots.store import InMemorySnapshotStore  # noqa: E402
from backend.app.snapshots.workbook import read_workbook  # noqa: E402


def print_progress(update: ImportProgress) -> None:
    suffix = f" - {update.message}" if update.message else ""
    print(f"[{update.phase.value}] {update.completed}/{update.total}{suffix}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Import an HR workbook: migrations -> validation -> monthly snapshots")
    parser.add_argument("--workbook", required=True, type=Path, help="Path to the .xlsx export")
    parser.add_argument("--etablissement-id", default="default")
    parser.add_argument("--database-url", default=os.getenv("DATABASE_URL"), help="Postgres DATABASE_URL (or env)")
    parser.add_argument("--in-memory", action="store_true", help="Compute without a database")
    parser.add_argument("--skip-migrations", action="store_true")
    args = parser.parse_args()

    load_env()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = get_engine_settings()

    if args.in_memory:
        store = InMemorySnapshotStore()
    else:
        database_url = args.database_url or get_db_url()
        if not args.skip_migrations:
            from backend.src.db.run_migrations import main as run_migrations_main

            rc = run_migrations_main(["--database-url", database_url])
            if rc != 0:
                return rc
        store = PostgresSnapshotStore(database_url)

    try:
        dataset = normalize_dataset(read_workbook(args.workbook))
        builder = SnapshotBuilder(store, settings)
        report = asyncio.run(builder.run(dataset, args.etablissement_id, on_progress=print_progress))
    except ImportValidationError as e:
        print(f"Import blocked: {e}", file=sys.stderr)
        for issue in e.report.critical:
            print(f"  {issue.sheet} row {issue.row} [{issue.field}]: {issue.message}", file=sys.stderr)
        return 3
    except SnapshotError as e:
        print(f"Import failed: {e}", file=sys.stderr)
        return 1

    print(f"Batch {report.batch_id}: {report.records_imported} rows, quality {report.data_quality_score}/100")
    for outcome in report.outcomes:
        line = f"  {outcome.periode.isoformat()}: {outcome.status}"
        print(line + (f" ({outcome.message})" if outcome.message else ""))
    for warning in report.warnings:
        print(f"  ! {warning}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
