import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

import psycopg
from dotenv import load_dotenv


MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def get_database_url() -> str:
    # Prefer full DATABASE_URL; otherwise build from parts
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    user = os.getenv("DB_USER", os.getenv("USER", "postgres"))
    password = os.getenv("DB_PASSWORD")
    host = os.getenv("DB_HOST", "localhost")
    port = os.getenv("DB_PORT", "5432")
    dbname = os.getenv("DB_NAME", "hr_snapshots")

    auth = f"{user}:{password}@" if password else f"{user}@"
    return f"postgresql://{auth}{host}:{port}/{dbname}"


def ensure_schema_migrations_table(conn: psycopg.Connection) -> None:
    with conn.cursor() as cur:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
              filename TEXT PRIMARY KEY,
              applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
            """
        )
    conn.commit()


def pending_migrations(conn: psycopg.Connection, migrations_dir: Path) -> List[Path]:
    """SQL files of `migrations_dir` not yet recorded, in filename order."""
    with conn.cursor() as cur:
        cur.execute("SELECT filename FROM schema_migrations")
        applied = {row[0] for row in cur.fetchall()}
    files = sorted(p for p in migrations_dir.glob("*.sql") if p.is_file())
    return [p for p in files if p.name not in applied]


def apply_migration(conn: psycopg.Connection, migration_path: Path) -> None:
    sql = migration_path.read_text(encoding="utf-8")
    with conn.cursor() as cur:
        cur.execute(sql)
        cur.execute(
            "INSERT INTO schema_migrations (filename) VALUES (%s) ON CONFLICT DO NOTHING",
            (migration_path.name,),
        )
    conn.commit()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Apply pending SQL migrations for the snapshot tables")
    parser.add_argument("--database-url", default=None, help="Postgres URL (defaults to DATABASE_URL / DB_* env)")
    parser.add_argument("--list", action="store_true", help="Only list pending migrations")
    args = parser.parse_args(argv)

    load_dotenv(override=False)
    if not MIGRATIONS_DIR.exists():
        print(f"Migrations directory not found: {MIGRATIONS_DIR}", file=sys.stderr)
        return 2

    database_url = args.database_url or get_database_url()
    print(f"Connecting to: {database_url}")

    try:
        with psycopg.connect(database_url) as conn:
            ensure_schema_migrations_table(conn)
            pending = pending_migrations(conn, MIGRATIONS_DIR)
            if not pending:
                print("Schema is up to date.")
                return 0
            for path in pending:
                if args.list:
                    print(f"Pending: {path.name}")
                    continue
                print(f"Applying: {path.name} ...", end="", flush=True)
                apply_migration(conn, path)
                print(" done.")
    except psycopg.OperationalError as e:
        print(f"Database connection failed: {e}", file=sys.stderr)
        return 1

    print("Migrations complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
