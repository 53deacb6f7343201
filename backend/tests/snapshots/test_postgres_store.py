from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone

import psycopg
import pytest

from backend.app.config.env import EngineSettings
from backend.app.metrics.normalizer import normalize_dataset
from backend.app.snapshots.builder import SnapshotBuilder
from backend.app.snapshots.errors import StorageError
from backend.app.snapshots.postgres_store import PostgresSnapshotStore


MARCH = date(2024, 3, 1)
CALCULATED_AT = datetime(2024, 4, 2, 8, 0, tzinfo=timezone.utc)


def _count(conn: psycopg.Connection, table: str) -> int:
    with conn.cursor() as cur:
        cur.execute(f"SELECT count(*) FROM {table}")
        (n,) = cur.fetchone()
    return n


def test_records_round_trip_through_postgres(db_conn: psycopg.Connection, migrated_db: str, hr_sheets) -> None:
    store = PostgresSnapshotStore(migrated_db)
    dataset = normalize_dataset(hr_sheets)

    written = asyncio.run(store.upsert_records("ETAB-1", dataset.employees + dataset.remunerations + dataset.absences))
    assert written == 14
    # upsert on natural keys, a second pass adds nothing
    asyncio.run(store.upsert_records("ETAB-1", dataset.employees))
    assert _count(db_conn, "hr_employees") == 6

    records = asyncio.run(store.fetch_period_records("ETAB-1", MARCH))
    assert [e.matricule for e in records.employees] == ["E1", "E2", "E3"]
    assert records.employees[1].temps_travail == 0.8
    assert len(records.remunerations) == 3
    assert [a.type_absence for a in records.absences] == ["Maladie"]
    assert records.absences[0].famille == "Maladie"


def test_builder_against_postgres(db_conn: psycopg.Connection, migrated_db: str, hr_sheets) -> None:
    store = PostgresSnapshotStore(migrated_db)
    builder = SnapshotBuilder(store, EngineSettings(retry_initial_s=0, retry_max_s=0, retry_jitter_s=0), clock=lambda: CALCULATED_AT)

    asyncio.run(builder.run(normalize_dataset(hr_sheets), "ETAB-1", batch_id="pg-1"))
    asyncio.run(builder.run(normalize_dataset(hr_sheets), "ETAB-1", batch_id="pg-2"))
    assert _count(db_conn, "monthly_snapshots") == 2

    snapshot = asyncio.run(store.fetch_snapshot("ETAB-1", MARCH))
    assert snapshot is not None
    assert snapshot.import_batch_id == "pg-2"
    assert snapshot.effectif_fin_mois == 3
    assert snapshot.taux_absenteisme_maladie == 7.94
    assert snapshot.effet_prix == 800.0

    assert asyncio.run(store.fetch_snapshot("ETAB-1", date(2023, 1, 1))) is None


def test_rejected_replace_leaves_the_stored_snapshot(db_conn: psycopg.Connection, migrated_db: str, hr_sheets) -> None:
    store = PostgresSnapshotStore(migrated_db)
    builder = SnapshotBuilder(store, EngineSettings(retry_initial_s=0, retry_max_s=0, retry_jitter_s=0), clock=lambda: CALCULATED_AT)
    asyncio.run(builder.run(normalize_dataset(hr_sheets), "ETAB-1", batch_id="pg-1"))
    stored = asyncio.run(store.fetch_snapshot("ETAB-1", MARCH))

    # does not fit NUMERIC(5,1); a data error, not a connection one
    broken = stored.model_copy(update={"import_batch_id": "pg-2", "data_quality_score": 1_000_000.0})
    with pytest.raises(StorageError) as excinfo:
        asyncio.run(store.replace_snapshot(broken))
    assert type(excinfo.value) is StorageError

    kept = asyncio.run(store.fetch_snapshot("ETAB-1", MARCH))
    assert kept.import_batch_id == "pg-1"
    assert _count(db_conn, "monthly_snapshots") == 2
