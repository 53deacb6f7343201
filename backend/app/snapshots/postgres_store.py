from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, List, Optional, Sequence

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Json

from backend.app.metrics.records import (
    AbsenceRecord,
    EmployeeRecord,
    MONETARY_FIELDS,
    PeriodRecords,
    RemunerationRecord,
)
from backend.app.snapshots.errors import StorageError, TransientStorageError
from backend.app.snapshots.models import MonthlySnapshot
from backend.app.snapshots.store import Record


logger = logging.getLogger(__name__)

SNAPSHOT_COLUMNS = (
    "etablissement_id",
    "periode",
    "import_batch_id",
    "calculated_at",
    "data_quality_score",
    "fidelity",
    "version",
)

_EMPLOYEE_COLUMNS = (
    "matricule", "periode", "sexe", "date_naissance", "date_entree", "date_sortie",
    "type_contrat", "temps_travail", "statut_emploi", "intitule_poste",
)
_ABSENCE_COLUMNS = (
    "matricule", "date_debut", "type_absence", "famille", "date_fin", "motif",
    "justificatif_fourni", "validation_status",
)
_REMUNERATION_COLUMNS = ("matricule", "mois_paie") + MONETARY_FIELDS


def _upsert_sql(table: str, columns: Sequence[str], key: Sequence[str]) -> str:
    names = ", ".join(("etablissement_id",) + tuple(columns))
    placeholders = ", ".join(["%s"] * (len(columns) + 1))
    updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in columns if c not in key)
    conflict = ", ".join(("etablissement_id",) + tuple(key))
    return (
        f"INSERT INTO {table} ({names}) VALUES ({placeholders}) "
        f"ON CONFLICT ({conflict}) DO UPDATE SET {updates}, updated_at = now()"
    )


UPSERT_EMPLOYEE = _upsert_sql("hr_employees", _EMPLOYEE_COLUMNS, ("matricule", "periode"))
UPSERT_REMUNERATION = _upsert_sql("hr_remunerations", _REMUNERATION_COLUMNS, ("matricule", "mois_paie"))
UPSERT_ABSENCE = _upsert_sql("hr_absences", _ABSENCE_COLUMNS, ("matricule", "date_debut", "type_absence"))


def _month_end_exclusive(period: date) -> date:
    if period.month == 12:
        return date(period.year + 1, 1, 1)
    return date(period.year, period.month + 1, 1)


class PostgresSnapshotStore:
    """Snapshot store on Postgres; every call runs on its own connection.

    Connection failures surface as `TransientStorageError` so the builder
    retries them; any other database error becomes a plain `StorageError`.
    """

    def __init__(self, db_url: str) -> None:
        self.db_url = db_url

    @asynccontextmanager
    async def pg_conn(self):
        try:
            conn = await psycopg.AsyncConnection.connect(self.db_url, row_factory=dict_row)
        except psycopg.OperationalError as exc:
            raise TransientStorageError(f"Cannot connect to database: {exc}") from exc
        try:
            yield conn
        except psycopg.OperationalError as exc:
            await _rollback_quietly(conn)
            raise TransientStorageError(str(exc)) from exc
        except psycopg.Error as exc:
            await _rollback_quietly(conn)
            raise StorageError(f"{type(exc).__name__}: {exc}") from exc
        finally:
            await conn.close()

    async def upsert_records(self, etablissement_id: str, records: Sequence[Record]) -> int:
        employees: List[tuple] = []
        remunerations: List[tuple] = []
        absences: List[tuple] = []
        for record in records:
            if isinstance(record, EmployeeRecord):
                employees.append((etablissement_id,) + tuple(getattr(record, c) for c in _EMPLOYEE_COLUMNS))
            elif isinstance(record, RemunerationRecord):
                remunerations.append((etablissement_id,) + tuple(getattr(record, c) for c in _REMUNERATION_COLUMNS))
            else:
                absences.append((etablissement_id,) + tuple(getattr(record, c) for c in _ABSENCE_COLUMNS))

        async with self.pg_conn() as conn:
            async with conn.cursor() as cur:
                if employees:
                    await cur.executemany(UPSERT_EMPLOYEE, employees)
                if remunerations:
                    await cur.executemany(UPSERT_REMUNERATION, remunerations)
                if absences:
                    await cur.executemany(UPSERT_ABSENCE, absences)
            await conn.commit()
        return len(records)

    async def fetch_period_records(self, etablissement_id: str, period: date) -> PeriodRecords:
        async with self.pg_conn() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    "SELECT * FROM hr_employees WHERE etablissement_id = %s AND periode = %s ORDER BY matricule",
                    (etablissement_id, period),
                )
                employees = [EmployeeRecord(**_fields(row, _EMPLOYEE_COLUMNS)) for row in await cur.fetchall()]
                await cur.execute(
                    "SELECT * FROM hr_remunerations WHERE etablissement_id = %s AND mois_paie = %s ORDER BY matricule",
                    (etablissement_id, period),
                )
                remunerations = [
                    RemunerationRecord(**_fields(row, _REMUNERATION_COLUMNS)) for row in await cur.fetchall()
                ]
                await cur.execute(
                    """
                    SELECT * FROM hr_absences
                    WHERE etablissement_id = %s AND date_debut >= %s AND date_debut < %s
                    ORDER BY matricule, date_debut
                    """,
                    (etablissement_id, period, _month_end_exclusive(period)),
                )
                absences = [AbsenceRecord(**_fields(row, _ABSENCE_COLUMNS)) for row in await cur.fetchall()]
        return PeriodRecords(
            employees=tuple(employees), remunerations=tuple(remunerations), absences=tuple(absences)
        )

    async def fetch_snapshot(self, etablissement_id: str, period: date) -> Optional[MonthlySnapshot]:
        async with self.pg_conn() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    "SELECT * FROM monthly_snapshots WHERE etablissement_id = %s AND periode = %s",
                    (etablissement_id, period),
                )
                row = await cur.fetchone()
        if not row:
            return None
        metrics = row.pop("metrics") or {}
        return MonthlySnapshot(**metrics, **row)

    async def replace_snapshot(self, snapshot: MonthlySnapshot) -> None:
        metrics = snapshot.model_dump(mode="json", exclude=set(SNAPSHOT_COLUMNS))
        async with self.pg_conn() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO monthly_snapshots (
                      etablissement_id, periode, import_batch_id, calculated_at,
                      data_quality_score, fidelity, version, metrics
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (etablissement_id, periode) DO UPDATE SET
                      import_batch_id = EXCLUDED.import_batch_id,
                      calculated_at = EXCLUDED.calculated_at,
                      data_quality_score = EXCLUDED.data_quality_score,
                      fidelity = EXCLUDED.fidelity,
                      version = EXCLUDED.version,
                      metrics = EXCLUDED.metrics
                    """,
                    tuple(getattr(snapshot, c) for c in SNAPSHOT_COLUMNS) + (Json(metrics),),
                )
            await conn.commit()
        logger.debug("Stored snapshot %s/%s", snapshot.etablissement_id, snapshot.periode)


async def _rollback_quietly(conn: psycopg.AsyncConnection) -> None:
    if conn.closed:
        return
    try:
        await conn.rollback()
    except psycopg.Error:
        logger.warning("Rollback failed on a broken connection")


def _fields(row: dict, columns: Sequence[str]) -> dict[str, Any]:
    return {c: row[c] for c in columns}
