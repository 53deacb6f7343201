from __future__ import annotations

from datetime import date
from typing import Dict, Optional, Protocol, Sequence, Tuple, Union

from backend.app.metrics.records import (
    AbsenceRecord,
    EmployeeRecord,
    PeriodRecords,
    RemunerationRecord,
    same_month,
)
from backend.app.snapshots.models import MonthlySnapshot


Record = Union[EmployeeRecord, RemunerationRecord, AbsenceRecord]


def natural_key(record: Record) -> Tuple:
    """Key under which a record overwrites a previous import of the same row."""
    if isinstance(record, EmployeeRecord):
        return ("employee", record.matricule, record.periode)
    if isinstance(record, RemunerationRecord):
        return ("remuneration", record.matricule, record.mois_paie)
    return ("absence", record.matricule, record.date_debut, record.type_absence)


def record_period(record: Record) -> date:
    """Reporting month a record is counted in (absences by start date)."""
    if isinstance(record, EmployeeRecord):
        return record.periode
    if isinstance(record, RemunerationRecord):
        return record.mois_paie
    return record.date_debut.replace(day=1)


class SnapshotStore(Protocol):
    """Storage the builder reads source rows from and writes snapshots to.

    Implementations raise `TransientStorageError` for failures worth retrying
    and `StorageError` for the rest.
    """

    async def upsert_records(self, etablissement_id: str, records: Sequence[Record]) -> int: ...

    async def fetch_period_records(self, etablissement_id: str, period: date) -> PeriodRecords: ...

    async def fetch_snapshot(self, etablissement_id: str, period: date) -> Optional[MonthlySnapshot]: ...

    async def replace_snapshot(self, snapshot: MonthlySnapshot) -> None:
        """Swap the stored snapshot of that month for `snapshot`, all or nothing."""
        ...


class InMemorySnapshotStore:
    """Dict-backed store for tests and local runs."""

    def __init__(self) -> None:
        self.records: Dict[str, Dict[Tuple, Record]] = {}
        self.snapshots: Dict[Tuple[str, date], MonthlySnapshot] = {}

    async def upsert_records(self, etablissement_id: str, records: Sequence[Record]) -> int:
        bucket = self.records.setdefault(etablissement_id, {})
        for record in records:
            bucket[natural_key(record)] = record
        return len(records)

    async def fetch_period_records(self, etablissement_id: str, period: date) -> PeriodRecords:
        rows = list(self.records.get(etablissement_id, {}).values())
        return PeriodRecords(
            employees=tuple(r for r in rows if isinstance(r, EmployeeRecord) and r.periode == period),
            remunerations=tuple(r for r in rows if isinstance(r, RemunerationRecord) and r.mois_paie == period),
            absences=tuple(r for r in rows if isinstance(r, AbsenceRecord) and same_month(r.date_debut, period)),
        )

    async def fetch_snapshot(self, etablissement_id: str, period: date) -> Optional[MonthlySnapshot]:
        return self.snapshots.get((etablissement_id, period))

    async def replace_snapshot(self, snapshot: MonthlySnapshot) -> None:
        self.snapshots[(snapshot.etablissement_id, snapshot.periode)] = snapshot
