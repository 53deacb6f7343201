from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from backend.app.config.env import get_db_url, get_engine_settings, load_env
from backend.app.metrics.advisors import Advisory, Sector, advise
from backend.app.metrics.definitions import MetricDefinition, get_definitions
from backend.app.metrics.normalizer import normalize_dataset
from backend.app.metrics.status import MetricPoint, snapshot_points
from backend.app.snapshots.assembly import build_snapshots
from backend.app.snapshots.errors import StorageError
from backend.app.snapshots.models import MonthlySnapshot
from backend.app.snapshots.postgres_store import PostgresSnapshotStore
from backend.app.snapshots.store import SnapshotStore
from backend.app.snapshots.validation import ValidationReport, validate_dataset


router = APIRouter()

load_env()


def get_store() -> SnapshotStore:
    return PostgresSnapshotStore(get_db_url())


class ImportPayload(BaseModel):
    etablissement_id: str = "default"
    employees: List[Dict[str, Any]] = Field(default_factory=list)
    remunerations: List[Dict[str, Any]] = Field(default_factory=list)
    absences: List[Dict[str, Any]] = Field(default_factory=list)
    sector: Optional[Sector] = None


class ComputedSnapshot(BaseModel):
    snapshot: MonthlySnapshot
    statuses: List[MetricPoint]
    advisory: Advisory


class ComputeResponse(BaseModel):
    validation: ValidationReport
    snapshots: List[ComputedSnapshot]
    warnings: List[str]


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/definitions", response_model=list[MetricDefinition])
def list_metric_definitions() -> list[MetricDefinition]:
    return get_definitions()


@router.post("/validate", response_model=ValidationReport)
def validate_import(payload: ImportPayload) -> ValidationReport:
    dataset = normalize_dataset(payload.model_dump(include={"employees", "remunerations", "absences"}))
    return validate_dataset(dataset)


@router.post("/compute", response_model=ComputeResponse)
def compute_snapshots(payload: ImportPayload) -> ComputeResponse:
    """Compute snapshots for the posted rows without storing anything.

    Critical validation issues are returned as a 422 with the full report.
    """
    settings = get_engine_settings()
    dataset = normalize_dataset(payload.model_dump(include={"employees", "remunerations", "absences"}))
    validation = validate_dataset(dataset)
    if not validation.can_proceed:
        raise HTTPException(status_code=422, detail=validation.model_dump(mode="json"))

    warnings: List[str] = [i.message for i in validation.warnings]
    snapshots = build_snapshots(
        dataset,
        payload.etablissement_id,
        calculated_at=datetime.now(timezone.utc),
        quality_score=validation.quality_score,
        voluntary_ratio=settings.voluntary_exit_ratio,
        warnings=warnings,
    )
    sector = payload.sector or settings.sector
    return ComputeResponse(
        validation=validation,
        snapshots=[
            ComputedSnapshot(snapshot=s, statuses=snapshot_points(s), advisory=advise(s, sector))
            for s in snapshots
        ],
        warnings=warnings,
    )


@router.get("/{etablissement_id}/{periode}", response_model=ComputedSnapshot)
async def get_stored_snapshot(
    etablissement_id: str,
    periode: date,
    sector: Optional[Sector] = None,
    store: SnapshotStore = Depends(get_store),
) -> ComputedSnapshot:
    """The stored snapshot of one month, with statuses and advice."""
    try:
        snapshot = await store.fetch_snapshot(etablissement_id, periode.replace(day=1))
    except StorageError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Snapshot not found")
    return ComputedSnapshot(
        snapshot=snapshot,
        statuses=snapshot_points(snapshot),
        advisory=advise(snapshot, sector or get_engine_settings().sector),
    )
