from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from backend.app.metrics.absence import AbsenceMetrics
from backend.app.metrics.demographics import DemographicsMetrics
from backend.app.metrics.payroll import PayrollBasis, PayrollEffects, PayrollMetrics
from backend.app.metrics.workforce import WorkforceMetrics


SNAPSHOT_VERSION = "1.0"


class MonthlySnapshot(
    WorkforceMetrics,
    DemographicsMetrics,
    PayrollMetrics,
    PayrollEffects,
    AbsenceMetrics,
):
    """All KPIs of one establishment for one month, as one flat record.

    Snapshots are replaced wholesale on reimport and never edited in place.
    """

    model_config = ConfigDict(frozen=True)

    etablissement_id: str
    periode: date
    import_batch_id: Optional[str] = None
    calculated_at: Optional[datetime] = None
    data_quality_score: float = 100.0
    fidelity: Literal["full", "reduced"] = "full"
    version: str = SNAPSHOT_VERSION

    @property
    def payroll_basis(self) -> PayrollBasis:
        return PayrollBasis(
            masse_salariale_brute=self.masse_salariale_brute,
            etp_fin_mois=self.etp_fin_mois,
        )


class ImportPhase(str, Enum):
    validating = "validating"
    processing = "processing"
    effects = "effects"
    completion = "completion"
    error = "error"


class PeriodOutcome(BaseModel):
    periode: date
    status: Literal["ok", "reduced", "failed"]
    message: Optional[str] = None


class ImportProgress(BaseModel):
    phase: ImportPhase
    completed: int
    total: int
    message: Optional[str] = None


class ImportReport(BaseModel):
    batch_id: str
    etablissement_id: str
    phase: ImportPhase = ImportPhase.validating
    outcomes: List[PeriodOutcome] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    records_imported: int = 0
    data_quality_score: int = 100
    snapshots: List[MonthlySnapshot] = Field(default_factory=list)

    @property
    def produced(self) -> int:
        return sum(1 for o in self.outcomes if o.status != "failed")

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "failed")

    @property
    def success_ratio(self) -> float:
        """Share of periods that ended with a stored snapshot; 1.0 for an empty import."""
        if not self.outcomes:
            return 1.0
        return self.produced / len(self.outcomes)
