from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Optional

from backend.app.metrics.absence import compute_absence
from backend.app.metrics.demographics import compute_demographics
from backend.app.metrics.payroll import PayrollBasis, compute_effects, compute_payroll
from backend.app.metrics.records import Dataset, PeriodRecords, previous_month, slice_period
from backend.app.metrics.rounding import round_half_up
from backend.app.metrics.workforce import VOLUNTARY_EXIT_RATIO, compute_workforce
from backend.app.snapshots.models import MonthlySnapshot


def build_snapshot(
    etablissement_id: str,
    period: date,
    records: PeriodRecords,
    previous: Optional[PeriodRecords] = None,
    *,
    batch_id: Optional[str] = None,
    calculated_at: Optional[datetime] = None,
    quality_score: float = 100.0,
    voluntary_ratio: float = VOLUNTARY_EXIT_RATIO,
    warnings: Optional[List[str]] = None,
) -> MonthlySnapshot:
    """Run the aggregators on one month and merge them into a snapshot.

    Deterministic for given arguments. Price/volume/mix effects are left at
    zero; see `attach_effects`.
    """
    period = period.replace(day=1)
    previous_employees = previous.employees if previous is not None else None

    workforce = compute_workforce(records.employees, period, previous_employees, voluntary_ratio)
    demographics = compute_demographics(records.employees, period)
    payroll = compute_payroll(records.remunerations, records.employees, warnings)
    absence = compute_absence(records.absences, records.employees, period, warnings)

    return MonthlySnapshot(
        **workforce.model_dump(),
        **demographics.model_dump(),
        **payroll.model_dump(),
        **absence.model_dump(),
        etablissement_id=etablissement_id,
        periode=period,
        import_batch_id=batch_id,
        calculated_at=calculated_at,
        data_quality_score=quality_score,
    )


def build_reduced_snapshot(
    etablissement_id: str,
    period: date,
    records: PeriodRecords,
    *,
    batch_id: Optional[str] = None,
    calculated_at: Optional[datetime] = None,
    quality_score: float = 100.0,
) -> MonthlySnapshot:
    """Headcount, FTE and gross mass only, for when the full build failed."""
    headcount = len(records.employees)
    fte = round_half_up(sum(e.fte for e in records.employees))
    return MonthlySnapshot(
        etablissement_id=etablissement_id,
        periode=period.replace(day=1),
        effectif_debut_mois=headcount,
        effectif_fin_mois=headcount,
        effectif_moyen=float(headcount),
        etp_debut_mois=fte,
        etp_fin_mois=fte,
        etp_moyen=fte,
        masse_salariale_brute=round_half_up(sum(r.gross for r in records.remunerations)),
        import_batch_id=batch_id,
        calculated_at=calculated_at,
        data_quality_score=round_half_up(quality_score / 2, 1),
        fidelity="reduced",
    )


def basis_from_records(records: PeriodRecords) -> Optional[PayrollBasis]:
    """Payroll basis of a month only known through its raw records."""
    if records.is_empty:
        return None
    return PayrollBasis(
        masse_salariale_brute=round_half_up(sum(r.gross for r in records.remunerations)),
        etp_fin_mois=round_half_up(sum(e.fte for e in records.employees)),
    )


def attach_effects(snapshot: MonthlySnapshot, previous: Optional[PayrollBasis]) -> MonthlySnapshot:
    if previous is None:
        return snapshot
    effects = compute_effects(snapshot.payroll_basis, previous)
    return snapshot.model_copy(update=effects.model_dump())


def build_snapshots(
    dataset: Dataset,
    etablissement_id: str,
    *,
    batch_id: Optional[str] = None,
    calculated_at: Optional[datetime] = None,
    quality_score: float = 100.0,
    voluntary_ratio: float = VOLUNTARY_EXIT_RATIO,
    warnings: Optional[List[str]] = None,
) -> List[MonthlySnapshot]:
    """Every period of an in-memory dataset, effects chained month to month."""
    snapshots: Dict[date, MonthlySnapshot] = {}
    for period in dataset.periods:
        previous = slice_period(dataset, previous_month(period))
        snapshots[period] = build_snapshot(
            etablissement_id,
            period,
            slice_period(dataset, period),
            previous if not previous.is_empty else None,
            batch_id=batch_id,
            calculated_at=calculated_at,
            quality_score=quality_score,
            voluntary_ratio=voluntary_ratio,
            warnings=warnings,
        )
    result: List[MonthlySnapshot] = []
    for period in sorted(snapshots):
        prior = snapshots.get(previous_month(period))
        result.append(attach_effects(snapshots[period], prior.payroll_basis if prior else None))
    return result
