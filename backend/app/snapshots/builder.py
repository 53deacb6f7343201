from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential, wait_random

from backend.app.config.env import EngineSettings
from backend.app.metrics.payroll import PayrollBasis
from backend.app.metrics.records import Dataset, PeriodRecords, previous_month, slice_period
from backend.app.snapshots.assembly import (
    attach_effects,
    basis_from_records,
    build_reduced_snapshot,
    build_snapshot,
)
from backend.app.snapshots.errors import (
    ImportCancelledError,
    ImportValidationError,
    SnapshotImportError,
    TransientStorageError,
)
from backend.app.snapshots.models import (
    ImportPhase,
    ImportProgress,
    ImportReport,
    MonthlySnapshot,
    PeriodOutcome,
)
from backend.app.snapshots.store import Record, SnapshotStore, record_period
from backend.app.snapshots.validation import validate_dataset


ProgressCallback = Callable[[ImportProgress], None]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ImportCancellation:
    """Abort flag shared with whoever may cancel a running import."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class _Progress:
    """Monotonic counter; safe to bump from concurrent tasks and threads."""

    def __init__(self, total: int, callback: Optional[ProgressCallback]) -> None:
        self.total = total
        self.completed = 0
        self.phase = ImportPhase.validating
        self._callback = callback
        self._lock = threading.Lock()

    def enter(self, phase: ImportPhase, message: Optional[str] = None) -> None:
        with self._lock:
            self.phase = phase
            update = ImportProgress(phase=phase, completed=self.completed, total=self.total, message=message)
        self._emit(update)

    def step(self, message: Optional[str] = None) -> None:
        with self._lock:
            self.completed = min(self.total, self.completed + 1)
            update = ImportProgress(phase=self.phase, completed=self.completed, total=self.total, message=message)
        self._emit(update)

    def _emit(self, update: ImportProgress) -> None:
        if self._callback is not None:
            self._callback(update)


def _chunks(records: Sequence[Record], size: int) -> List[Sequence[Record]]:
    return [records[i : i + size] for i in range(0, len(records), size)]


class SnapshotBuilder:
    """Turns a normalized import into stored monthly snapshots.

    validating -> processing -> effects -> completion, with `error` reachable
    from any step. A period that cannot be computed or stored is reported as
    such without stopping the others; the import only fails when no snapshot
    at all could be produced.
    """

    def __init__(
        self,
        store: SnapshotStore,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], datetime] = utcnow,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.settings = settings or EngineSettings()
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    async def _retry(self, fn: Callable[..., Awaitable], *args):
        s = self.settings
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(s.retry_attempts),
            wait=wait_exponential(multiplier=s.retry_initial_s, max=s.retry_max_s, exp_base=2)
            + wait_random(0, s.retry_jitter_s),
            retry=retry_if_exception_type(TransientStorageError),
            reraise=True,
        ):
            with attempt:
                return await fn(*args)

    async def run(
        self,
        dataset: Dataset,
        etablissement_id: str,
        batch_id: Optional[str] = None,
        cancellation: Optional[ImportCancellation] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ImportReport:
        cancellation = cancellation or ImportCancellation()
        report = ImportReport(batch_id=batch_id or uuid.uuid4().hex, etablissement_id=etablissement_id)
        chunk_lists = [
            _chunks(dataset.employees, self.settings.batch_size),
            _chunks(dataset.remunerations, self.settings.batch_size),
            _chunks(dataset.absences, self.settings.batch_size),
        ]
        chunks = [c for group in chunk_lists for c in group]
        progress = _Progress(len(chunks) + 2 * len(dataset.periods), on_progress)

        try:
            # 1) Validation gate
            progress.enter(ImportPhase.validating)
            validation = validate_dataset(dataset)
            report.data_quality_score = validation.quality_score
            report.warnings.extend(i.message for i in validation.warnings)
            if not validation.can_proceed:
                raise ImportValidationError(validation)

            # 2) Store source rows, then compute each month
            report.phase = ImportPhase.processing
            progress.enter(ImportPhase.processing)
            written, unsaved = await self._upsert_chunks(etablissement_id, chunks, report, progress, cancellation)
            report.records_imported = written
            computed: Dict[date, Tuple[MonthlySnapshot, Optional[PeriodRecords]]] = {}
            for period in dataset.periods:
                self._check_cancelled(cancellation, report)
                snapshot, previous, outcome = await self._compute_period(
                    dataset, etablissement_id, period, report, validation.quality_score, unsaved
                )
                if snapshot is not None:
                    computed[period] = (snapshot, previous)
                else:
                    # nothing to store for this month
                    progress.step()
                report.outcomes.append(outcome)
                progress.step(f"Période {period.isoformat()} calculée")

            # 3) Price/volume/mix against the month before
            report.phase = ImportPhase.effects
            progress.enter(ImportPhase.effects)
            snapshots = self._apply_effects(computed)

            # 4) Replace stored snapshots
            report.phase = ImportPhase.completion
            progress.enter(ImportPhase.completion)
            report.snapshots = await self._store_snapshots(snapshots, report, progress, cancellation)
        except Exception as exc:
            report.phase = ImportPhase.error
            progress.enter(ImportPhase.error, str(exc))
            raise

        if dataset.total_records and not report.snapshots:
            report.phase = ImportPhase.error
            progress.enter(ImportPhase.error, "Aucun snapshot produit")
            raise SnapshotImportError(report)

        progress.enter(ImportPhase.completion, "Import terminé")
        self.logger.info(
            "Import %s: %d/%d periods stored (%.0f%%)",
            report.batch_id, report.produced, len(report.outcomes), report.success_ratio * 100,
        )
        return report

    def _check_cancelled(self, cancellation: ImportCancellation, report: ImportReport) -> None:
        if cancellation.cancelled:
            self.logger.warning("Import %s cancelled during %s", report.batch_id, report.phase.value)
            raise ImportCancelledError(report)

    async def _upsert_chunks(
        self,
        etablissement_id: str,
        chunks: List[Sequence[Record]],
        report: ImportReport,
        progress: _Progress,
        cancellation: ImportCancellation,
    ) -> Tuple[int, Set[date]]:
        """Write every chunk; returns the rows written and the months left incomplete."""
        semaphore = asyncio.Semaphore(self.settings.max_concurrency)
        unsaved: Set[date] = set()

        async def upsert(chunk: Sequence[Record]) -> int:
            async with semaphore:
                try:
                    written = await self._retry(self.store.upsert_records, etablissement_id, chunk)
                except Exception:
                    self.logger.exception("Chunk of %d rows could not be stored", len(chunk))
                    report.warnings.append(f"{len(chunk)} ligne(s) non enregistrée(s) après plusieurs tentatives")
                    unsaved.update(record_period(r) for r in chunk)
                    written = 0
                progress.step()
                return written

        tasks: List[asyncio.Task] = []
        for chunk in chunks:
            if cancellation.cancelled:
                # let dispatched writes finish, their results are discarded
                await asyncio.gather(*tasks, return_exceptions=True)
                self._check_cancelled(cancellation, report)
            tasks.append(asyncio.create_task(upsert(chunk)))
            # hand control to the started task so cancellation is seen between dispatches
            await asyncio.sleep(0)
        results = await asyncio.gather(*tasks)
        return sum(results), unsaved

    async def _fetch_or_slice(
        self, dataset: Dataset, etablissement_id: str, period: date, unsaved: Set[date]
    ) -> Tuple[PeriodRecords, bool]:
        """Records of a month from the store, or from the import itself when the
        store cannot be read or is missing some of the month's rows."""
        if period in unsaved:
            return slice_period(dataset, period), False
        try:
            records = await self._retry(self.store.fetch_period_records, etablissement_id, period)
            return records, True
        except Exception:
            self.logger.exception("Could not read %s back from the store", period)
            return slice_period(dataset, period), False

    async def _compute_period(
        self,
        dataset: Dataset,
        etablissement_id: str,
        period: date,
        report: ImportReport,
        quality_score: float,
        unsaved: Set[date],
    ) -> Tuple[Optional[MonthlySnapshot], Optional[PeriodRecords], PeriodOutcome]:
        calculated_at = self.clock()
        records, from_store = await self._fetch_or_slice(dataset, etablissement_id, period, unsaved)
        previous, _ = await self._fetch_or_slice(dataset, etablissement_id, previous_month(period), unsaved)
        previous = previous if not previous.is_empty else None

        if from_store:
            warnings: List[str] = []
            try:
                snapshot = build_snapshot(
                    etablissement_id,
                    period,
                    records,
                    previous,
                    batch_id=report.batch_id,
                    calculated_at=calculated_at,
                    quality_score=quality_score,
                    voluntary_ratio=self.settings.voluntary_exit_ratio,
                    warnings=warnings,
                )
                report.warnings.extend(warnings)
                return snapshot, previous, PeriodOutcome(periode=period, status="ok")
            except Exception as exc:
                self.logger.exception("Full computation failed for %s", period)
                reason = f"Calcul complet impossible: {exc}"
        elif period in unsaved:
            reason = "Lignes sources non enregistrées, calcul réduit sur les données importées"
        else:
            reason = "Lecture du stockage impossible, calcul réduit sur les données importées"

        try:
            snapshot = build_reduced_snapshot(
                etablissement_id,
                period,
                records,
                batch_id=report.batch_id,
                calculated_at=calculated_at,
                quality_score=quality_score,
            )
        except Exception as exc:
            self.logger.exception("Reduced computation failed for %s", period)
            return None, previous, PeriodOutcome(periode=period, status="failed", message=f"Calcul impossible: {exc}")
        return snapshot, previous, PeriodOutcome(periode=period, status="reduced", message=reason)

    def _apply_effects(
        self, computed: Dict[date, Tuple[MonthlySnapshot, Optional[PeriodRecords]]]
    ) -> List[MonthlySnapshot]:
        snapshots: List[MonthlySnapshot] = []
        for period in sorted(computed):
            snapshot, previous_records = computed[period]
            previous_basis: Optional[PayrollBasis] = None
            prior = computed.get(previous_month(period))
            if prior is not None:
                previous_basis = prior[0].payroll_basis
            elif previous_records is not None:
                previous_basis = basis_from_records(previous_records)
            snapshots.append(attach_effects(snapshot, previous_basis))
        return snapshots

    async def _store_snapshots(
        self,
        snapshots: List[MonthlySnapshot],
        report: ImportReport,
        progress: _Progress,
        cancellation: ImportCancellation,
    ) -> List[MonthlySnapshot]:
        semaphore = asyncio.Semaphore(self.settings.max_concurrency)
        outcomes = {o.periode: o for o in report.outcomes}

        async def replace(snapshot: MonthlySnapshot) -> Optional[MonthlySnapshot]:
            # a failed replace leaves the previously stored snapshot in place
            async with semaphore:
                try:
                    await self._retry(self.store.replace_snapshot, snapshot)
                except Exception as exc:
                    self.logger.exception("Snapshot %s could not be stored", snapshot.periode)
                    outcome = outcomes[snapshot.periode]
                    outcome.status = "failed"
                    outcome.message = f"Enregistrement impossible: {exc}"
                    stored = None
                else:
                    stored = snapshot
                progress.step(f"Période {snapshot.periode.isoformat()} enregistrée")
                return stored

        tasks: List[asyncio.Task] = []
        for snapshot in snapshots:
            if cancellation.cancelled:
                await asyncio.gather(*tasks, return_exceptions=True)
                self._check_cancelled(cancellation, report)
            tasks.append(asyncio.create_task(replace(snapshot)))
            await asyncio.sleep(0)
        results = await asyncio.gather(*tasks)
        return [s for s in results if s is not None]
