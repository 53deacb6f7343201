from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator


class EmployeeRecord(BaseModel):
    """One employee row for one reporting month.

    `periode` is always collapsed to the first day of its month.
    """

    model_config = ConfigDict(frozen=True)

    matricule: str
    periode: date
    sexe: Optional[str] = None  # "M", "F" or None after normalization
    date_naissance: Optional[date] = None
    date_entree: Optional[date] = None
    date_sortie: Optional[date] = None
    type_contrat: Optional[str] = None
    temps_travail: Optional[float] = 1.0
    statut_emploi: Optional[str] = None
    intitule_poste: Optional[str] = None

    @field_validator("periode")
    @classmethod
    def _first_of_month(cls, value: date) -> date:
        return value.replace(day=1)

    @property
    def fte(self) -> float:
        # 0 and None both count as full time
        return float(self.temps_travail or 1.0)

    @property
    def is_active(self) -> bool:
        return self.statut_emploi == "Actif"


class RemunerationRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    matricule: str
    mois_paie: date
    salaire_de_base: float = 0.0
    primes_fixes: float = 0.0
    primes_variables: float = 0.0
    primes_exceptionnelles: float = 0.0
    heures_supp_payees: float = 0.0
    avantages_nature: float = 0.0
    indemnites: float = 0.0
    cotisations_sociales: float = 0.0
    taxes_sur_salaire: float = 0.0
    autres_charges: float = 0.0

    @field_validator("mois_paie")
    @classmethod
    def _first_of_month(cls, value: date) -> date:
        return value.replace(day=1)

    @property
    def gross(self) -> float:
        """Gross pay: everything except employer contributions and taxes."""
        return (
            self.salaire_de_base
            + self.primes_fixes
            + self.primes_variables
            + self.primes_exceptionnelles
            + self.heures_supp_payees
            + self.avantages_nature
            + self.indemnites
        )


class AbsenceRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    matricule: str
    type_absence: str = ""
    famille: str = "Autres"
    date_debut: date
    date_fin: Optional[date] = None
    motif: Optional[str] = None
    justificatif_fourni: bool = False
    validation_status: Optional[str] = None

    @property
    def end(self) -> date:
        return self.date_fin or self.date_debut

    @property
    def duration_days(self) -> int:
        """Inclusive length of the spell in calendar days."""
        return (self.end - self.date_debut).days + 1


MONETARY_FIELDS: Tuple[str, ...] = (
    "salaire_de_base",
    "primes_fixes",
    "primes_variables",
    "primes_exceptionnelles",
    "heures_supp_payees",
    "avantages_nature",
    "indemnites",
    "cotisations_sociales",
    "taxes_sur_salaire",
    "autres_charges",
)


@dataclass(frozen=True)
class Dataset:
    """Normalized content of one import, all sheets together."""

    employees: Tuple[EmployeeRecord, ...] = ()
    remunerations: Tuple[RemunerationRecord, ...] = ()
    absences: Tuple[AbsenceRecord, ...] = ()
    periods: Tuple[date, ...] = ()
    rejected_rows: int = 0

    @property
    def total_records(self) -> int:
        return len(self.employees) + len(self.remunerations) + len(self.absences)


@dataclass(frozen=True)
class PeriodRecords:
    """The three record sets belonging to one reporting month."""

    employees: Tuple[EmployeeRecord, ...] = ()
    remunerations: Tuple[RemunerationRecord, ...] = ()
    absences: Tuple[AbsenceRecord, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not (self.employees or self.remunerations or self.absences)


def same_month(value: Optional[date], period: date) -> bool:
    return value is not None and value.year == period.year and value.month == period.month


def previous_month(period: date) -> date:
    if period.month == 1:
        return date(period.year - 1, 12, 1)
    return date(period.year, period.month - 1, 1)


def slice_period(dataset: Dataset, period: date) -> PeriodRecords:
    """Rows of `dataset` that belong to `period` (absences by start date)."""
    return PeriodRecords(
        employees=tuple(e for e in dataset.employees if e.periode == period),
        remunerations=tuple(r for r in dataset.remunerations if r.mois_paie == period),
        absences=tuple(a for a in dataset.absences if same_month(a.date_debut, period)),
    )
