from __future__ import annotations

import logging
from typing import Any, List, Literal, Optional, Set, Tuple

from pydantic import BaseModel, Field

from backend.app.metrics.normalizer import fold
from backend.app.metrics.records import MONETARY_FIELDS, Dataset
from backend.app.metrics.workforce import classify_contract


logger = logging.getLogger(__name__)

Severity = Literal["critical", "warning"]

CRITICAL_PENALTY = 10
WARNING_PENALTY = 2

STANDARD_STATUSES = frozenset({"actif", "inactif", "sorti", "suspendu", "conge"})

# Spreadsheet row of the first data line (header is row 1)
FIRST_DATA_ROW = 2


class ValidationIssue(BaseModel):
    sheet: Literal["EMPLOYES", "REMUNERATION", "ABSENCES"]
    row: Optional[int] = None
    field: Optional[str] = None
    value: Optional[Any] = None
    message: str
    severity: Severity


class ValidationReport(BaseModel):
    issues: List[ValidationIssue] = Field(default_factory=list)
    critical_count: int = 0
    warning_count: int = 0
    quality_score: int = 100
    can_proceed: bool = True

    @classmethod
    def from_issues(cls, issues: List[ValidationIssue]) -> "ValidationReport":
        critical = sum(1 for i in issues if i.severity == "critical")
        warnings = len(issues) - critical
        return cls(
            issues=issues,
            critical_count=critical,
            warning_count=warnings,
            quality_score=max(0, 100 - CRITICAL_PENALTY * critical - WARNING_PENALTY * warnings),
            can_proceed=critical == 0,
        )

    @property
    def critical(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == "critical"]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]


def _issue(sheet, index: Optional[int], field, value, message, severity: Severity) -> ValidationIssue:
    row = index + FIRST_DATA_ROW if index is not None else None
    return ValidationIssue(sheet=sheet, row=row, field=field, value=value, message=message, severity=severity)


def validate_dataset(dataset: Dataset) -> ValidationReport:
    """Check a normalized import before anything is written.

    Critical issues block the import; warnings only lower the quality score.
    """
    issues: List[ValidationIssue] = []
    seen: Set[Tuple[str, Any]] = set()

    for index, emp in enumerate(dataset.employees):
        if not emp.matricule:
            issues.append(_issue("EMPLOYES", index, "matricule", None, "Matricule manquant", "critical"))
        if emp.date_entree is None:
            issues.append(_issue("EMPLOYES", index, "date_entree", None, "Date d'entrée manquante ou invalide", "critical"))
        elif emp.date_sortie is not None and emp.date_sortie < emp.date_entree:
            issues.append(
                _issue(
                    "EMPLOYES", index, "date_sortie", emp.date_sortie.isoformat(),
                    "Date de sortie antérieure à la date d'entrée", "critical",
                )
            )
        if emp.temps_travail is None or not (0 < emp.temps_travail <= 1):
            issues.append(
                _issue("EMPLOYES", index, "temps_travail", emp.temps_travail, "Temps de travail hors de ]0, 1]", "critical")
            )
        key = (emp.matricule, emp.periode)
        if emp.matricule and key in seen:
            issues.append(
                _issue("EMPLOYES", index, "matricule", emp.matricule, f"Doublon pour la période {emp.periode.isoformat()}", "critical")
            )
        seen.add(key)

        if classify_contract(emp.type_contrat) is None:
            issues.append(_issue("EMPLOYES", index, "type_contrat", emp.type_contrat, "Type de contrat non standard", "warning"))
        if fold(emp.statut_emploi) not in STANDARD_STATUSES:
            issues.append(_issue("EMPLOYES", index, "statut_emploi", emp.statut_emploi, "Statut d'emploi non standard", "warning"))

    employee_periods = {(e.matricule, e.periode) for e in dataset.employees}
    matricules = {e.matricule for e in dataset.employees}

    for index, rem in enumerate(dataset.remunerations):
        if not rem.matricule:
            issues.append(_issue("REMUNERATION", index, "matricule", None, "Matricule manquant", "critical"))
        for name in MONETARY_FIELDS:
            amount = getattr(rem, name)
            if amount < 0:
                issues.append(_issue("REMUNERATION", index, name, amount, "Montant négatif", "critical"))
        if rem.matricule and (rem.matricule, rem.mois_paie) not in employee_periods:
            issues.append(
                _issue(
                    "REMUNERATION", index, "matricule", rem.matricule,
                    "Rémunération sans salarié pour cette période", "warning",
                )
            )

    for index, absence in enumerate(dataset.absences):
        if absence.date_fin is not None and absence.date_fin < absence.date_debut:
            issues.append(
                _issue("ABSENCES", index, "date_fin", absence.date_fin.isoformat(), "Date de fin antérieure au début", "critical")
            )
        if absence.matricule not in matricules:
            issues.append(_issue("ABSENCES", index, "matricule", absence.matricule, "Matricule inconnu", "warning"))

    if dataset.rejected_rows:
        issues.append(
            _issue(
                "ABSENCES", None, "date_debut", dataset.rejected_rows,
                f"{dataset.rejected_rows} absence(s) sans date de début lisible ignorée(s)", "warning",
            )
        )

    report = ValidationReport.from_issues(issues)
    logger.info(
        "Validation: %d critical, %d warnings, quality %d",
        report.critical_count, report.warning_count, report.quality_score,
    )
    return report
