from __future__ import annotations

from datetime import date
from typing import List, Optional

from backend.app.metrics.absence import categorize_absence, compute_absence, working_days_in_month
from backend.app.metrics.records import AbsenceRecord, EmployeeRecord


MARCH = date(2024, 3, 1)


def _employee(matricule: str, statut: str = "Actif") -> EmployeeRecord:
    return EmployeeRecord(matricule=matricule, periode=MARCH, statut_emploi=statut)


def _absence(matricule: str, kind: str, start: date, end: Optional[date] = None) -> AbsenceRecord:
    return AbsenceRecord(matricule=matricule, type_absence=kind, date_debut=start, date_fin=end)


def test_working_days() -> None:
    assert working_days_in_month(date(2024, 3, 1)) == 21
    assert working_days_in_month(date(2024, 2, 1)) == 21
    assert working_days_in_month(date(2023, 2, 1)) == 20


def test_categories() -> None:
    assert categorize_absence("Maladie ordinaire") == "maladie"
    assert categorize_absence("Sick leave") == "maladie"
    assert categorize_absence("AT") == "accident_travail"
    assert categorize_absence("Accident du travail") == "accident_travail"
    assert categorize_absence("Congés payés") == "conges"
    assert categorize_absence("CP") == "conges"
    # "at" inside a word is not the work-accident code
    assert categorize_absence("Formation") == "formation"
    assert categorize_absence("Événement familial") == "autres"
    assert categorize_absence(None) == "autres"


def test_no_active_employee_means_zero_metrics() -> None:
    metrics = compute_absence(
        [_absence("E1", "Maladie", date(2024, 3, 4), date(2024, 3, 8))],
        [_employee("E1", statut="Sorti")],
        MARCH,
    )
    assert metrics.taux_absenteisme == 0.0
    assert metrics.nb_absences_total == 0


def test_rates_and_breakdown() -> None:
    employees = [_employee("E1"), _employee("E2"), _employee("E3"), _employee("E4", statut="Sorti")]
    absences = [
        _absence("E1", "Maladie", date(2024, 3, 4), date(2024, 3, 8)),
        _absence("E2", "AT", date(2024, 3, 11), date(2024, 3, 12)),
        _absence("E2", "Congés payés", date(2024, 3, 18), date(2024, 3, 22)),
        _absence("E3", "Formation", date(2024, 3, 25)),
    ]
    metrics = compute_absence(absences, employees, MARCH)

    assert metrics.nb_jours_maladie == 5
    assert metrics.nb_jours_accident_travail == 2
    assert metrics.nb_jours_conges == 5
    assert metrics.nb_jours_formation == 1
    assert metrics.nb_jours_autres == 0
    assert metrics.nb_jours_absence == 13
    assert metrics.nb_jours_absence_maladie == 7

    # 3 active × 21 working days
    assert metrics.taux_absenteisme == 20.63
    assert metrics.taux_absenteisme_maladie == 11.11

    assert metrics.nb_absences_total == 4
    assert metrics.nb_salaries_absents == 3
    assert metrics.duree_moyenne_absence == 3.3
    assert metrics.frequence_absence == 1.33


def test_incoherent_spells_are_dropped_with_a_warning() -> None:
    warnings: List[str] = []
    absences = [
        _absence("E1", "Maladie", date(2024, 3, 10), date(2024, 3, 5)),
        _absence("E1", "Maladie", date(2024, 3, 1), date(2025, 6, 1)),
        _absence("E1", "Maladie", date(2024, 3, 4), date(2024, 3, 4)),
    ]
    metrics = compute_absence(absences, [_employee("E1")], MARCH, warnings)
    assert metrics.nb_absences_total == 1
    assert metrics.nb_jours_maladie == 1
    assert len(warnings) == 2
    assert all("E1" in w for w in warnings)
