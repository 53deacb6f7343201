from __future__ import annotations

from datetime import date
from typing import Optional

from backend.app.metrics.records import EmployeeRecord
from backend.app.metrics.workforce import classify_contract, compute_workforce


MARCH = date(2024, 3, 1)


def _employee(
    matricule: str,
    contrat: str = "CDI",
    temps: Optional[float] = 1.0,
    entree: Optional[date] = None,
    sortie: Optional[date] = None,
    periode: date = MARCH,
) -> EmployeeRecord:
    return EmployeeRecord(
        matricule=matricule,
        periode=periode,
        type_contrat=contrat,
        temps_travail=temps,
        date_entree=entree,
        date_sortie=sortie,
        statut_emploi="Actif",
    )


def test_classify_contract_buckets() -> None:
    assert classify_contract("CDI") == "cdi"
    assert classify_contract("Contrat à durée indéterminée (CDI)") == "cdi"
    assert classify_contract("cdd") == "cdd"
    assert classify_contract("Fixed-term") == "cdd"
    assert classify_contract("Intérim") == "interim"
    assert classify_contract("Temporary worker") == "interim"
    assert classify_contract("Apprentissage / alternance") == "alternance"
    assert classify_contract("Stagiaire") == "stage"
    assert classify_contract("Freelance") is None
    assert classify_contract(None) is None


def test_empty_month_is_all_zero() -> None:
    metrics = compute_workforce([], MARCH)
    assert metrics.effectif_fin_mois == 0
    assert metrics.taux_turnover == 0.0
    assert metrics.pct_precarite == 0.0


def test_headcount_movements_and_turnover() -> None:
    previous = [_employee(f"P{i}", periode=date(2024, 2, 1)) for i in range(4)]
    employees = [
        _employee("E1"),
        _employee("E2", temps=0.5),
        _employee("E3", contrat="CDD", entree=date(2024, 3, 11)),
        _employee("E4", sortie=date(2024, 3, 20)),
        _employee("E5", contrat="Stage", sortie=date(2024, 3, 29)),
    ]
    metrics = compute_workforce(employees, MARCH, previous)

    assert metrics.effectif_debut_mois == 4
    assert metrics.effectif_fin_mois == 5
    assert metrics.effectif_moyen == 4.5
    assert metrics.etp_fin_mois == 4.5
    assert metrics.etp_debut_mois == 4.0
    assert metrics.etp_moyen == 4.25

    assert metrics.nb_entrees == 1
    assert metrics.nb_sorties == 2
    # floor(2 × 0.6)
    assert metrics.nb_sorties_volontaires == 1
    assert metrics.nb_sorties_involontaires == 1

    # 2 / 4.5 × 100
    assert metrics.taux_turnover_mensuel == 44.44
    assert metrics.taux_turnover == metrics.taux_turnover_mensuel
    assert metrics.taux_turnover_annualise == 533.28
    assert metrics.taux_turnover_volontaire_mensuel == 22.22
    assert metrics.taux_turnover_volontaire_annualise == 266.64


def test_start_of_month_defaults_to_end_without_previous_rows() -> None:
    employees = [_employee("E1"), _employee("E2", sortie=date(2024, 3, 5))]
    metrics = compute_workforce(employees, MARCH)
    assert metrics.effectif_debut_mois == 2
    assert metrics.effectif_moyen == 2.0
    assert metrics.taux_turnover_mensuel == 50.0
    assert metrics.taux_turnover_annualise == 600.0


def test_zero_fte_counts_as_full_time() -> None:
    metrics = compute_workforce([_employee("E1", temps=0), _employee("E2", temps=None)], MARCH)
    assert metrics.etp_fin_mois == 2.0


def test_contract_mix_and_precarity() -> None:
    employees = [
        _employee("E1"),
        _employee("E2"),
        _employee("E3", contrat="CDD"),
        _employee("E4", contrat="Interim"),
        _employee("E5", contrat="Alternance"),
        _employee("E6", contrat="Freelance"),
    ]
    metrics = compute_workforce(employees, MARCH)
    assert (metrics.nb_cdi, metrics.nb_cdd, metrics.nb_interim, metrics.nb_alternance) == (2, 1, 1, 1)
    assert metrics.pct_cdi == 33.33
    assert metrics.pct_cdd == 16.67
    # unrecognized contracts still count as non-CDI
    assert metrics.pct_precarite == 66.67


def test_custom_voluntary_ratio() -> None:
    employees = [_employee(f"E{i}", sortie=date(2024, 3, 10)) for i in range(5)]
    metrics = compute_workforce(employees, MARCH, voluntary_ratio=0.4)
    assert metrics.nb_sorties_volontaires == 2
    assert metrics.nb_sorties_involontaires == 3
