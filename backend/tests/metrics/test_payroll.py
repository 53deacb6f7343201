from __future__ import annotations

from datetime import date
from typing import List

from backend.app.metrics.payroll import PayrollBasis, compute_effects, compute_payroll
from backend.app.metrics.records import EmployeeRecord, RemunerationRecord


MARCH = date(2024, 3, 1)


def _payslip(matricule: str, base: float, **amounts: float) -> RemunerationRecord:
    return RemunerationRecord(matricule=matricule, mois_paie=MARCH, salaire_de_base=base, **amounts)


def _employee(matricule: str, temps: float = 1.0) -> EmployeeRecord:
    return EmployeeRecord(matricule=matricule, periode=MARCH, temps_travail=temps)


def test_empty_payroll() -> None:
    metrics = compute_payroll([])
    assert metrics.masse_salariale_brute == 0.0
    assert metrics.nb_salaries_payes == 0


def test_masses_costs_and_ratios() -> None:
    payslips = [
        _payslip("E1", 3000, primes_variables=300, cotisations_sociales=1200, taxes_sur_salaire=50),
        _payslip("E2", 2000, primes_exceptionnelles=200, heures_supp_payees=100, cotisations_sociales=920),
    ]
    employees = [_employee("E1"), _employee("E2", 0.5)]
    metrics = compute_payroll(payslips, employees)

    assert metrics.masse_salariale_brute == 5600.0
    assert metrics.cotisations_sociales_total == 2120.0
    assert metrics.masse_salariale_chargee == 6660.0
    assert metrics.cout_total_employeur == 7770.0

    assert metrics.salaire_base_moyen == 2500.0
    assert metrics.salaire_base_median == 2500.0
    # 5600 / 1.5 FTE
    assert metrics.cout_moyen_par_fte == 3733.33
    # per payslip: 3300 / 1 and 2300 / 0.5
    assert metrics.cout_median_par_fte == 3950.0

    assert metrics.part_variable == 10.0
    assert metrics.taux_charges == 37.86
    assert metrics.heures_supp_total == 100.0
    assert metrics.nb_salaries_payes == 2
    assert metrics.nb_remunerations_orphelines == 0


def test_orphan_payslips_are_counted_and_kept() -> None:
    warnings: List[str] = []
    payslips = [_payslip("E1", 2000), _payslip("GHOST", 1000)]
    metrics = compute_payroll(payslips, [_employee("E1")], warnings)
    assert metrics.masse_salariale_brute == 3000.0
    assert metrics.nb_remunerations_orphelines == 1
    assert warnings == ["Rémunération sans salarié correspondant: GHOST"]


def test_without_employee_rows_no_cost_per_fte() -> None:
    metrics = compute_payroll([_payslip("E1", 2000)])
    assert metrics.cout_moyen_par_fte == 0.0
    assert metrics.nb_remunerations_orphelines == 0


def test_effects_without_previous_month_are_zero() -> None:
    effects = compute_effects(PayrollBasis(10000.0, 4.0), None)
    assert effects.effet_prix == 0.0
    assert effects.effet_volume == 0.0
    assert effects.effet_mix == 0.0
    assert effects.coherence_ok is True


def test_price_volume_mix_decomposition() -> None:
    effects = compute_effects(PayrollBasis(12600.0, 4.5), PayrollBasis(10000.0, 4.0))

    assert effects.cout_moyen_m == 2800.0
    assert effects.cout_moyen_m_moins_1 == 2500.0
    # (2800 - 2500) × 4 and (4.5 - 4) × 2500
    assert effects.effet_prix == 1200.0
    assert effects.effet_volume == 1250.0
    assert effects.effet_mix == 150.0
    assert effects.variation_masse_salariale == 2600.0
    assert effects.variation_masse_salariale_pct == 26.0
    assert effects.coherence_ok is True
    assert effects.ecart_coherence == 0.0


def test_effects_always_close_on_awkward_figures() -> None:
    cases = [
        (PayrollBasis(10333.33, 3.7), PayrollBasis(9876.54, 3.3)),
        (PayrollBasis(1.01, 0.3), PayrollBasis(7777.77, 2.9)),
        (PayrollBasis(50000.0, 12.25), PayrollBasis(51234.56, 13.0)),
    ]
    for current, previous in cases:
        effects = compute_effects(current, previous)
        total = effects.effet_prix + effects.effet_volume + effects.effet_mix
        assert abs(total - effects.variation_masse_salariale) < 0.01
        assert effects.coherence_ok is True


def test_zero_fte_books_variation_as_volume() -> None:
    effects = compute_effects(PayrollBasis(5000.0, 2.0), PayrollBasis(0.0, 0.0))
    assert effects.effet_prix == 0.0
    assert effects.effet_volume == 5000.0
    assert effects.effet_mix == 0.0
    assert effects.variation_masse_salariale_pct == 0.0
