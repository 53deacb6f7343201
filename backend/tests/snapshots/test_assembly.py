from __future__ import annotations

from datetime import date, datetime, timezone

from backend.app.metrics.normalizer import normalize_dataset
from backend.app.metrics.records import PeriodRecords, slice_period
from backend.app.snapshots.assembly import (
    attach_effects,
    basis_from_records,
    build_reduced_snapshot,
    build_snapshot,
    build_snapshots,
)


FEB = date(2024, 2, 1)
MARCH = date(2024, 3, 1)
CALCULATED_AT = datetime(2024, 4, 2, 8, 0, tzinfo=timezone.utc)


def test_two_month_import_end_to_end(hr_sheets) -> None:
    dataset = normalize_dataset(hr_sheets)
    feb, march = build_snapshots(dataset, "ETAB-1", batch_id="b1", calculated_at=CALCULATED_AT)

    assert (feb.periode, march.periode) == (FEB, MARCH)
    assert march.etablissement_id == "ETAB-1"
    assert march.import_batch_id == "b1"
    assert march.fidelity == "full"

    # workforce
    assert march.effectif_debut_mois == 3
    assert march.effectif_fin_mois == 3
    assert march.etp_fin_mois == 2.8
    assert march.nb_sorties == 1
    assert march.nb_sorties_volontaires == 0
    assert march.taux_turnover == 33.33
    assert march.taux_turnover_annualise == 399.96
    assert march.pct_cdi == 66.67
    assert march.pct_precarite == 33.33

    # demographics
    assert (march.nb_hommes, march.nb_femmes) == (1, 2)
    assert march.age_moyen == 32.0

    # absence: 5 sick days over 3 active employees × 21 working days
    assert march.nb_jours_maladie == 5
    assert march.taux_absenteisme_maladie == 7.94
    assert feb.nb_jours_conges == 5

    # payroll
    assert feb.masse_salariale_brute == 7400.0
    assert march.masse_salariale_brute == 8200.0
    assert march.taux_charges == 39.02

    # effects chained on the February snapshot
    assert march.effet_prix == 800.0
    assert march.effet_volume == 0.0
    assert march.effet_mix == 0.0
    assert march.variation_masse_salariale == 800.0
    assert march.coherence_ok is True
    assert feb.effet_prix == 0.0
    assert feb.variation_masse_salariale == 0.0


def test_rebuilding_gives_identical_snapshots(hr_sheets) -> None:
    dataset = normalize_dataset(hr_sheets)
    first = build_snapshots(dataset, "ETAB-1", calculated_at=CALCULATED_AT)
    second = build_snapshots(dataset, "ETAB-1", calculated_at=CALCULATED_AT)
    assert [s.model_dump() for s in first] == [s.model_dump() for s in second]


def test_empty_month_still_yields_a_snapshot() -> None:
    snapshot = build_snapshot("ETAB-1", date(2024, 5, 17), PeriodRecords())
    assert snapshot.periode == date(2024, 5, 1)
    assert snapshot.effectif_fin_mois == 0
    assert snapshot.taux_absenteisme == 0.0
    assert snapshot.masse_salariale_brute == 0.0


def test_reduced_snapshot_keeps_core_figures(hr_sheets) -> None:
    records = slice_period(normalize_dataset(hr_sheets), MARCH)
    snapshot = build_reduced_snapshot("ETAB-1", MARCH, records, quality_score=90)
    assert snapshot.fidelity == "reduced"
    assert snapshot.effectif_fin_mois == 3
    assert snapshot.etp_fin_mois == 2.8
    assert snapshot.masse_salariale_brute == 8200.0
    assert snapshot.taux_turnover == 0.0
    assert snapshot.data_quality_score == 45.0


def test_attach_effects_from_raw_previous_records(hr_sheets) -> None:
    dataset = normalize_dataset(hr_sheets)
    march = build_snapshot("ETAB-1", MARCH, slice_period(dataset, MARCH))
    basis = basis_from_records(slice_period(dataset, FEB))
    assert basis is not None
    assert basis.masse_salariale_brute == 7400.0

    with_effects = attach_effects(march, basis)
    assert with_effects.effet_prix == 800.0
    assert march.effet_prix == 0.0
    assert attach_effects(march, None) is march
    assert basis_from_records(PeriodRecords()) is None


def test_three_employee_march_scenario() -> None:
    dataset = normalize_dataset(
        {
            "employees": [
                {"matricule": "A", "periode": "2024-03-01", "date_entree": "2019-01-01", "type_contrat": "CDI"},
                {"matricule": "B", "periode": "2024-03-01", "date_entree": "2020-01-01", "type_contrat": "CDI",
                 "date_sortie": "2024-03-20"},
                {"matricule": "C", "periode": "2024-03-01", "date_entree": "2023-01-01", "type_contrat": "CDD"},
            ],
            "absences": [
                {"matricule": "A", "type_absence": "Maladie", "date_debut": "2024-03-01", "date_fin": "2024-03-05"},
            ],
        }
    )
    (snapshot,) = build_snapshots(dataset, "ETAB-1")

    assert snapshot.effectif_fin_mois == 3
    assert snapshot.nb_sorties == 1
    assert snapshot.pct_cdi == 66.67
    assert abs(snapshot.pct_cdi + snapshot.pct_precarite - 100) < 1e-9
    assert snapshot.nb_jours_maladie == 5
    assert snapshot.taux_absenteisme_maladie == 7.94
    assert snapshot.taux_turnover == snapshot.taux_turnover_mensuel
    assert snapshot.taux_turnover_annualise == round(snapshot.taux_turnover_mensuel * 12, 2)
