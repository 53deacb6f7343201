from __future__ import annotations

from datetime import date

from backend.app.metrics.definitions import get_definitions
from backend.app.metrics.status import MetricStatusEnum, metric_with_status, snapshot_points
from backend.app.snapshots.models import MonthlySnapshot


def test_definitions_have_unique_keys() -> None:
    keys = [d.key for d in get_definitions()]
    assert len(keys) == len(set(keys))
    assert "taux_absenteisme" in keys


def test_lower_is_better_thresholds() -> None:
    assert metric_with_status("taux_absenteisme", 3.0).status == MetricStatusEnum.green
    assert metric_with_status("taux_absenteisme", 4.0).status == MetricStatusEnum.green
    assert metric_with_status("taux_absenteisme", 6.5).status == MetricStatusEnum.yellow
    assert metric_with_status("taux_absenteisme", 9.0).status == MetricStatusEnum.red


def test_higher_is_better_with_custom_thresholds() -> None:
    point = metric_with_status("effectif_fin_mois", 8, thresholds={"green": 10, "yellow": 5})
    assert point.status == MetricStatusEnum.yellow
    assert point.thresholds == {"green": 10, "yellow": 5}


def test_no_thresholds_means_no_status() -> None:
    point = metric_with_status("masse_salariale_brute", 12000.0)
    assert point.status is None
    assert point.thresholds is None
    assert metric_with_status("taux_absenteisme", None).status is None


def test_snapshot_points_cover_every_definition() -> None:
    snapshot = MonthlySnapshot(
        etablissement_id="E",
        periode=date(2024, 3, 1),
        taux_absenteisme=8.0,
        taux_turnover=1.0,
    )
    points = {p.key: p for p in snapshot_points(snapshot, {"taux_turnover": {"green": 0.5, "yellow": 2.0}})}
    assert set(points) == {d.key for d in get_definitions()}
    assert points["taux_absenteisme"].status == MetricStatusEnum.red
    assert points["taux_turnover"].status == MetricStatusEnum.yellow
    assert points["taux_absenteisme"].periode == date(2024, 3, 1)
