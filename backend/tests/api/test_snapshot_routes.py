from __future__ import annotations

import asyncio
from datetime import date

from fastapi.testclient import TestClient

from backend.app.api.routes.snapshots import get_store
from backend.app.main import app
from backend.app.metrics.normalizer import normalize_dataset
from backend.app.snapshots.assembly import build_snapshots
from backend.app.snapshots.store import InMemorySnapshotStore


client = TestClient(app)


def test_health() -> None:
    r = client.get("/api/snapshots/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_definitions_listed() -> None:
    r = client.get("/api/snapshots/definitions")
    assert r.status_code == 200
    keys = [d["key"] for d in r.json()]
    assert "taux_absenteisme" in keys
    assert "masse_salariale_brute" in keys


def test_validate_clean_payload(hr_sheets) -> None:
    r = client.post("/api/snapshots/validate", json={"etablissement_id": "ETAB-1", **hr_sheets})
    assert r.status_code == 200
    body = r.json()
    assert body["can_proceed"] is True
    assert body["quality_score"] == 100


def test_compute_returns_snapshots_with_statuses(hr_sheets) -> None:
    r = client.post("/api/snapshots/compute", json={"etablissement_id": "ETAB-1", "sector": "tech", **hr_sheets})
    assert r.status_code == 200
    body = r.json()

    assert [s["snapshot"]["periode"] for s in body["snapshots"]] == ["2024-02-01", "2024-03-01"]
    march = body["snapshots"][1]
    assert march["snapshot"]["effectif_fin_mois"] == 3
    assert march["snapshot"]["effet_prix"] == 800.0

    statuses = {p["metric_key"]: p["status"] for p in march["statuses"]}
    # 7.94% sick-leave absenteeism is past the 7% alert line
    assert statuses["taux_absenteisme_maladie"] == "red"
    assert statuses["masse_salariale_brute"] is None

    assert march["advisory"]["workforce_benchmark"]["message"].startswith("Secteur tech")


def test_compute_blocked_by_critical_issues(hr_sheets) -> None:
    hr_sheets["employees"][0]["matricule"] = ""
    hr_sheets["remunerations"][0]["salaire_de_base"] = -100
    r = client.post("/api/snapshots/compute", json=hr_sheets)
    assert r.status_code == 422
    detail = r.json()["detail"]
    assert detail["can_proceed"] is False
    assert detail["critical_count"] == 2


def test_compute_rejects_unknown_sector(hr_sheets) -> None:
    r = client.post("/api/snapshots/compute", json={"sector": "agriculture", **hr_sheets})
    assert r.status_code == 422


def test_stored_snapshot_is_served_from_the_store(hr_sheets) -> None:
    store = InMemorySnapshotStore()
    for snapshot in build_snapshots(normalize_dataset(hr_sheets), "ETAB-1"):
        asyncio.run(store.replace_snapshot(snapshot))
    app.dependency_overrides[get_store] = lambda: store
    try:
        r = client.get("/api/snapshots/ETAB-1/2024-03-15", params={"sector": "tech"})
        missing = client.get("/api/snapshots/ETAB-1/2023-01-01")
    finally:
        app.dependency_overrides.clear()

    assert r.status_code == 200
    body = r.json()
    assert body["snapshot"]["periode"] == date(2024, 3, 1).isoformat()
    assert body["snapshot"]["effectif_fin_mois"] == 3
    assert body["advisory"]["workforce_benchmark"]["message"].startswith("Secteur tech")
    assert missing.status_code == 404
