from __future__ import annotations

import os
from pathlib import Path
import sys
from typing import Any, Dict, Iterator, List

import psycopg
import pytest


def _find_repo_root(start: Path) -> Path:
    cur = start
    while cur != cur.parent:
        candidate = cur / "backend" / "src" / "db" / "migrations"
        if candidate.exists():
            return cur
        cur = cur.parent
    # Fallback to start
    return start


# Ensure repo root is on sys.path so tests can import the backend package
_REPO_ROOT = _find_repo_root(Path(__file__).resolve())
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


@pytest.fixture(scope="session")
def database_url() -> str:
    # Database tests only run against an explicitly configured server
    url = os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("DATABASE_URL not set")
    return url


@pytest.fixture(scope="session")
def migrated_db(database_url: str) -> Iterator[str]:
    # Use project's migration runner which skips already-applied files
    from backend.src.db.run_migrations import main as run_migrations_main  # local import after sys.path

    if run_migrations_main(["--database-url", database_url]) != 0:
        pytest.skip("Database unreachable")
    yield database_url


def _truncate_for_test(conn: psycopg.Connection) -> None:
    with conn.cursor() as cur:
        cur.execute("TRUNCATE hr_employees, hr_remunerations, hr_absences, monthly_snapshots")
    conn.commit()


@pytest.fixture()
def db_conn(migrated_db: str) -> Iterator[psycopg.Connection]:
    with psycopg.connect(migrated_db) as conn:
        _truncate_for_test(conn)
        yield conn


@pytest.fixture()
def hr_sheets() -> Dict[str, List[Dict[str, Any]]]:
    """Two months of a three-person establishment, shaped like the workbook sheets."""

    def employee(matricule, periode, sexe, naissance, entree, contrat, temps, sortie=None):
        return {
            "matricule": matricule,
            "periode": periode,
            "sexe": sexe,
            "date_naissance": naissance,
            "date_entree": entree,
            "date_sortie": sortie,
            "type_contrat": contrat,
            "temps_travail": temps,
            "statut_emploi": "Actif",
            "intitule_poste": "Technicien",
        }

    employees = []
    for periode in ("2024-02-01", "2024-03-01"):
        employees.append(employee("E1", periode, "H", "1985-05-10", "2015-01-05", "CDI", 1))
        employees.append(employee("E2", periode, "F", "1992-08-20", "2020-06-01", "CDI", "0,8"))
        sortie = "29/03/2024" if periode == "2024-03-01" else None
        employees.append(employee("E3", periode, "F", "1999-02-14", "2023-09-01", "CDD", 1, sortie))

    remunerations = [
        {"matricule": "E1", "mois_paie": "2024-02-01", "salaire_de_base": 3000, "cotisations_sociales": 1300},
        {"matricule": "E2", "mois_paie": "2024-02-01", "salaire_de_base": 2400, "cotisations_sociales": 1000},
        {"matricule": "E3", "mois_paie": "2024-02-01", "salaire_de_base": 2000, "cotisations_sociales": 800},
        {"matricule": "E1", "mois_paie": "2024-03-01", "salaire_de_base": 3000, "primes_variables": 300, "cotisations_sociales": 1400},
        {"matricule": "E2", "mois_paie": "2024-03-01", "salaire_de_base": 2400, "cotisations_sociales": 1000},
        {"matricule": "E3", "mois_paie": "2024-03-01", "salaire_de_base": 2000, "indemnites": 500, "cotisations_sociales": 800},
    ]
    absences = [
        {"matricule": "E2", "type_absence": "CP", "date_debut": "2024-02-12", "date_fin": "2024-02-16"},
        {"matricule": "E1", "type_absence": "Maladie", "date_debut": "04/03/2024", "date_fin": "08/03/2024",
         "justificatif_fourni": "oui"},
    ]
    return {"employees": employees, "remunerations": remunerations, "absences": absences}
