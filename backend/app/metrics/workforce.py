from __future__ import annotations

import logging
import math
from datetime import date
from typing import Optional, Sequence

from pydantic import BaseModel

from backend.app.metrics.normalizer import fold, tokens
from backend.app.metrics.records import EmployeeRecord, same_month
from backend.app.metrics.rounding import pct, round_half_up


logger = logging.getLogger(__name__)

# Placeholder split of exits until departure reasons are imported
VOLUNTARY_EXIT_RATIO = 0.6

CONTRACT_BUCKETS = ("cdi", "cdd", "alternance", "stage", "interim")


class WorkforceMetrics(BaseModel):
    effectif_debut_mois: int = 0
    effectif_fin_mois: int = 0
    effectif_moyen: float = 0.0

    etp_debut_mois: float = 0.0
    etp_fin_mois: float = 0.0
    etp_moyen: float = 0.0

    nb_entrees: int = 0
    nb_sorties: int = 0
    nb_sorties_volontaires: int = 0
    nb_sorties_involontaires: int = 0

    # taux_turnover is the monthly rate
    taux_turnover: float = 0.0
    taux_turnover_mensuel: float = 0.0
    taux_turnover_annualise: float = 0.0
    taux_turnover_volontaire: float = 0.0
    taux_turnover_volontaire_mensuel: float = 0.0
    taux_turnover_volontaire_annualise: float = 0.0

    nb_cdi: int = 0
    nb_cdd: int = 0
    nb_alternance: int = 0
    nb_stage: int = 0
    nb_interim: int = 0
    pct_cdi: float = 0.0
    pct_cdd: float = 0.0
    pct_alternance: float = 0.0
    pct_stage: float = 0.0
    pct_interim: float = 0.0
    pct_precarite: float = 0.0


def classify_contract(label: Optional[str]) -> Optional[str]:
    """Bucket a free-text contract label, None when unrecognized."""
    words = tokens(label)
    if not words:
        return None
    text = fold(label)
    if "interim" in text or "temporary worker" in text:
        return "interim"
    if "cdi" in words or "permanent" in words:
        return "cdi"
    if "cdd" in words or "temporary" in words or "fixed-term" in text or "fixed term" in text:
        return "cdd"
    if "alternance" in text or "apprenti" in text or "contrat pro" in text or "professionnalisation" in text:
        return "alternance"
    if "stage" in words or "stagiaire" in words or "intern" in words:
        return "stage"
    return None


def _fte_total(employees: Sequence[EmployeeRecord]) -> float:
    return sum(e.fte for e in employees)


def _turnover_pair(exits: int, average: float) -> tuple[float, float]:
    """(monthly, annualized) turnover, the annual figure derived from the rounded monthly one."""
    monthly = round_half_up(pct(exits, average))
    return monthly, round_half_up(monthly * 12)


def compute_workforce(
    employees: Sequence[EmployeeRecord],
    period: date,
    previous: Optional[Sequence[EmployeeRecord]] = None,
    voluntary_ratio: float = VOLUNTARY_EXIT_RATIO,
) -> WorkforceMetrics:
    """Headcount, FTE, movements, turnover and contract mix for one month.

    Every row counts toward headcount regardless of `statut_emploi`. Without
    previous-month rows the month is assumed to start as it ends.
    """
    if not employees:
        return WorkforceMetrics()

    period = period.replace(day=1)
    fin = len(employees)
    etp_fin = _fte_total(employees)
    if previous:
        debut = len(previous)
        etp_debut = _fte_total(previous)
    else:
        debut, etp_debut = fin, etp_fin
    moyen = (debut + fin) / 2

    entrees = sum(1 for e in employees if same_month(e.date_entree, period))
    sorties = sum(1 for e in employees if same_month(e.date_sortie, period))
    volontaires = math.floor(sorties * voluntary_ratio)

    mensuel, annualise = _turnover_pair(sorties, moyen)
    vol_mensuel, vol_annualise = _turnover_pair(volontaires, moyen)

    counts = dict.fromkeys(CONTRACT_BUCKETS, 0)
    for e in employees:
        bucket = classify_contract(e.type_contrat)
        if bucket:
            counts[bucket] += 1
    pct_cdi = round_half_up(pct(counts["cdi"], fin))

    logger.debug("Workforce %s: %d rows, %d entries, %d exits", period, fin, entrees, sorties)
    return WorkforceMetrics(
        effectif_debut_mois=debut,
        effectif_fin_mois=fin,
        effectif_moyen=round_half_up(moyen, 1),
        etp_debut_mois=round_half_up(etp_debut),
        etp_fin_mois=round_half_up(etp_fin),
        etp_moyen=round_half_up((etp_debut + etp_fin) / 2),
        nb_entrees=entrees,
        nb_sorties=sorties,
        nb_sorties_volontaires=volontaires,
        nb_sorties_involontaires=sorties - volontaires,
        taux_turnover=mensuel,
        taux_turnover_mensuel=mensuel,
        taux_turnover_annualise=annualise,
        taux_turnover_volontaire=vol_mensuel,
        taux_turnover_volontaire_mensuel=vol_mensuel,
        taux_turnover_volontaire_annualise=vol_annualise,
        nb_cdi=counts["cdi"],
        nb_cdd=counts["cdd"],
        nb_alternance=counts["alternance"],
        nb_stage=counts["stage"],
        nb_interim=counts["interim"],
        pct_cdi=pct_cdi,
        pct_cdd=round_half_up(pct(counts["cdd"], fin)),
        pct_alternance=round_half_up(pct(counts["alternance"], fin)),
        pct_stage=round_half_up(pct(counts["stage"], fin)),
        pct_interim=round_half_up(pct(counts["interim"], fin)),
        pct_precarite=round_half_up(100 - pct_cdi),
    )
