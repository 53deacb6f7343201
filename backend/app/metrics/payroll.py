from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel

from backend.app.metrics.records import MONETARY_FIELDS, EmployeeRecord, RemunerationRecord
from backend.app.metrics.rounding import mean, median, pct, round_half_up


logger = logging.getLogger(__name__)

# Share of social contributions borne by the employee, used for the "chargée" mass
EMPLOYEE_CONTRIBUTION_SHARE = 0.5

COHERENCE_TOLERANCE = 0.01


class PayrollMetrics(BaseModel):
    masse_salariale_brute: float = 0.0
    masse_salariale_chargee: float = 0.0
    cout_total_employeur: float = 0.0

    salaire_base_moyen: float = 0.0
    salaire_base_median: float = 0.0
    cout_moyen_par_fte: float = 0.0
    cout_median_par_fte: float = 0.0

    salaire_base_total: float = 0.0
    primes_fixes_total: float = 0.0
    primes_variables_total: float = 0.0
    primes_exceptionnelles_total: float = 0.0
    heures_supp_total: float = 0.0
    avantages_nature_total: float = 0.0
    indemnites_total: float = 0.0
    cotisations_sociales_total: float = 0.0
    taxes_sur_salaire_total: float = 0.0
    autres_charges_total: float = 0.0

    part_variable: float = 0.0
    taux_charges: float = 0.0

    nb_salaries_payes: int = 0
    nb_remunerations_orphelines: int = 0


class PayrollEffects(BaseModel):
    """Month-over-month decomposition of the gross mass variation."""

    cout_moyen_m: float = 0.0
    cout_moyen_m_moins_1: float = 0.0
    etp_m: float = 0.0
    etp_m_moins_1: float = 0.0

    effet_prix: float = 0.0
    effet_volume: float = 0.0
    effet_mix: float = 0.0

    variation_masse_salariale: float = 0.0
    variation_masse_salariale_pct: float = 0.0

    coherence_ok: bool = True
    ecart_coherence: float = 0.0


@dataclass(frozen=True)
class PayrollBasis:
    """The two figures of a month the decomposition needs."""

    masse_salariale_brute: float
    etp_fin_mois: float


def compute_payroll(
    remunerations: Sequence[RemunerationRecord],
    employees: Sequence[EmployeeRecord] = (),
    warnings: Optional[List[str]] = None,
) -> PayrollMetrics:
    """Payroll mass, cost and ratios for one pay month.

    Payslips whose matricule has no employee row are kept in every total
    and counted as orphans when employee rows are supplied.
    """
    if not remunerations:
        return PayrollMetrics()

    totals: Dict[str, float] = dict.fromkeys(MONETARY_FIELDS, 0.0)
    base_salaries: List[float] = []
    costs_per_fte: List[float] = []
    fte_by_matricule = {e.matricule: e.fte for e in employees}

    for rem in remunerations:
        for name in totals:
            totals[name] += getattr(rem, name)
        if rem.salaire_de_base > 0:
            base_salaries.append(rem.salaire_de_base)
        cost = rem.gross / fte_by_matricule.get(rem.matricule, 1.0)
        if cost > 0:
            costs_per_fte.append(cost)

    orphans: List[str] = []
    if employees:
        orphans = sorted({r.matricule for r in remunerations} - set(fte_by_matricule))
        for matricule in orphans:
            logger.warning("Payslip for unknown employee %s", matricule)
            if warnings is not None:
                warnings.append(f"Rémunération sans salarié correspondant: {matricule}")

    brute = sum(r.gross for r in remunerations)
    cotisations = totals["cotisations_sociales"]
    employer_cost = brute + cotisations + totals["taxes_sur_salaire"] + totals["autres_charges"]
    fte = sum(e.fte for e in employees)
    variable = totals["primes_variables"] + totals["primes_exceptionnelles"]

    return PayrollMetrics(
        masse_salariale_brute=round_half_up(brute),
        masse_salariale_chargee=round_half_up(brute + cotisations * EMPLOYEE_CONTRIBUTION_SHARE),
        cout_total_employeur=round_half_up(employer_cost),
        salaire_base_moyen=round_half_up(mean(base_salaries)),
        salaire_base_median=round_half_up(median(base_salaries)),
        cout_moyen_par_fte=round_half_up(brute / fte) if fte > 0 else 0.0,
        cout_median_par_fte=round_half_up(median(costs_per_fte)),
        salaire_base_total=round_half_up(totals["salaire_de_base"]),
        primes_fixes_total=round_half_up(totals["primes_fixes"]),
        primes_variables_total=round_half_up(totals["primes_variables"]),
        primes_exceptionnelles_total=round_half_up(totals["primes_exceptionnelles"]),
        heures_supp_total=round_half_up(totals["heures_supp_payees"]),
        avantages_nature_total=round_half_up(totals["avantages_nature"]),
        indemnites_total=round_half_up(totals["indemnites"]),
        cotisations_sociales_total=round_half_up(cotisations),
        taxes_sur_salaire_total=round_half_up(totals["taxes_sur_salaire"]),
        autres_charges_total=round_half_up(totals["autres_charges"]),
        part_variable=round_half_up(pct(variable, totals["salaire_de_base"])),
        taux_charges=round_half_up(pct(cotisations, brute)),
        nb_salaries_payes=len({r.matricule for r in remunerations}),
        nb_remunerations_orphelines=len(orphans),
    )


def compute_effects(current: PayrollBasis, previous: Optional[PayrollBasis]) -> PayrollEffects:
    """Split the gross mass variation into price, volume and mix.

    Chained substitution: price is the average-cost change at last month's
    FTE, volume the FTE change at last month's average cost, mix the rest.
    Each term is rounded before mix is taken, so the three always add up to
    the rounded variation. When either month has no FTE an average cost does
    not exist and the whole variation is booked as volume.
    """
    if previous is None:
        return PayrollEffects()

    mass_m = current.masse_salariale_brute or 0.0
    mass_m1 = previous.masse_salariale_brute or 0.0
    etp_m = current.etp_fin_mois or 0.0
    etp_m1 = previous.etp_fin_mois or 0.0
    variation = round_half_up(mass_m - mass_m1)

    if etp_m <= 0 or etp_m1 <= 0:
        logger.info("No FTE on one side of the comparison, variation booked as volume")
        cost_m = cost_m1 = 0.0
        price = 0.0
        volume = variation
    else:
        cost_m = mass_m / etp_m
        cost_m1 = mass_m1 / etp_m1
        price = round_half_up((cost_m - cost_m1) * etp_m1)
        volume = round_half_up((etp_m - etp_m1) * cost_m1)
    mix = round_half_up(variation - price - volume)

    gap = round_half_up(abs(variation - (price + volume + mix)))
    if gap >= COHERENCE_TOLERANCE:
        logger.warning("Price/volume/mix do not add up to the variation (gap %s)", gap)

    return PayrollEffects(
        cout_moyen_m=round_half_up(cost_m),
        cout_moyen_m_moins_1=round_half_up(cost_m1),
        etp_m=round_half_up(etp_m),
        etp_m_moins_1=round_half_up(etp_m1),
        effet_prix=price,
        effet_volume=volume,
        effet_mix=mix,
        variation_masse_salariale=variation,
        variation_masse_salariale_pct=round_half_up(mass_m / mass_m1 * 100 - 100) if mass_m1 > 0 else 0.0,
        coherence_ok=gap < COHERENCE_TOLERANCE,
        ecart_coherence=gap,
    )
