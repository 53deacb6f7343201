from __future__ import annotations

from datetime import date
from typing import List, Optional, Sequence

from pydantic import BaseModel

from backend.app.metrics.records import EmployeeRecord
from backend.app.metrics.rounding import mean, median, pct, round_half_up


MAX_AGE = 120

AGE_BANDS = (25, 35, 45, 55)
SENIORITY_BANDS_YEARS = (1, 3, 5, 10)


class DemographicsMetrics(BaseModel):
    age_moyen: float = 0.0
    age_median: float = 0.0
    anciennete_moyenne_mois: float = 0.0
    anciennete_mediane_mois: float = 0.0

    nb_hommes: int = 0
    nb_femmes: int = 0
    pct_hommes: float = 0.0
    pct_femmes: float = 0.0
    index_egalite: Optional[float] = None

    pct_age_moins_25: float = 0.0
    pct_age_25_35: float = 0.0
    pct_age_35_45: float = 0.0
    pct_age_45_55: float = 0.0
    pct_age_plus_55: float = 0.0

    pct_anciennete_0_1_an: float = 0.0
    pct_anciennete_1_3_ans: float = 0.0
    pct_anciennete_3_5_ans: float = 0.0
    pct_anciennete_5_10_ans: float = 0.0
    pct_anciennete_plus_10_ans: float = 0.0


def age_at(birth: date, period: date) -> int:
    """Age in whole years from the calendar years alone."""
    return period.year - birth.year


def seniority_months(entry: date, period: date) -> int:
    return (period.year - entry.year) * 12 + (period.month - entry.month)


def _bucket(value: float, bounds: Sequence[float]) -> int:
    for index, bound in enumerate(bounds):
        if value < bound:
            return index
    return len(bounds)


def equality_index(men: int, women: int) -> Optional[float]:
    """100 for a perfect 50/50 split, 0 for a single-gender population."""
    if men == 0 or women == 0:
        return None
    share_men = men / (men + women) * 100
    return round_half_up(100 - 2 * abs(share_men - 50))


def compute_demographics(employees: Sequence[EmployeeRecord], period: date) -> DemographicsMetrics:
    """Age and seniority pyramids plus gender split over the period's headcount."""
    if not employees:
        return DemographicsMetrics()

    total = len(employees)
    ages: List[int] = []
    age_counts = [0] * (len(AGE_BANDS) + 1)
    seniorities: List[int] = []
    seniority_counts = [0] * (len(SENIORITY_BANDS_YEARS) + 1)

    for e in employees:
        if e.date_naissance is not None:
            age = age_at(e.date_naissance, period)
            if 0 <= age < MAX_AGE:
                ages.append(age)
                age_counts[_bucket(age, AGE_BANDS)] += 1
        if e.date_entree is not None:
            months = seniority_months(e.date_entree, period)
            if months >= 0:
                seniorities.append(months)
                seniority_counts[_bucket(months / 12, SENIORITY_BANDS_YEARS)] += 1

    men = sum(1 for e in employees if e.sexe == "M")
    women = sum(1 for e in employees if e.sexe == "F")

    def share(count: int) -> float:
        return round_half_up(pct(count, total))

    return DemographicsMetrics(
        age_moyen=round_half_up(mean(ages), 1),
        age_median=round_half_up(median(ages), 1),
        anciennete_moyenne_mois=round_half_up(mean(seniorities), 1),
        anciennete_mediane_mois=round_half_up(median(seniorities), 1),
        nb_hommes=men,
        nb_femmes=women,
        pct_hommes=share(men),
        pct_femmes=share(women),
        index_egalite=equality_index(men, women),
        pct_age_moins_25=share(age_counts[0]),
        pct_age_25_35=share(age_counts[1]),
        pct_age_35_45=share(age_counts[2]),
        pct_age_45_55=share(age_counts[3]),
        pct_age_plus_55=share(age_counts[4]),
        pct_anciennete_0_1_an=share(seniority_counts[0]),
        pct_anciennete_1_3_ans=share(seniority_counts[1]),
        pct_anciennete_3_5_ans=share(seniority_counts[2]),
        pct_anciennete_5_10_ans=share(seniority_counts[3]),
        pct_anciennete_plus_10_ans=share(seniority_counts[4]),
    )
