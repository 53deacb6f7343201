from __future__ import annotations

import calendar
import logging
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from backend.app.metrics.normalizer import fold, tokens
from backend.app.metrics.records import AbsenceRecord, EmployeeRecord
from backend.app.metrics.rounding import mean, round_half_up


logger = logging.getLogger(__name__)

MIN_SPELL_DAYS = 1
MAX_SPELL_DAYS = 365

# Checked in order, first match wins. Keywords of three letters or fewer
# are codes ("at", "cp") and must match a whole word.
ABSENCE_CATEGORIES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("maladie", ("maladie", "arret maladie", "maladie ordinaire", "sick leave")),
    ("accident_travail", ("accident travail", "at", "accident du travail", "work accident")),
    ("conges", ("conges", "conges payes", "cp", "vacation", "holiday")),
    ("formation", ("formation", "training")),
)
OTHER_CATEGORY = "autres"


class AbsenceMetrics(BaseModel):
    taux_absenteisme: float = 0.0
    taux_absenteisme_maladie: float = 0.0

    nb_jours_absence: int = 0
    nb_jours_absence_maladie: int = 0
    nb_absences_total: int = 0
    nb_salaries_absents: int = 0

    duree_moyenne_absence: float = 0.0
    frequence_absence: float = 0.0

    nb_jours_maladie: int = 0
    nb_jours_accident_travail: int = 0
    nb_jours_conges: int = 0
    nb_jours_formation: int = 0
    nb_jours_autres: int = 0


def categorize_absence(label: Optional[str]) -> str:
    text = fold(label)
    words = set(tokens(label))
    for category, keywords in ABSENCE_CATEGORIES:
        for keyword in keywords:
            if len(keyword) <= 3:
                if keyword in words:
                    return category
            elif keyword in text:
                return category
    return OTHER_CATEGORY


def working_days_in_month(period: date) -> int:
    """Monday to Friday days of the month; public holidays are not removed."""
    _, length = calendar.monthrange(period.year, period.month)
    return sum(
        1 for day in range(1, length + 1) if date(period.year, period.month, day).weekday() < 5
    )


def compute_absence(
    absences: Sequence[AbsenceRecord],
    employees: Sequence[EmployeeRecord],
    period: date,
    warnings: Optional[List[str]] = None,
) -> AbsenceMetrics:
    """Absenteeism for one month.

    The denominator only counts employees whose status is "Actif". Spells
    lasting outside [1, 365] days are dropped and reported into `warnings`
    when a list is supplied.
    """
    active = sum(1 for e in employees if e.is_active)
    if active == 0:
        return AbsenceMetrics()

    days: Dict[str, int] = {name: 0 for name, _ in ABSENCE_CATEGORIES}
    days[OTHER_CATEGORY] = 0
    durations: List[int] = []
    absentees = set()

    for spell in absences:
        duration = spell.duration_days
        if not (MIN_SPELL_DAYS <= duration <= MAX_SPELL_DAYS):
            logger.warning(
                "Dropping absence of %s starting %s: %d days", spell.matricule, spell.date_debut, duration
            )
            if warnings is not None:
                warnings.append(
                    f"Absence ignorée pour {spell.matricule} du {spell.date_debut.isoformat()}: "
                    f"durée incohérente ({duration} jours)"
                )
            continue
        durations.append(duration)
        absentees.add(spell.matricule)
        days[categorize_absence(spell.type_absence)] += duration

    total_days = sum(days.values())
    sickness_days = days["maladie"] + days["accident_travail"]
    theoretical_days = active * working_days_in_month(period)

    def rate(count: int) -> float:
        return round_half_up(count / theoretical_days * 100) if theoretical_days > 0 else 0.0

    return AbsenceMetrics(
        taux_absenteisme=rate(total_days),
        taux_absenteisme_maladie=rate(sickness_days),
        nb_jours_absence=total_days,
        nb_jours_absence_maladie=sickness_days,
        nb_absences_total=len(durations),
        nb_salaries_absents=len(absentees),
        duree_moyenne_absence=round_half_up(mean(durations), 1),
        frequence_absence=round_half_up(len(durations) / active),
        nb_jours_maladie=days["maladie"],
        nb_jours_accident_travail=days["accident_travail"],
        nb_jours_conges=days["conges"],
        nb_jours_formation=days["formation"],
        nb_jours_autres=days[OTHER_CATEGORY],
    )
