"""Qualitative reading of computed metrics.

Pure functions turning metric objects into levels, alerts and insights from
fixed thresholds and sector benchmarks. Nothing here feeds back into the
numbers stored in a snapshot.
"""
from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from backend.app.metrics.absence import AbsenceMetrics
from backend.app.metrics.demographics import DemographicsMetrics
from backend.app.metrics.payroll import PayrollEffects, PayrollMetrics
from backend.app.metrics.rounding import round_half_up
from backend.app.metrics.workforce import WorkforceMetrics


Sector = Literal["industrie", "service", "commerce", "tech"]
Position = Literal["excellent", "bon", "moyen", "préoccupant"]

# ---------- Thresholds ----------

# Absenteeism, percent of theoretical working days
ABSENCE_CRITICAL = 10.0
ABSENCE_HIGH = 7.0
ABSENCE_NORMAL = 4.0
LONG_AVERAGE_SPELL_DAYS = 14.0
SHORT_AVERAGE_SPELL_DAYS = 2.0
HIGH_ABSENCE_FREQUENCY = 2.0
SICKNESS_SHARE_ALERT = 80.0
ACCIDENT_SHARE_ALERT = 20.0
FRAGMENTED_FREQUENCY = 1.5
LONG_SPELL_PATTERN_DAYS = 10.0
SICKNESS_RATIO_PATTERN = 0.8
ACCIDENT_RATIO_PATTERN = 0.15

# Workforce, monthly turnover in percent
TURNOVER_CRITICAL = 10.0
TURNOVER_HIGH = 5.0
TURNOVER_MODERATE = 2.0
TURNOVER_LOW = 1.0
PRECARITY_HIGH = 40.0
PRECARITY_MODERATE = 25.0
CDI_MAJORITY = 80.0
PART_TIME_RATIO = 0.85
FULL_TIME_RATIO = 0.95
TRAINEE_SHARE = 15.0

# Stability score: (threshold, penalty, label), first match wins
TURNOVER_PENALTIES = (
    (TURNOVER_CRITICAL, 30, "Turnover très élevé"),
    (TURNOVER_HIGH, 20, "Turnover élevé"),
    (TURNOVER_MODERATE, 10, "Turnover modéré"),
)
PRECARITY_PENALTIES = (
    (PRECARITY_HIGH, 25, "Précarité élevée"),
    (PRECARITY_MODERATE, 15, "Précarité modérée"),
)
CDI_MAJORITY_BONUS = 10
STABILITY_LEVELS = ((80, "très stable"), (60, "stable"), (40, "fragile"))
UNSTABLE_LEVEL = "instable"

# Gap to the sector benchmark, in points
TURNOVER_GAP_EXCELLENT = -5.0
TURNOVER_GAP_AVERAGE = 5.0
CDI_GAP_EXCELLENT = 10.0
CDI_GAP_AVERAGE = -10.0

# Payroll
VARIABLE_PAY_HIGH = 30.0
VARIABLE_PAY_LOW = 5.0
CHARGES_HIGH = 50.0
CHARGES_LOW = 35.0
EXCEPTIONAL_BONUS_SHARE_OF_BASE = 0.5
LOW_COST_PER_FTE = 2000.0
HIGH_COST_PER_FTE = 5000.0
ANNUAL_BONUS_SHARE_OF_MASS = 0.3
DOMINANT_EFFECT_FACTOR = 3.0
EXCEPTIONAL_VARIATION_PCT = 50.0
BALANCED_EFFECTS_TOLERANCE = 0.3

# Demographics
OLD_AVERAGE_AGE = 50.0
YOUNG_AVERAGE_AGE = 30.0
OVER_55_SHARE = 30.0
NEWCOMER_SHARE = 40.0
VETERAN_SHARE = 50.0
GENDER_GAP_ALERT = 30.0
GENDER_GAP_BALANCED = 10.0
EQUALITY_INDEX_ALERT = 75.0
INVERTED_PYRAMID_HIGH = 2.0
INVERTED_PYRAMID_MEDIUM = 1.5
BALANCED_AGE_25_35 = 30.0
BALANCED_AGE_35_45 = 25.0

ABSENCE_BENCHMARKS: Dict[str, float] = {
    "industrie": 5.5,
    "service": 4.5,
    "commerce": 5.0,
    "tech": 3.5,
}

# Annual turnover and CDI share, in percent
WORKFORCE_BENCHMARKS: Dict[str, Dict[str, float]] = {
    "industrie": {"turnover": 12.0, "pct_cdi": 85.0},
    "service": {"turnover": 18.0, "pct_cdi": 70.0},
    "commerce": {"turnover": 25.0, "pct_cdi": 60.0},
    "tech": {"turnover": 15.0, "pct_cdi": 80.0},
}


# ---------- Result models ----------


class Assessment(BaseModel):
    level: Optional[str] = None
    alerts: List[str] = Field(default_factory=list)
    insights: List[str] = Field(default_factory=list)


class PatternReport(BaseModel):
    patterns: List[str] = Field(default_factory=list)
    recommandations: List[str] = Field(default_factory=list)


class BenchmarkComparison(BaseModel):
    position: Position
    message: str


class WorkforceBenchmark(BaseModel):
    turnover_comparison: Position
    cdi_comparison: Position
    message: str


class StabilityScore(BaseModel):
    score: int
    niveau: Literal["instable", "fragile", "stable", "très stable"]
    facteurs: List[str] = Field(default_factory=list)


class PyramidRisk(BaseModel):
    risque: bool
    niveau: Literal["faible", "moyen", "élevé"]
    message: str


class AnnualBonus(BaseModel):
    detected: bool
    montant: Optional[float] = None
    pct_masse: Optional[float] = None


# ---------- Absence ----------


def classify_absence(metrics: AbsenceMetrics) -> Assessment:
    result = Assessment()
    rate = metrics.taux_absenteisme
    if rate > ABSENCE_CRITICAL:
        result.level = "critique"
        result.alerts.append(f"Taux d'absentéisme critique ({rate:.1f}%) - Action urgente requise")
    elif rate > ABSENCE_HIGH:
        result.level = "élevé"
        result.alerts.append(f"Taux d'absentéisme élevé ({rate:.1f}%) - Enquête recommandée")
    elif rate > ABSENCE_NORMAL:
        result.level = "normal"
        result.insights.append(f"Taux d'absentéisme dans la norme ({rate:.1f}%)")
    else:
        result.level = "faible"
        result.insights.append(f"Taux d'absentéisme faible ({rate:.1f}%)")

    duration = metrics.duree_moyenne_absence
    if duration > LONG_AVERAGE_SPELL_DAYS:
        result.alerts.append(f"Durée moyenne d'absence élevée ({duration:.1f} jours) - Possibles arrêts longs")
    elif duration < SHORT_AVERAGE_SPELL_DAYS and metrics.nb_absences_total > 0:
        result.insights.append(f"Absences courtes en moyenne ({duration:.1f} jour) - Absentéisme fractionné")

    if metrics.frequence_absence > HIGH_ABSENCE_FREQUENCY:
        result.alerts.append(f"Fréquence élevée ({metrics.frequence_absence:.1f} absences/salarié)")

    total = metrics.nb_jours_absence
    if total > 0:
        sickness_share = metrics.nb_jours_maladie / total * 100
        if sickness_share > SICKNESS_SHARE_ALERT:
            result.alerts.append(
                f"{sickness_share:.0f}% des absences sont pour maladie - Vérifier conditions de travail"
            )
        accident_share = metrics.nb_jours_accident_travail / total * 100
        if accident_share > ACCIDENT_SHARE_ALERT:
            result.alerts.append(f"{accident_share:.0f}% d'accidents du travail - Audit sécurité nécessaire")
        if metrics.nb_jours_formation > 0:
            training_share = metrics.nb_jours_formation / total * 100
            result.insights.append(
                f"{metrics.nb_jours_formation} jours de formation ({training_share:.0f}% des absences)"
            )
    return result


def detect_absence_patterns(metrics: AbsenceMetrics) -> PatternReport:
    report = PatternReport()
    if metrics.duree_moyenne_absence < SHORT_AVERAGE_SPELL_DAYS and metrics.frequence_absence > FRAGMENTED_FREQUENCY:
        report.patterns.append("Absentéisme fractionné: absences courtes mais fréquentes")
        report.recommandations.append("Analyser les jours de la semaine (lundi/vendredi)")
        report.recommandations.append("Entretiens individuels avec les managers")

    if (
        metrics.duree_moyenne_absence > LONG_SPELL_PATTERN_DAYS
        and metrics.nb_absences_total < metrics.nb_salaries_absents * 1.5
    ):
        report.patterns.append("Absences longues: quelques cas d'arrêts prolongés")
        report.recommandations.append("Suivi médical et accompagnement RH")

    total = metrics.nb_jours_absence
    if total > 0 and metrics.nb_jours_absence_maladie / total > SICKNESS_RATIO_PATTERN:
        report.patterns.append("Prédominance maladie: 80%+ des absences")
        report.recommandations.append("Audit conditions de travail (ergonomie, climat)")

    if total > 0 and metrics.nb_jours_accident_travail > total * ACCIDENT_RATIO_PATTERN:
        report.patterns.append("Accidents du travail significatifs")
        report.recommandations.append("Audit sécurité et renforcement des formations sécurité")
    return report


def compare_absence_benchmark(metrics: AbsenceMetrics, sector: Sector = "service") -> BenchmarkComparison:
    benchmark = ABSENCE_BENCHMARKS[sector]
    rate = metrics.taux_absenteisme
    gap = rate - benchmark
    if gap < -1:
        return BenchmarkComparison(position="excellent", message=f"Excellent: {rate:.1f}% vs {benchmark}% (benchmark {sector})")
    if gap < 0.5:
        return BenchmarkComparison(position="bon", message=f"Bon: {rate:.1f}% proche du benchmark {sector} ({benchmark}%)")
    if gap < 2:
        return BenchmarkComparison(position="moyen", message=f"Moyen: {rate:.1f}% au-dessus du benchmark {sector} ({benchmark}%)")
    return BenchmarkComparison(
        position="préoccupant",
        message=f"Préoccupant: {rate:.1f}% largement au-dessus du benchmark {sector} ({benchmark}%)",
    )


# ---------- Workforce ----------


def classify_workforce(metrics: WorkforceMetrics) -> Assessment:
    result = Assessment(level="stable")
    turnover = metrics.taux_turnover
    if turnover > TURNOVER_CRITICAL:
        result.level = "turbulent"
        result.alerts.append(f"Turnover critique ({turnover:.1f}% mensuel) - Rétention urgente")
    elif turnover > TURNOVER_HIGH:
        result.alerts.append(f"Turnover élevé ({turnover:.1f}% mensuel) - Enquête climat social recommandée")
    elif turnover < TURNOVER_LOW:
        result.insights.append(f"Turnover faible ({turnover:.1f}% mensuel)")

    net = metrics.nb_entrees - metrics.nb_sorties
    if net > 0:
        result.level = "croissance"
        result.insights.append(f"Croissance: {net} embauches nettes ce mois")
    elif net < 0:
        result.level = "décroissance"
        result.alerts.append(f"Décroissance: {abs(net)} départs nets")

    if metrics.pct_precarite > PRECARITY_HIGH:
        result.alerts.append(f"Précarité élevée ({metrics.pct_precarite:.0f}% non-CDI)")
    elif metrics.pct_precarite > PRECARITY_MODERATE:
        result.insights.append(f"Précarité modérée ({metrics.pct_precarite:.0f}% non-CDI)")
    elif metrics.effectif_fin_mois > 0:
        result.insights.append(f"Contrats stables ({metrics.pct_cdi:.0f}% CDI)")

    if metrics.effectif_fin_mois > 0:
        ratio = metrics.etp_fin_mois / metrics.effectif_fin_mois
        if ratio < PART_TIME_RATIO:
            result.alerts.append(f"Forte proportion de temps partiel (ratio ETP: {ratio:.2f})")
        elif ratio > FULL_TIME_RATIO:
            result.insights.append(f"Quasi plein temps généralisé (ratio ETP: {ratio:.2f})")

    trainees = metrics.pct_alternance + metrics.pct_stage
    if trainees > TRAINEE_SHARE:
        result.insights.append(f"Politique formation active ({trainees:.0f}% alternants/stagiaires)")
    return result


def workforce_stability(metrics: WorkforceMetrics) -> StabilityScore:
    score = 100
    factors: List[str] = []
    for threshold, penalty, label in TURNOVER_PENALTIES:
        if metrics.taux_turnover > threshold:
            score -= penalty
            factors.append(f"{label} (-{penalty})")
            break

    for threshold, penalty, label in PRECARITY_PENALTIES:
        if metrics.pct_precarite > threshold:
            score -= penalty
            factors.append(f"{label} (-{penalty})")
            break

    if metrics.pct_cdi > CDI_MAJORITY:
        score = min(100, score + CDI_MAJORITY_BONUS)
        factors.append(f"Majorité CDI (+{CDI_MAJORITY_BONUS})")

    score = max(0, min(100, score))
    niveau = next((level for floor, level in STABILITY_LEVELS if score >= floor), UNSTABLE_LEVEL)
    return StabilityScore(score=score, niveau=niveau, facteurs=factors)


def _turnover_position(gap: float) -> Position:
    if gap < TURNOVER_GAP_EXCELLENT:
        return "excellent"
    if gap < 0:
        return "bon"
    if gap < TURNOVER_GAP_AVERAGE:
        return "moyen"
    return "préoccupant"


def _cdi_position(gap: float) -> Position:
    if gap > CDI_GAP_EXCELLENT:
        return "excellent"
    if gap > 0:
        return "bon"
    if gap > CDI_GAP_AVERAGE:
        return "moyen"
    return "préoccupant"


def compare_workforce_benchmark(metrics: WorkforceMetrics, sector: Sector = "service") -> WorkforceBenchmark:
    """Sector benchmarks are annual, so the annualized turnover is compared."""
    bench = WORKFORCE_BENCHMARKS[sector]
    annual = metrics.taux_turnover_annualise
    turnover = _turnover_position(annual - bench["turnover"])
    cdi = _cdi_position(metrics.pct_cdi - bench["pct_cdi"])
    message = (
        f"Secteur {sector}: Turnover {turnover} ({annual:.1f}% annualisé vs {bench['turnover']:.0f}% benchmark), "
        f"CDI {cdi} ({metrics.pct_cdi:.0f}% vs {bench['pct_cdi']:.0f}%)"
    )
    return WorkforceBenchmark(turnover_comparison=turnover, cdi_comparison=cdi, message=message)


# ---------- Payroll ----------


def classify_payroll(metrics: PayrollMetrics) -> Assessment:
    result = Assessment(level="normal")
    if metrics.part_variable > VARIABLE_PAY_HIGH:
        result.insights.append(f"Part variable élevée ({metrics.part_variable:.1f}%) - Rémunération incitative")
    elif metrics.part_variable < VARIABLE_PAY_LOW:
        result.insights.append(f"Part variable faible ({metrics.part_variable:.1f}%) - Rémunération principalement fixe")

    if metrics.taux_charges > CHARGES_HIGH:
        result.alerts.append(f"Taux de charges élevé ({metrics.taux_charges:.1f}%)")
    elif metrics.taux_charges < CHARGES_LOW:
        result.insights.append(f"Taux de charges contenu ({metrics.taux_charges:.1f}%)")

    if metrics.primes_exceptionnelles_total > metrics.salaire_base_total * EXCEPTIONAL_BONUS_SHARE_OF_BASE:
        result.insights.append("Primes exceptionnelles importantes (probable 13ème mois ou bonus annuel)")

    cost = metrics.cout_moyen_par_fte
    if cost < LOW_COST_PER_FTE:
        result.level = "low"
        result.insights.append(f"Coût moyen faible ({cost:.0f}€/ETP) - Profils juniors ou temps partiels")
    elif cost > HIGH_COST_PER_FTE:
        result.level = "high"
        result.insights.append(f"Coût moyen élevé ({cost:.0f}€/ETP) - Profils seniors ou cadres")
    return result


def detect_annual_bonus(metrics: PayrollMetrics) -> AnnualBonus:
    """A month whose exceptional bonuses exceed 30% of the gross mass likely pays a 13th month."""
    bonuses = metrics.primes_exceptionnelles_total
    mass = metrics.masse_salariale_brute
    if mass > 0 and bonuses > mass * ANNUAL_BONUS_SHARE_OF_MASS:
        return AnnualBonus(detected=True, montant=bonuses, pct_masse=round_half_up(bonuses / mass * 100, 2))
    return AnnualBonus(detected=False)


def format_euro(value: float) -> str:
    magnitude = abs(value)
    if magnitude >= 1_000_000:
        return f"{value / 1_000_000:.1f}M€"
    if magnitude >= 1000:
        return f"{value / 1000:.1f}k€"
    return f"{value:.0f}€"


def effects_commentary(effects: PayrollEffects) -> List[str]:
    comments: List[str] = []
    price = effects.effet_prix
    volume = effects.effet_volume
    variation_pct = effects.variation_masse_salariale_pct

    if abs(price) > abs(volume) * DOMINANT_EFFECT_FACTOR:
        if price > 0:
            comments.append(f"Hausse significative des coûts salariaux (+{format_euro(price)}) - Augmentations ou promotions")
        else:
            comments.append(f"Économie réalisée sur les coûts salariaux ({format_euro(price)})")
    if abs(volume) > abs(price) * DOMINANT_EFFECT_FACTOR:
        if volume > 0:
            comments.append(f"Hausse de l'effectif = augmentation de coût (+{format_euro(volume)})")
        else:
            comments.append(f"Baisse d'effectif = économie réalisée ({format_euro(volume)})")

    if abs(variation_pct) > EXCEPTIONAL_VARIATION_PCT:
        comments.append(f"Variation exceptionnelle de {variation_pct:+.0f}% vs mois précédent")

    if price != 0 and volume != 0 and abs(price - volume) < abs(price) * BALANCED_EFFECTS_TOLERANCE:
        comments.append("Effets Prix et Volume contribuent de manière équilibrée")

    if not comments:
        if variation_pct > 0:
            comments.append(f"Augmentation normale de la masse salariale (+{variation_pct:.1f}%)")
        elif variation_pct < 0:
            comments.append(f"Diminution de la masse salariale ({variation_pct:.1f}%)")
        else:
            comments.append("Masse salariale stable ce mois")
    return comments


# ---------- Demographics ----------


def classify_demographics(metrics: DemographicsMetrics) -> Assessment:
    result = Assessment()
    if metrics.age_moyen > OLD_AVERAGE_AGE:
        result.alerts.append(f"Population vieillissante (âge moyen: {metrics.age_moyen:.0f} ans) - Anticiper renouvellement")
    elif 0 < metrics.age_moyen < YOUNG_AVERAGE_AGE:
        result.insights.append(f"Population jeune (âge moyen: {metrics.age_moyen:.0f} ans)")

    if metrics.pct_age_plus_55 > OVER_55_SHARE:
        result.alerts.append(
            f"{metrics.pct_age_plus_55:.0f}% des effectifs ont plus de 55 ans - Plan de succession nécessaire"
        )
    if metrics.pct_anciennete_0_1_an > NEWCOMER_SHARE:
        result.alerts.append(f"Forte rotation ({metrics.pct_anciennete_0_1_an:.0f}% < 1 an) - Vérifier intégration")
    if metrics.pct_anciennete_plus_10_ans > VETERAN_SHARE:
        result.insights.append(f"Forte fidélisation ({metrics.pct_anciennete_plus_10_ans:.0f}% > 10 ans)")

    if metrics.nb_hommes + metrics.nb_femmes > 0:
        gap = abs(metrics.pct_hommes - metrics.pct_femmes)
        split = f"{metrics.pct_hommes:.0f}% H / {metrics.pct_femmes:.0f}% F"
        if gap > GENDER_GAP_ALERT:
            result.alerts.append(f"Déséquilibre H/F important ({split}) - Actions diversité recommandées")
        elif gap < GENDER_GAP_BALANCED:
            result.insights.append(f"Excellent équilibre H/F ({split})")

    if metrics.index_egalite is not None and metrics.index_egalite < EQUALITY_INDEX_ALERT:
        result.alerts.append(f"Index égalité H/F faible ({metrics.index_egalite:.0f}/100) - Plan d'action requis")

    if metrics.pct_age_25_35 > BALANCED_AGE_25_35 and metrics.pct_age_35_45 > BALANCED_AGE_35_45:
        result.insights.append("Population bien équilibrée entre juniors et seniors")
    return result


def detect_inverted_pyramid(metrics: DemographicsMetrics) -> PyramidRisk:
    young = metrics.pct_age_moins_25 + metrics.pct_age_25_35
    seniors = metrics.pct_age_45_55 + metrics.pct_age_plus_55
    if seniors > young * INVERTED_PYRAMID_HIGH:
        return PyramidRisk(
            risque=True,
            niveau="élevé",
            message=f"Pyramide inversée critique: {seniors:.0f}% de seniors vs {young:.0f}% de jeunes",
        )
    if seniors > young * INVERTED_PYRAMID_MEDIUM:
        return PyramidRisk(
            risque=True,
            niveau="moyen",
            message=f"Pyramide vieillissante: {seniors:.0f}% de seniors vs {young:.0f}% de jeunes",
        )
    return PyramidRisk(
        risque=False,
        niveau="faible",
        message=f"Pyramide équilibrée: {young:.0f}% jeunes, {seniors:.0f}% seniors",
    )


# ---------- Everything for one snapshot ----------


class Advisory(BaseModel):
    workforce: Assessment
    stability: StabilityScore
    workforce_benchmark: WorkforceBenchmark
    absence: Assessment
    absence_patterns: PatternReport
    absence_benchmark: BenchmarkComparison
    payroll: Assessment
    annual_bonus: AnnualBonus
    effects: List[str]
    demographics: Assessment
    pyramid: PyramidRisk


def advise(snapshot, sector: Sector = "service") -> Advisory:
    """Run every advisor on a snapshot, which carries all the metric fields."""
    return Advisory(
        workforce=classify_workforce(snapshot),
        stability=workforce_stability(snapshot),
        workforce_benchmark=compare_workforce_benchmark(snapshot, sector),
        absence=classify_absence(snapshot),
        absence_patterns=detect_absence_patterns(snapshot),
        absence_benchmark=compare_absence_benchmark(snapshot, sector),
        payroll=classify_payroll(snapshot),
        annual_bonus=detect_annual_bonus(snapshot),
        effects=effects_commentary(snapshot),
        demographics=classify_demographics(snapshot),
        pyramid=detect_inverted_pyramid(snapshot),
    )
