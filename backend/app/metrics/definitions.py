from __future__ import annotations

from typing import Literal, Optional, List
from pydantic import BaseModel


MetricKey = Literal[
    "effectif_fin_mois",
    "etp_fin_mois",
    "taux_turnover",
    "taux_turnover_annualise",
    "pct_precarite",
    "taux_absenteisme",
    "taux_absenteisme_maladie",
    "masse_salariale_brute",
    "cout_moyen_par_fte",
    "part_variable",
    "taux_charges",
]


class MetricDefinition(BaseModel):
    key: MetricKey
    name: str
    description: str
    orientation: Literal["higher", "lower"]
    unit: str  # "count", "fte", "percent" or "currency"
    display_unit: Optional[str] = None
    period: Literal["monthly"] = "monthly"
    formula_markdown: Optional[str] = None
    numerator: Optional[str] = None
    denominator: Optional[str] = None
    edge_rules: Optional[List[str]] = None
    source_notes: Optional[List[str]] = None


DEFINITIONS: list[MetricDefinition] = [
    # 1) Headcount
    MetricDefinition(
        key="effectif_fin_mois",
        name="Effectif fin de mois",
        description="Number of employee rows reported for the month, whatever their status.",
        orientation="higher",
        unit="count",
        formula_markdown="Effectif = count(EMPLOYES rows with periode = M)",
        edge_rules=[
            "Start-of-month headcount is last month's row count, or the end-of-month count when last month was never imported.",
        ],
        source_notes=["EMPLOYES sheet"],
    ),
    # 2) FTE
    MetricDefinition(
        key="etp_fin_mois",
        name="ETP fin de mois",
        description="Headcount weighted by contracted working time.",
        orientation="higher",
        unit="fte",
        formula_markdown="ETP = Σ temps_travail",
        edge_rules=["Missing or zero temps_travail counts as full time (1.0)."],
        source_notes=["EMPLOYES.temps_travail"],
    ),
    # 3) Turnover
    MetricDefinition(
        key="taux_turnover",
        name="Turnover mensuel",
        description="Exits of the month relative to average headcount.",
        orientation="lower",
        unit="percent",
        display_unit="%",
        formula_markdown="Turnover = Sorties / ((Effectif début + Effectif fin) / 2) × 100",
        numerator="Rows whose date_sortie falls in the month",
        denominator="Average of start and end of month headcount",
        edge_rules=[
            "taux_turnover is the monthly figure; the annualized one is exposed separately.",
            "Average headcount 0 → 0.",
        ],
        source_notes=["EMPLOYES.date_sortie"],
    ),
    MetricDefinition(
        key="taux_turnover_annualise",
        name="Turnover annualisé",
        description="Monthly turnover projected over twelve months.",
        orientation="lower",
        unit="percent",
        display_unit="%",
        formula_markdown="Turnover annualisé = Turnover mensuel × 12",
        edge_rules=["Derived from the rounded monthly figure, never recomputed."],
    ),
    # 4) Precarity
    MetricDefinition(
        key="pct_precarite",
        name="Taux de précarité",
        description="Share of headcount not on a permanent contract.",
        orientation="lower",
        unit="percent",
        display_unit="%",
        formula_markdown="Précarité = 100 − %CDI",
        edge_rules=["Unrecognized contract labels count as non-permanent."],
        source_notes=["EMPLOYES.type_contrat"],
    ),
    # 5) Absenteeism
    MetricDefinition(
        key="taux_absenteisme",
        name="Taux d'absentéisme",
        description="Days lost to absence relative to theoretical working days.",
        orientation="lower",
        unit="percent",
        display_unit="%",
        formula_markdown="Absentéisme = Jours d'absence / (Effectif actif × Jours ouvrés du mois) × 100",
        numerator="Inclusive duration of absence spells starting in the month",
        denominator="Employees with statut_emploi = Actif × Monday-Friday days of the month",
        edge_rules=[
            "Public holidays are not removed from working days.",
            "Spells shorter than 1 day or longer than 365 days are dropped.",
            "No active employee → 0.",
        ],
        source_notes=["ABSENCES sheet", "EMPLOYES.statut_emploi"],
    ),
    MetricDefinition(
        key="taux_absenteisme_maladie",
        name="Taux d'absentéisme maladie",
        description="Absenteeism restricted to sickness and work accidents.",
        orientation="lower",
        unit="percent",
        display_unit="%",
        formula_markdown="Absentéisme maladie = (Jours maladie + Jours AT) / (Effectif actif × Jours ouvrés) × 100",
    ),
    # 6) Payroll
    MetricDefinition(
        key="masse_salariale_brute",
        name="Masse salariale brute",
        description="Gross pay of the month before employer contributions.",
        orientation="lower",
        unit="currency",
        formula_markdown=(
            "Brut = Σ (base + primes fixes + primes variables + primes exceptionnelles"
            " + heures supp + avantages en nature + indemnités)"
        ),
        source_notes=["REMUNERATION sheet"],
    ),
    MetricDefinition(
        key="cout_moyen_par_fte",
        name="Coût moyen par ETP",
        description="Gross payroll mass per full-time equivalent.",
        orientation="lower",
        unit="currency",
        formula_markdown="Coût moyen = Masse salariale brute / ETP fin de mois",
        edge_rules=["Based on gross mass, not employer cost.", "ETP 0 → 0."],
    ),
    MetricDefinition(
        key="part_variable",
        name="Part variable",
        description="Variable and exceptional bonuses relative to base salaries.",
        orientation="lower",
        unit="percent",
        display_unit="%",
        formula_markdown="Part variable = (Primes variables + Primes exceptionnelles) / Salaires de base × 100",
    ),
    MetricDefinition(
        key="taux_charges",
        name="Taux de charges",
        description="Social contributions relative to gross mass.",
        orientation="lower",
        unit="percent",
        display_unit="%",
        formula_markdown="Taux de charges = Cotisations sociales / Masse salariale brute × 100",
    ),
]


def get_definitions() -> list[MetricDefinition]:
    return DEFINITIONS
