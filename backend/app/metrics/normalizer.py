"""Coercion of raw spreadsheet/database cells into canonical values.

Every function here is total: a malformed cell yields a deterministic
fallback (None, a default, or the current month) and never an exception.
"""
from __future__ import annotations

import logging
import re
import unicodedata
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from backend.app.metrics.records import (
    AbsenceRecord,
    Dataset,
    EmployeeRecord,
    MONETARY_FIELDS,
    RemunerationRecord,
)


logger = logging.getLogger(__name__)

Clock = Callable[[], date]

# Spreadsheet serial day 25569 is 1970-01-01
EXCEL_EPOCH_OFFSET = 25569
_UNIX_EPOCH = datetime(1970, 1, 1)
_MAX_SERIAL = 100000

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_FR_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_US_DASHED_DATE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_MONTH_YEAR = re.compile(r"^(\d{1,2})/(\d{4})$")

TRUE_TOKENS = frozenset({"oui", "yes", "true", "1", "o", "y", "vrai"})

MATRICULE_MAX = 50
TYPE_ABSENCE_MAX = 100

ABSENCE_FAMILIES: Dict[str, str] = {
    "conge": "Congés",
    "cp": "Congés",
    "rtt": "Congés",
    "repos": "Congés",
    "maladie": "Maladie",
    "arret": "Maladie",
    "formation": "Formation",
    "stage": "Formation",
    "maternite": "Congés légaux",
    "paternite": "Congés légaux",
    "parental": "Congés légaux",
    "accident": "Accident",
    "at": "Accident",
    "mp": "Accident",
    "familial": "Familial",
    "famille": "Familial",
    "deces": "Familial",
}


def today() -> date:
    return date.today()


def fold(value: Any) -> str:
    """Lower-case, accent-free, trimmed text used for label matching."""
    if value is None:
        return ""
    text = unicodedata.normalize("NFKD", str(value))
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return text.strip().lower()


def tokens(value: Any) -> List[str]:
    return [t for t in re.split(r"[^a-z0-9]+", fold(value)) if t]


def _from_serial(serial: float) -> Optional[date]:
    if not (0 < serial < _MAX_SERIAL):
        return None
    try:
        return (_UNIX_EPOCH + timedelta(days=serial - EXCEL_EPOCH_OFFSET)).date()
    except OverflowError:
        return None


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date(value: Any) -> Optional[date]:
    """Like normalize_date but returns a `date` instead of an ISO string."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        return _from_serial(float(value))

    text = str(value).strip()
    if not text:
        return None
    m = _ISO_DATE.match(text)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    m = _FR_DATE.match(text)
    if m:
        return _safe_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
    m = _US_DASHED_DATE.match(text)
    if m:
        return _safe_date(int(m.group(3)), int(m.group(1)), int(m.group(2)))
    return None


def normalize_date(value: Any) -> Optional[str]:
    """Canonical `YYYY-MM-DD` for a cell, or None when it is not a date."""
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else None


def parse_period(value: Any, clock: Clock = today) -> date:
    """First day of the month of `value`; the current month on failure."""
    parsed: Optional[date] = None
    if isinstance(value, str):
        m = _MONTH_YEAR.match(value.strip())
        if m:
            parsed = _safe_date(int(m.group(2)), int(m.group(1)), 1)
    if parsed is None:
        parsed = parse_date(value)
    if parsed is None:
        if value not in (None, ""):
            logger.warning("Unreadable period %r, falling back to current month", value)
        parsed = clock()
    return parsed.replace(day=1)


def normalize_period(value: Any, clock: Clock = today) -> str:
    return parse_period(value, clock).isoformat()


def sanitize_number(value: Any, default: float = 0.0) -> float:
    """Parse a loosely formatted number ("1 234,50 €" -> 1234.5)."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
        return number if number == number and abs(number) != float("inf") else default

    text = re.sub(r"[\s  ']", "", str(value))
    if not text:
        return default
    if "," in text and "." in text:
        # whichever separator comes last is the decimal one
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        text = text.replace(",", ".") if text.count(",") == 1 else text.replace(",", "")
    elif text.count(".") > 1:
        text = text.replace(".", "")

    negative = text.startswith("-")
    text = re.sub(r"[^0-9.]", "", text)
    if not text or text == ".":
        return default
    try:
        number = float(text)
    except ValueError:
        return default
    return -number if negative else number


def parse_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip().lower() in TRUE_TOKENS


def sanitize_string(value: Any, max_length: int = 255) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        # numeric identifiers come back from spreadsheets as 123.0
        value = int(value)
    return str(value).strip()[:max_length]


def normalize_sex(value: Any) -> Optional[str]:
    folded = fold(value)
    if folded in ("m", "h", "homme", "male", "masculin"):
        return "M"
    if folded in ("f", "femme", "female", "feminin"):
        return "F"
    return None


def normalize_absence_family(value: Any) -> str:
    words = tokens(value)
    if not words:
        return "Autres"
    joined = " ".join(words)
    for key, family in ABSENCE_FAMILIES.items():
        if len(key) <= 3:
            if key in words:
                return family
        elif key in joined:
            return family
    return "Autres"


# ---------- Row normalizers ----------


def _lowered(row: Mapping[str, Any]) -> Dict[str, Any]:
    return {str(k).strip().lower(): v for k, v in row.items() if k is not None}


def _optional_text(value: Any, max_length: int = 255) -> Optional[str]:
    text = sanitize_string(value, max_length)
    return text or None


def normalize_employee_row(row: Mapping[str, Any], clock: Clock = today) -> EmployeeRecord:
    cells = _lowered(row)
    return EmployeeRecord(
        matricule=sanitize_string(cells.get("matricule"), MATRICULE_MAX),
        periode=parse_period(cells.get("periode"), clock),
        sexe=normalize_sex(cells.get("sexe")),
        date_naissance=parse_date(cells.get("date_naissance")),
        date_entree=parse_date(cells.get("date_entree")),
        date_sortie=parse_date(cells.get("date_sortie")),
        type_contrat=_optional_text(cells.get("type_contrat"), 50) or "CDI",
        temps_travail=sanitize_number(cells.get("temps_travail"), 1.0),
        statut_emploi=_optional_text(cells.get("statut_emploi"), 50) or "Actif",
        intitule_poste=_optional_text(cells.get("intitule_poste")) or "Non spécifié",
    )


def normalize_remuneration_row(row: Mapping[str, Any], clock: Clock = today) -> RemunerationRecord:
    cells = _lowered(row)
    amounts = {name: sanitize_number(cells.get(name)) for name in MONETARY_FIELDS}
    return RemunerationRecord(
        matricule=sanitize_string(cells.get("matricule"), MATRICULE_MAX),
        mois_paie=parse_period(cells.get("mois_paie"), clock),
        **amounts,
    )


def normalize_absence_row(row: Mapping[str, Any]) -> Optional[AbsenceRecord]:
    """Typed absence, or None when the start date is unreadable."""
    cells = _lowered(row)
    start = parse_date(cells.get("date_debut"))
    if start is None:
        return None
    return AbsenceRecord(
        matricule=sanitize_string(cells.get("matricule"), MATRICULE_MAX),
        type_absence=sanitize_string(cells.get("type_absence"), TYPE_ABSENCE_MAX),
        famille=normalize_absence_family(cells.get("famille") or cells.get("type_absence")),
        date_debut=start,
        date_fin=parse_date(cells.get("date_fin")) or start,
        motif=_optional_text(cells.get("motif")),
        justificatif_fourni=parse_boolean(cells.get("justificatif_fourni")),
        validation_status=_optional_text(cells.get("validation_status"), 50),
    )


def normalize_dataset(
    sheets: Mapping[str, Sequence[Mapping[str, Any]]],
    clock: Clock = today,
) -> Dataset:
    """Normalize the raw `employees` / `remunerations` / `absences` row lists."""
    employees = tuple(normalize_employee_row(r, clock) for r in sheets.get("employees", ()))
    remunerations = tuple(normalize_remuneration_row(r, clock) for r in sheets.get("remunerations", ()))

    absences: List[AbsenceRecord] = []
    rejected = 0
    for raw in sheets.get("absences", ()):
        record = normalize_absence_row(raw)
        if record is None:
            rejected += 1
            continue
        absences.append(record)
    if rejected:
        logger.warning("Dropped %d absence rows without a readable start date", rejected)

    return Dataset(
        employees=employees,
        remunerations=remunerations,
        absences=tuple(absences),
        periods=discover_periods(employees, remunerations),
        rejected_rows=rejected,
    )


def discover_periods(
    employees: Iterable[EmployeeRecord], remunerations: Iterable[RemunerationRecord]
) -> tuple[date, ...]:
    found = {e.periode for e in employees} | {r.mois_paie for r in remunerations}
    return tuple(sorted(found))
