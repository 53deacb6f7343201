from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from typing import Any, Dict, List, Union

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from backend.app.snapshots.errors import WorkbookError


logger = logging.getLogger(__name__)

# Sheet name in the workbook -> key expected by normalize_dataset
REQUIRED_SHEETS: Dict[str, str] = {
    "EMPLOYES": "employees",
    "REMUNERATION": "remunerations",
    "ABSENCES": "absences",
}


def _rows(sheet) -> List[Dict[str, Any]]:
    values = sheet.iter_rows(values_only=True)
    header = next(values, None)
    if not header:
        return []
    columns = [str(h).strip() if h is not None else None for h in header]
    rows: List[Dict[str, Any]] = []
    for raw in values:
        if raw is None or all(v is None or (isinstance(v, str) and not v.strip()) for v in raw):
            continue
        rows.append({c: v for c, v in zip(columns, raw) if c})
    return rows


def read_workbook(path: Union[str, Path]) -> Dict[str, List[Dict[str, Any]]]:
    """Raw rows of the three import sheets, keyed for `normalize_dataset`.

    Sheet names are matched case-insensitively; blank lines are skipped.
    """
    try:
        workbook = load_workbook(filename=str(path), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, OSError, KeyError) as exc:
        raise WorkbookError(f"Cannot open workbook {path}: {exc}") from exc

    try:
        by_name = {name.strip().upper(): name for name in workbook.sheetnames}
        missing = [name for name in REQUIRED_SHEETS if name not in by_name]
        if missing:
            raise WorkbookError(f"Missing sheet(s): {', '.join(missing)}")
        sheets = {key: _rows(workbook[by_name[name]]) for name, key in REQUIRED_SHEETS.items()}
    finally:
        workbook.close()

    logger.info(
        "Read %s: %d employees, %d payslips, %d absences",
        path, len(sheets["employees"]), len(sheets["remunerations"]), len(sheets["absences"]),
    )
    return sheets
