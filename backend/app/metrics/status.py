from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from backend.app.metrics.definitions import get_definitions


class MetricStatusEnum(str, Enum):
    red = "red"
    yellow = "yellow"
    green = "green"


class MetricPoint(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(alias="metric_key")
    value: Optional[float]
    status: Optional[MetricStatusEnum] = None
    periode: Optional[date] = None
    thresholds: Optional[Dict[str, float]] = None  # expects keys: yellow,green


# Orientation: whether lower values are better or higher values are better
METRIC_ORIENTATION: Dict[str, str] = {d.key: d.orientation for d in get_definitions()}

# Monthly rates, in percent
DEFAULT_THRESHOLDS: Dict[str, Dict[str, float]] = {
    "taux_turnover": {"green": 5.0, "yellow": 10.0},
    "taux_absenteisme": {"green": 4.0, "yellow": 7.0},
    "taux_absenteisme_maladie": {"green": 4.0, "yellow": 7.0},
    "pct_precarite": {"green": 25.0, "yellow": 40.0},
    "taux_charges": {"green": 45.0, "yellow": 50.0},
}


def _map_value_to_status(
    metric_key: str,
    value: Optional[float],
    thresholds: Optional[Mapping[str, float]],
) -> Optional[MetricStatusEnum]:
    if value is None or not thresholds:
        return None
    orientation = METRIC_ORIENTATION.get(metric_key, "lower")
    yellow = float(thresholds["yellow"]) if thresholds.get("yellow") is not None else None
    green = float(thresholds["green"]) if thresholds.get("green") is not None else None

    if orientation == "lower":
        # e.g., absenteeism: green <= green_thr, yellow <= yellow_thr, else red
        if green is not None and value <= green:
            return MetricStatusEnum.green
        if yellow is not None and value <= yellow:
            return MetricStatusEnum.yellow
        return MetricStatusEnum.red
    # higher is better: thresholds are minimums
    if green is not None and value >= green:
        return MetricStatusEnum.green
    if yellow is not None and value >= yellow:
        return MetricStatusEnum.yellow
    return MetricStatusEnum.red


def metric_with_status(
    metric_key: str,
    value: Optional[float],
    periode: Optional[date] = None,
    thresholds: Optional[Mapping[str, float]] = None,
) -> MetricPoint:
    if thresholds is None:
        thresholds = DEFAULT_THRESHOLDS.get(metric_key)
    status = _map_value_to_status(metric_key, value, thresholds)
    return MetricPoint(
        metric_key=metric_key,
        value=value,
        status=status,
        periode=periode,
        thresholds=dict(thresholds) if thresholds else None,
    )


def snapshot_points(snapshot: Any, overrides: Optional[Mapping[str, Mapping[str, float]]] = None) -> List[MetricPoint]:
    """One status-tagged point per defined KPI, read off a computed snapshot."""
    overrides = overrides or {}
    return [
        metric_with_status(
            d.key,
            getattr(snapshot, d.key, None),
            periode=getattr(snapshot, "periode", None),
            thresholds=overrides.get(d.key),
        )
        for d in get_definitions()
    ]
