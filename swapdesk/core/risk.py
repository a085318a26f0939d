"""
Display-level risk indicators derived from a quote.

Nothing here gates execution: unparsable input degrades to the mildest
classification instead of raising.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from ..config import settings
from .models import PriceImpactAssessment, RouteStep, Severity

ROUTE_SEPARATOR = " → "
DIRECT_ROUTE = "Direct"
AGGREGATED_ROUTE = "Aggregated"

HIGH_SLIPPAGE_BPS = 200


@dataclass(frozen=True)
class ImpactThresholds:
    """Price impact percentages where severity steps up."""

    medium: float = 1.0
    high: float = 3.0

    def __post_init__(self) -> None:
        if self.medium < 0 or self.high < self.medium:
            raise ValueError(f"Invalid impact thresholds: medium={self.medium} high={self.high}")


DEFAULT_THRESHOLDS = ImpactThresholds()


def thresholds_from_settings() -> ImpactThresholds:
    return ImpactThresholds(
        medium=settings.impact_medium_threshold,
        high=settings.impact_high_threshold,
    )


def _to_float(raw: Any) -> float:
    if raw is None or isinstance(raw, bool):
        return 0.0
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return value


def assess_price_impact(
    raw: Any,
    thresholds: ImpactThresholds = DEFAULT_THRESHOLDS,
) -> PriceImpactAssessment:
    value = _to_float(raw)
    if value < thresholds.medium:
        severity = Severity.LOW
    elif value < thresholds.high:
        severity = Severity.MEDIUM
    else:
        severity = Severity.HIGH
    return PriceImpactAssessment(value=value, severity=severity)


def _step_label(step: Any) -> Optional[str]:
    if isinstance(step, RouteStep):
        label = step.label
    elif isinstance(step, dict):
        info = step.get("swapInfo") or {}
        label = info.get("label") or step.get("label")
    else:
        label = getattr(step, "label", None)
    if label is None:
        return None
    label = str(label).strip()
    return label or None


def format_route(route_plan: Optional[Iterable[Any]]) -> str:
    steps = list(route_plan or [])
    if not steps:
        return DIRECT_ROUTE

    labels: List[str] = []
    for step in steps:
        label = _step_label(step)
        if label and (not labels or labels[-1] != label):
            labels.append(label)

    if not labels:
        return AGGREGATED_ROUTE
    return ROUTE_SEPARATOR.join(labels)


def is_high_slippage(slippage_bps: int) -> bool:
    return slippage_bps > HIGH_SLIPPAGE_BPS
