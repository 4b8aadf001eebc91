"""Year-over-year trend analysis for income components."""

from dataclasses import dataclass
from decimal import Decimal
from typing import AbstractSet, Iterable, Optional

from .agency_rules import TRENDED_TYPES
from .models.income import ZERO, ComponentType, IncomeComponent, TrendDirection

# Changes within this percentage are reported as flat
FLAT_TOLERANCE_PCT = Decimal("1")


@dataclass(frozen=True)
class TrendResult:
    direction: Optional[TrendDirection]
    percentage: Optional[float]

    @property
    def is_declining(self) -> bool:
        return self.direction == TrendDirection.DOWN


NO_TREND = TrendResult(direction=None, percentage=None)


def analyze_trend(component: IncomeComponent) -> TrendResult:
    """
    Compare the two tax years of a component.

    Percentage is |year2 - year1| / |year1| x 100 on the reported year
    amounts; add-backs do not affect the trend. A zero prior year has no
    percentage and direction then follows the sign of the recent year.

    Components without two years of figures have no trend.
    """
    if not component.has_two_years:
        return NO_TREND

    year1 = component.year1_amount
    year2 = component.year2_amount

    if year1 == ZERO:
        if year2 > ZERO:
            return TrendResult(TrendDirection.UP, None)
        if year2 < ZERO:
            return TrendResult(TrendDirection.DOWN, None)
        return TrendResult(TrendDirection.FLAT, 0.0)

    pct = abs(year2 - year1) / abs(year1) * 100
    if pct <= FLAT_TOLERANCE_PCT:
        direction = TrendDirection.FLAT
    elif year2 > year1:
        direction = TrendDirection.UP
    else:
        direction = TrendDirection.DOWN
    return TrendResult(direction, round(float(pct), 2))


def apply_trends(
    components: Iterable[IncomeComponent],
    trended_types: AbstractSet[ComponentType] = TRENDED_TYPES,
) -> list[IncomeComponent]:
    """Return copies of the components with trend fields populated.

    Only variable income types in ``trended_types`` are compared; other
    components keep empty trend fields.
    """
    result = []
    for component in components:
        if component.component_type not in trended_types:
            result.append(component.model_copy())
            continue
        trend = analyze_trend(component)
        result.append(component.model_copy(update={
            "trend_direction": trend.direction,
            "trend_percentage": trend.percentage,
        }))
    return result
