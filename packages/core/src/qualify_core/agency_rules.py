"""Agency underwriting rules for qualifying income.

This module holds the table that drives the Income Aggregator and the
self-employment add-backs applied by the Component Builder. Each agency
gets one AgencyRules entry; adding an agency or changing a policy is an
edit to the table, not to the aggregation code.

Sources:
- Fannie Mae Selling Guide B3-3.1 (employment and variable income), B3-3.2
  (self-employment, Form 1084 cash flow analysis), B3-3.1-08 (rental income)
- Freddie Mac Seller/Servicer Guide 5303, 5304, 5306 (Form 91)
- HUD Handbook 4000.1 II.A.4.c (FHA effective income)
- VA Lenders Handbook M26-7 Chapter 4
- USDA HB-1-3555 Chapter 9

Updated: 2025-Q1
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Optional

from .exceptions import ConfigurationError
from .models.income import Agency, ComponentType


# =============================================================================
# VERSION TRACKING
# =============================================================================

AGENCY_RULES_VERSION = "2025-Q1"


def get_agency_rules_version() -> str:
    """Return current agency rules version."""
    return AGENCY_RULES_VERSION


# =============================================================================
# RULE TABLE
# =============================================================================

# Components compared year over year
TRENDED_TYPES = frozenset({
    ComponentType.OVERTIME,
    ComponentType.BONUS,
    ComponentType.COMMISSION,
    ComponentType.SELF_EMPLOYMENT,
    ComponentType.SCHEDULE_C,
    ComponentType.K1_INCOME,
    ComponentType.W2_INCOME,
    ComponentType.VOE_VERIFIED,
})

SELF_EMPLOYMENT_TYPES = frozenset({
    ComponentType.SELF_EMPLOYMENT,
    ComponentType.SCHEDULE_C,
    ComponentType.K1_INCOME,
})

VARIABLE_TYPES = frozenset({
    ComponentType.OVERTIME,
    ComponentType.BONUS,
    ComponentType.COMMISSION,
})

DEFAULT_DECLINE_THRESHOLD = Decimal("0.20")
DEFAULT_EXCLUSION_THRESHOLD = Decimal("0.50")
DEFAULT_VACANCY_FACTOR = Decimal("0.75")
DEFAULT_CONFIDENCE_FLOOR = 0.6


@dataclass(frozen=True)
class AgencyRules:
    """Qualifying income policy for one agency.

    Attributes:
        agency: Agency this entry applies to
        display_name: Name shown on the worksheet
        excluded_types: Component types never counted
        trended_types: Component types compared year over year
        decline_threshold: Decline (as a fraction) beyond which only the
            most recent year is used
        exclusion_threshold: Decline beyond which the component is excluded
        history_required_types: Types that need two years of history
        allow_single_year_self_employment: Count one year of self-employment
            (with a warning) instead of excluding it
        allow_short_variable_history: Count year-to-date variable pay without
            a two-year history (with a warning)
        rental_vacancy_factor: Share of gross rents counted when only gross
            rents are known
        add_back_depreciation: Add depreciation back to business income
        add_back_depletion: Add depletion back to business income
        add_back_business_use_of_home: Add business use of home back
        subtract_meals: Subtract non-deductible meals
        confidence_floor: Document confidence below which a warning is raised
    """
    agency: Agency
    display_name: str
    excluded_types: frozenset[ComponentType] = frozenset({ComponentType.OTHER})
    trended_types: frozenset[ComponentType] = TRENDED_TYPES
    decline_threshold: Decimal = DEFAULT_DECLINE_THRESHOLD
    exclusion_threshold: Decimal = DEFAULT_EXCLUSION_THRESHOLD
    history_required_types: frozenset[ComponentType] = SELF_EMPLOYMENT_TYPES
    allow_single_year_self_employment: bool = True
    allow_short_variable_history: bool = True
    rental_vacancy_factor: Decimal = DEFAULT_VACANCY_FACTOR
    add_back_depreciation: bool = True
    add_back_depletion: bool = True
    add_back_business_use_of_home: bool = True
    subtract_meals: bool = True
    confidence_floor: float = DEFAULT_CONFIDENCE_FLOOR
    notes: tuple[str, ...] = field(default_factory=tuple)

    def is_excluded_type(self, component_type: ComponentType) -> bool:
        return component_type in self.excluded_types

    def is_trended(self, component_type: ComponentType) -> bool:
        return component_type in self.trended_types

    def requires_history(self, component_type: ComponentType) -> bool:
        return component_type in self.history_required_types


AGENCY_RULES: dict[Agency, AgencyRules] = {
    Agency.FANNIE_MAE: AgencyRules(
        agency=Agency.FANNIE_MAE,
        display_name="Fannie Mae",
        notes=("Form 1084 cash flow analysis for self-employment",),
    ),
    Agency.FREDDIE_MAC: AgencyRules(
        agency=Agency.FREDDIE_MAC,
        display_name="Freddie Mac",
        notes=("Form 91 income analysis for self-employment",),
    ),
    Agency.FHA: AgencyRules(
        agency=Agency.FHA,
        display_name="FHA",
        allow_single_year_self_employment=False,
        allow_short_variable_history=False,
        notes=("Variable income requires a two-year history",),
    ),
    Agency.VA: AgencyRules(
        agency=Agency.VA,
        display_name="VA",
        allow_single_year_self_employment=False,
        allow_short_variable_history=False,
        notes=("Commission and overtime require a two-year history",),
    ),
    Agency.USDA: AgencyRules(
        agency=Agency.USDA,
        display_name="USDA",
        allow_single_year_self_employment=False,
        allow_short_variable_history=False,
        notes=("Annual income must be stable and dependable",),
    ),
}


def get_agency_rules(
    agency: Agency | str,
    *,
    confidence_floor: Optional[float] = None,
) -> AgencyRules:
    """Look up the rule set for an agency.

    Args:
        agency: Agency enum or its string value
        confidence_floor: Override the table's document confidence floor

    Returns:
        AgencyRules for the agency

    Raises:
        ConfigurationError: If the agency is unknown
    """
    try:
        key = Agency(agency)
    except ValueError:
        raise ConfigurationError(
            f"Unknown agency: {agency}",
            config_key="agency",
            expected=", ".join(a.value for a in Agency),
            actual=agency,
        ) from None

    rules = AGENCY_RULES[key]
    if confidence_floor is not None:
        rules = replace(rules, confidence_floor=confidence_floor)
    return rules
