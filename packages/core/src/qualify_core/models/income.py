"""Income component and calculation models.

Components and calculations are frozen: recomputation always produces a
new calculation with a new component set, so prior results stay intact for
audit.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from qualify_core.models.audit import AuditEntry, IncomeWarning

CENTS = Decimal("0.01")
ZERO = Decimal("0")


def quantize_money(value: Decimal) -> Decimal:
    """Round a monetary amount to cents (half up)."""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def _utc_now() -> datetime:
    """Return current UTC datetime with timezone info."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMERATIONS
# =============================================================================

class ComponentType(str, Enum):
    """Typed contribution to qualifying income."""
    BASE_SALARY = "base_salary"
    BASE_HOURLY = "base_hourly"
    W2_INCOME = "w2_income"
    VOE_VERIFIED = "voe_verified"
    OVERTIME = "overtime"
    BONUS = "bonus"
    COMMISSION = "commission"
    VARIABLE_INCOME_YTD = "variable_income_ytd"
    SELF_EMPLOYMENT = "self_employment"
    SCHEDULE_C = "schedule_c"
    RENTAL_INCOME = "rental_income"
    SCHEDULE_E = "schedule_e"
    K1_INCOME = "k1_income"
    OTHER = "other"


class ComponentCategory(str, Enum):
    """Worksheet section a component is reported under."""
    BASE = "base"
    VARIABLE = "variable"
    SELF_EMPLOYMENT = "self_employment"
    RENTAL = "rental"
    OTHER = "other"


COMPONENT_CATEGORIES: dict[ComponentType, ComponentCategory] = {
    ComponentType.BASE_SALARY: ComponentCategory.BASE,
    ComponentType.BASE_HOURLY: ComponentCategory.BASE,
    ComponentType.W2_INCOME: ComponentCategory.BASE,
    ComponentType.VOE_VERIFIED: ComponentCategory.BASE,
    ComponentType.OVERTIME: ComponentCategory.VARIABLE,
    ComponentType.BONUS: ComponentCategory.VARIABLE,
    ComponentType.COMMISSION: ComponentCategory.VARIABLE,
    ComponentType.VARIABLE_INCOME_YTD: ComponentCategory.VARIABLE,
    ComponentType.SELF_EMPLOYMENT: ComponentCategory.SELF_EMPLOYMENT,
    ComponentType.SCHEDULE_C: ComponentCategory.SELF_EMPLOYMENT,
    ComponentType.K1_INCOME: ComponentCategory.SELF_EMPLOYMENT,
    ComponentType.RENTAL_INCOME: ComponentCategory.RENTAL,
    ComponentType.SCHEDULE_E: ComponentCategory.RENTAL,
    ComponentType.OTHER: ComponentCategory.OTHER,
}


class TrendDirection(str, Enum):
    """Year-over-year direction of a component."""
    UP = "up"
    DOWN = "down"
    FLAT = "flat"


class Agency(str, Enum):
    """Investor/insurer rule set."""
    FANNIE_MAE = "fannie_mae"
    FREDDIE_MAC = "freddie_mac"
    FHA = "fha"
    VA = "va"
    USDA = "usda"


# =============================================================================
# COMPONENT
# =============================================================================

class IncomeComponent(BaseModel):
    """One typed contribution to monthly qualifying income.

    ``monthly_amount`` is the only figure summed into the total. The year
    amounts are provenance: ``year1_amount`` is the older year and
    ``year2_amount`` the more recent one. Add-backs for each year are kept
    separately in ``year1_adjustment`` and ``year2_adjustment``.
    """
    model_config = ConfigDict(frozen=True)

    component_type: ComponentType
    calculation_method: str
    monthly_amount: Decimal
    year1_amount: Optional[Decimal] = None
    year2_amount: Optional[Decimal] = None
    year1_adjustment: Decimal = ZERO
    year2_adjustment: Decimal = ZERO
    trend_direction: Optional[TrendDirection] = None
    trend_percentage: Optional[float] = None
    notes: str = ""
    source_label: Optional[str] = None
    source_document_ids: tuple[str, ...] = ()
    tax_years: tuple[int, ...] = ()
    years_of_history: int = Field(default=0, ge=0)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    ocr_used: bool = False
    excluded: bool = False
    exclusion_reason: Optional[str] = None

    @field_validator("monthly_amount", mode="before")
    @classmethod
    def coerce_monthly_amount(cls, v):
        """Coerce to Decimal and round to cents."""
        if v is None:
            raise ValueError("monthly_amount is required")
        return quantize_money(Decimal(str(v)) if isinstance(v, (int, float, str)) else v)

    @computed_field
    @property
    def category(self) -> ComponentCategory:
        return COMPONENT_CATEGORIES[self.component_type]

    @property
    def has_two_years(self) -> bool:
        return self.year1_amount is not None and self.year2_amount is not None

    def with_note(self, note: str) -> "IncomeComponent":
        """Return a copy with ``note`` appended to the notes."""
        notes = f"{self.notes}; {note}" if self.notes else note
        return self.model_copy(update={"notes": notes})


# =============================================================================
# CALCULATION
# =============================================================================

class IncomeCalculation(BaseModel):
    """One qualification result for a borrower at a point in time."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    borrower_id: str
    agency: Agency
    result_monthly_income: Decimal
    confidence: float = Field(ge=0.0, le=1.0)
    warnings: tuple[str, ...] = ()
    warning_details: tuple[IncomeWarning, ...] = ()
    components: tuple[IncomeComponent, ...] = ()
    document_ids: tuple[str, ...] = ()
    rules_version: str = ""
    audit_log: tuple[AuditEntry, ...] = ()
    created_at: datetime = Field(default_factory=_utc_now)

    @property
    def included_components(self) -> list[IncomeComponent]:
        return [c for c in self.components if not c.excluded]

    @property
    def excluded_components(self) -> list[IncomeComponent]:
        return [c for c in self.components if c.excluded]

    def subtotals(self) -> dict[ComponentCategory, Decimal]:
        """Included monthly amounts per worksheet category, in category order."""
        totals: dict[ComponentCategory, Decimal] = {}
        for category in ComponentCategory:
            amounts = [
                c.monthly_amount for c in self.included_components if c.category == category
            ]
            if amounts:
                totals[category] = sum(amounts, ZERO)
        return totals

    @property
    def annual_income(self) -> Decimal:
        return self.result_monthly_income * 12
