"""Map extracted document fields into typed income components.

Only documents with a successful extraction that have not been soft-removed
are considered. Components are produced in a fixed order (wages, variable
pay, self-employment, K-1, rental, other) and, within each, by source name
and tax year, so the same document set always yields the same list.

Calculation methods:
- Pay stub with YTD figures: "YTD annualized" (base YTD / months elapsed)
- Two tax years of the same source: "24-month average"
- One tax year: "12-month average" (years_of_history=1)
"""

import calendar
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

import structlog

from .agency_rules import AgencyRules, get_agency_rules
from .models.audit import IncomeWarning, WarningCode
from .models.documents import (
    BusinessReturnFields,
    DocumentType,
    Form1040Fields,
    Form1099Fields,
    IncomeDocument,
    K1Fields,
    PayStubFields,
    ScheduleCFields,
    ScheduleEFields,
    ScheduleFFields,
    VOEFields,
    W2Fields,
)
from .models.income import ZERO, Agency, ComponentType, IncomeComponent, quantize_money

logger = structlog.get_logger()


BASE_TYPES = frozenset({
    ComponentType.BASE_SALARY,
    ComponentType.BASE_HOURLY,
    ComponentType.W2_INCOME,
    ComponentType.VOE_VERIFIED,
})

SELF_EMPLOYMENT_1099_SUBTYPES = frozenset({"NEC", "MISC", "K"})

# Share difference between VOE base pay and computed base that is flagged
VERIFICATION_TOLERANCE = Decimal("0.10")

_ENTITY_SUFFIXES = re.compile(r'\b(llc|l\.l\.c|inc|incorporated|corp|corporation|co|lp|llp|ltd|pc|pllc)\b\.?')


def months_elapsed(as_of: date) -> Decimal:
    """Months of the calendar year elapsed at ``as_of``, counting partial months.

    September 30 gives 9; September 15 gives 8.5.
    """
    days_in_month = calendar.monthrange(as_of.year, as_of.month)[1]
    return Decimal(as_of.month - 1) + Decimal(as_of.day) / Decimal(days_in_month)


def normalize_name(name: Optional[str]) -> str:
    """Matching key for employer, payer and entity names."""
    if not name:
        return ""
    key = _ENTITY_SUFFIXES.sub("", name.lower())
    key = re.sub(r'[^a-z0-9]+', ' ', key)
    return key.strip()


@dataclass
class _YearEntry:
    """One tax year of a source, with its add-backs."""
    year: int
    amount: Decimal
    adjustment: Decimal = ZERO
    documents: list[IncomeDocument] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)


class ComponentBuilder:
    """
    Build income components from a borrower's documents.

    Data gaps that prevent a component from being built are recorded in
    ``warnings`` rather than producing a zero-amount component.
    """

    def __init__(self, rules: Optional[AgencyRules] = None):
        self.rules = rules or get_agency_rules(Agency.FANNIE_MAE)
        self.warnings: list[IncomeWarning] = []

    def _warn(self, code: WarningCode, message: str, document_id: Optional[str] = None) -> None:
        self.warnings.append(IncomeWarning.create(code, message, document_id=document_id))
        logger.info("component_data_gap", code=code.value, message=message, document_id=document_id)

    def build_components(self, documents: Iterable[IncomeDocument]) -> list[IncomeComponent]:
        """
        Build every component the documents support.

        Args:
            documents: All of the borrower's documents, in any state

        Returns:
            Components in deterministic order. Each carries a monthly amount.
        """
        self.warnings = []
        usable = sorted(
            (d for d in documents if d.is_usable),
            key=lambda d: (d.fields.document_type.value, d.id),
        )
        by_type: dict[DocumentType, list[IncomeDocument]] = {}
        for doc in usable:
            by_type.setdefault(doc.fields.document_type, []).append(doc)

        components: list[IncomeComponent] = []
        components += self._pay_stub_components(by_type.get(DocumentType.PAY_STUB, []))
        has_base = any(c.component_type in BASE_TYPES for c in components)

        if not has_base:
            components += self._w2_components(by_type.get(DocumentType.W2, []))
        components += self._voe_components(by_type.get(DocumentType.VOE, []), components)

        has_wages = any(c.component_type in BASE_TYPES and not c.excluded for c in components)
        if not has_wages:
            components += self._form_1040_components(by_type.get(DocumentType.FORM_1040, []))

        components += self._self_employment_components(by_type)
        components += self._k1_components(
            by_type.get(DocumentType.K1, []),
            by_type.get(DocumentType.FORM_1065, []) + by_type.get(DocumentType.FORM_1120S, []),
        )
        components += self._rental_components(by_type.get(DocumentType.SCHEDULE_E, []))
        components += self._other_components(by_type.get(DocumentType.OTHER, []))

        logger.info(
            "components_built",
            documents=len(usable),
            components=len(components),
            data_gaps=len(self.warnings),
        )
        return components

    # -------------------------------------------------------------------------
    # Shared helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _provenance(documents: list[IncomeDocument]) -> dict:
        return {
            "source_document_ids": tuple(d.id for d in documents),
            "confidence": min((d.confidence for d in documents), default=0.0),
            "ocr_used": any(d.diagnostics.ocr_used for d in documents),
        }

    @staticmethod
    def _best_per_year(entries: list[_YearEntry]) -> list[_YearEntry]:
        """Keep one entry per year (most confident document), oldest first."""
        best: dict[int, _YearEntry] = {}
        for entry in entries:
            current = best.get(entry.year)
            score = max(d.confidence for d in entry.documents)
            if current is None or score > max(d.confidence for d in current.documents):
                best[entry.year] = entry
        return [best[year] for year in sorted(best)]

    def _averaged_component(
        self,
        component_type: ComponentType,
        label: str,
        entries: list[_YearEntry],
        extra_notes: Optional[list[str]] = None,
    ) -> IncomeComponent:
        """Average the two most recent years, or use one year alone."""
        years = self._best_per_year(entries)[-2:]
        notes = list(extra_notes or [])
        for entry in years:
            notes.extend(entry.notes)
        documents = [d for entry in years for d in entry.documents]

        if len(years) == 2:
            older, recent = years
            total = older.amount + older.adjustment + recent.amount + recent.adjustment
            return IncomeComponent(
                component_type=component_type,
                calculation_method="24-month average",
                monthly_amount=total / 24,
                year1_amount=older.amount,
                year2_amount=recent.amount,
                year1_adjustment=older.adjustment,
                year2_adjustment=recent.adjustment,
                notes="; ".join(notes),
                source_label=label,
                tax_years=(older.year, recent.year),
                years_of_history=2,
                **self._provenance(documents),
            )

        (only,) = years
        return IncomeComponent(
            component_type=component_type,
            calculation_method="12-month average",
            monthly_amount=(only.amount + only.adjustment) / 12,
            year2_amount=only.amount,
            year2_adjustment=only.adjustment,
            notes="; ".join(notes),
            source_label=label,
            tax_years=(only.year,),
            years_of_history=1,
            **self._provenance(documents),
        )

    def _group(self, documents: list[IncomeDocument], name_attr: str) -> dict[str, list[IncomeDocument]]:
        groups: dict[str, list[IncomeDocument]] = {}
        for doc in documents:
            groups.setdefault(normalize_name(getattr(doc.fields, name_attr, None)), []).append(doc)
        return dict(sorted(groups.items()))

    def _require_year(self, doc: IncomeDocument) -> Optional[int]:
        year = doc.fields.tax_year
        if year is None:
            self._warn(
                WarningCode.MISSING_DATA,
                f"{doc.file_name}: tax year not found; document not used",
                doc.id,
            )
        return year

    # -------------------------------------------------------------------------
    # Wages
    # -------------------------------------------------------------------------

    def _pay_stub_components(self, stubs: list[IncomeDocument]) -> list[IncomeComponent]:
        components: list[IncomeComponent] = []
        for _, docs in self._group(stubs, "employer_name").items():
            dated = [d for d in docs if self._stub_date(d.fields) is not None]
            if not dated:
                self._warn(
                    WarningCode.MISSING_DATA,
                    f"{docs[0].file_name}: pay period end not found; pay stub not used",
                    docs[0].id,
                )
                continue
            dated.sort(key=lambda d: (self._stub_date(d.fields), d.id))
            latest = dated[-1]
            base = self._pay_stub_base(latest)
            if base is not None:
                components.append(base)
            components.extend(self._pay_stub_variable(dated))
        return components

    @staticmethod
    def _stub_date(fields: PayStubFields) -> Optional[date]:
        return fields.period_end or fields.pay_date

    def _pay_stub_base(self, doc: IncomeDocument) -> Optional[IncomeComponent]:
        f: PayStubFields = doc.fields
        as_of = self._stub_date(f)
        employer = f.employer_name
        component_type = ComponentType.BASE_HOURLY if f.hourly_rate else ComponentType.BASE_SALARY

        if f.gross_ytd is not None:
            months = months_elapsed(as_of)
            variable = f.variable_ytd
            base_ytd = f.gross_ytd - variable
            note = f"YTD gross {f.gross_ytd} through {as_of.isoformat()} over {months.normalize()} months"
            if variable:
                note += f", less variable pay {variable}"
            return IncomeComponent(
                component_type=component_type,
                calculation_method="YTD annualized",
                monthly_amount=base_ytd / months,
                notes=note,
                source_label=employer,
                tax_years=(as_of.year,),
                **self._provenance([doc]),
            )

        periods = f.pay_frequency.periods_per_year if f.pay_frequency else None
        if f.hourly_rate and f.hours_current and periods:
            annual = f.hourly_rate * f.hours_current * periods
            return IncomeComponent(
                component_type=ComponentType.BASE_HOURLY,
                calculation_method="Hourly rate x hours x pay periods / 12",
                monthly_amount=annual / 12,
                notes=f"{f.hourly_rate}/hr x {f.hours_current} hrs x {periods} periods",
                source_label=employer,
                tax_years=(as_of.year,),
                **self._provenance([doc]),
            )

        if f.gross_current is not None and periods:
            return IncomeComponent(
                component_type=component_type,
                calculation_method="Current gross annualized",
                monthly_amount=f.gross_current * periods / 12,
                notes=f"{f.gross_current} x {periods} {f.pay_frequency.value} periods",
                source_label=employer,
                tax_years=(as_of.year,),
                **self._provenance([doc]),
            )

        self._warn(
            WarningCode.MISSING_DATA,
            f"{doc.file_name}: no YTD gross or pay frequency; base pay not computed",
            doc.id,
        )
        return None

    def _pay_stub_variable(self, dated: list[IncomeDocument]) -> list[IncomeComponent]:
        """Overtime, bonus and commission from the latest stub of each year."""
        latest_by_year: dict[int, IncomeDocument] = {}
        for doc in dated:
            latest_by_year[self._stub_date(doc.fields).year] = doc
        years = sorted(latest_by_year)
        current = latest_by_year[years[-1]]
        current_fields: PayStubFields = current.fields
        if not current_fields.variable_ytd:
            return []

        as_of = self._stub_date(current_fields)
        months = months_elapsed(as_of)
        employer = current_fields.employer_name

        if len(years) == 1:
            kinds = [
                name for name, value in (
                    ("overtime", current_fields.overtime_ytd),
                    ("bonus", current_fields.bonus_ytd),
                    ("commission", current_fields.commission_ytd),
                ) if value
            ]
            return [IncomeComponent(
                component_type=ComponentType.VARIABLE_INCOME_YTD,
                calculation_method="YTD annualized",
                monthly_amount=current_fields.variable_ytd / months,
                notes=f"{', '.join(kinds)} YTD {current_fields.variable_ytd}; no prior-year history",
                source_label=employer,
                tax_years=(as_of.year,),
                years_of_history=0,
                **self._provenance([current]),
            )]

        prior = latest_by_year[years[-2]]
        prior_fields: PayStubFields = prior.fields
        prior_as_of = self._stub_date(prior_fields)
        prior_months = months_elapsed(prior_as_of)
        full_prior_year = prior_months == 12
        components = []
        for component_type, attr in (
            (ComponentType.OVERTIME, "overtime_ytd"),
            (ComponentType.BONUS, "bonus_ytd"),
            (ComponentType.COMMISSION, "commission_ytd"),
        ):
            ytd = getattr(current_fields, attr) or ZERO
            prior_total = getattr(prior_fields, attr) or ZERO
            if not ytd and not prior_total:
                continue
            span = prior_months + months
            if full_prior_year:
                prior_note = f"{years[-2]} total {prior_total}"
                year1 = prior_total
            else:
                prior_note = (
                    f"{years[-2]} YTD {prior_total} through {prior_as_of.isoformat()} "
                    f"({prior_months.normalize()} months)"
                )
                year1 = quantize_money(prior_total / prior_months * 12)
            components.append(IncomeComponent(
                component_type=component_type,
                calculation_method="Prior year + YTD average",
                monthly_amount=(prior_total + ytd) / span,
                year1_amount=year1,
                year2_amount=quantize_money(ytd / months * 12),
                notes=(
                    f"{prior_note} plus {as_of.year} YTD {ytd} "
                    f"over {span.normalize()} months; annualized for trend"
                ),
                source_label=employer,
                tax_years=(years[-2], as_of.year),
                years_of_history=2,
                **self._provenance([prior, current]),
            ))
        return components

    def _w2_components(self, w2s: list[IncomeDocument]) -> list[IncomeComponent]:
        components = []
        for _, docs in self._group(w2s, "employer_name").items():
            entries = []
            for doc in docs:
                f: W2Fields = doc.fields
                year = self._require_year(doc)
                if year is None or f.wages is None:
                    continue
                entries.append(_YearEntry(year=year, amount=f.wages, documents=[doc]))
            if entries:
                components.append(self._averaged_component(
                    ComponentType.W2_INCOME,
                    docs[0].fields.employer_name,
                    entries,
                    ["W-2 box 1 wages"],
                ))
        return components

    def _voe_components(
        self,
        voes: list[IncomeDocument],
        existing: list[IncomeComponent],
    ) -> list[IncomeComponent]:
        has_base = any(c.component_type in BASE_TYPES for c in existing)
        components = []
        for doc in voes:
            f: VOEFields = doc.fields
            annual = self._voe_annual(f)
            if annual is None:
                self._warn(
                    WarningCode.MISSING_DATA,
                    f"{doc.file_name}: base pay period not recognised; VOE not used",
                    doc.id,
                )
                continue

            monthly = annual / 12
            notes = [f"VOE base pay {f.base_pay_amount} per {f.base_pay_period.value}"]
            if f.employment_start_date:
                notes.append(f"employed since {f.employment_start_date.isoformat()}")

            component = IncomeComponent(
                component_type=ComponentType.VOE_VERIFIED,
                calculation_method="VOE base pay annualized",
                monthly_amount=monthly,
                year1_amount=f.prior_year2_earnings,
                year2_amount=f.prior_year_earnings,
                notes="; ".join(notes),
                source_label=f.employer_name,
                years_of_history=sum(
                    1 for v in (f.prior_year_earnings, f.prior_year2_earnings) if v is not None
                ),
                excluded=has_base,
                exclusion_reason="verification only; wage base taken from pay stubs or W-2" if has_base else None,
                **self._provenance([doc]),
            )
            components.append(component)
            if has_base:
                self._check_verification(doc, component, existing)
        return components

    @staticmethod
    def _voe_annual(f: VOEFields) -> Optional[Decimal]:
        if f.base_pay_amount is None or f.base_pay_period is None:
            return None
        if f.base_pay_period.periods_per_year:
            return f.base_pay_amount * f.base_pay_period.periods_per_year
        if f.hours_per_week:
            return f.base_pay_amount * f.hours_per_week * 52
        return None

    def _check_verification(
        self,
        doc: IncomeDocument,
        voe: IncomeComponent,
        existing: list[IncomeComponent],
    ) -> None:
        key = normalize_name(voe.source_label)
        for component in existing:
            if component.component_type not in BASE_TYPES or normalize_name(component.source_label) != key:
                continue
            if not component.monthly_amount:
                continue
            diff = abs(voe.monthly_amount - component.monthly_amount) / abs(component.monthly_amount)
            if diff > VERIFICATION_TOLERANCE:
                self._warn(
                    WarningCode.VERIFICATION_MISMATCH,
                    f"VOE base pay {voe.monthly_amount}/mo differs from "
                    f"{component.calculation_method} {component.monthly_amount}/mo "
                    f"for {voe.source_label}",
                    doc.id,
                )

    def _form_1040_components(self, returns: list[IncomeDocument]) -> list[IncomeComponent]:
        entries = []
        for doc in returns:
            f: Form1040Fields = doc.fields
            year = self._require_year(doc)
            if year is None or f.wages is None:
                continue
            entries.append(_YearEntry(year=year, amount=f.wages, documents=[doc]))
        if not entries:
            return []
        return [self._averaged_component(
            ComponentType.W2_INCOME,
            "Form 1040",
            entries,
            ["Form 1040 line 1 wages; no W-2, pay stub or VOE provided"],
        )]

    # -------------------------------------------------------------------------
    # Self-employment
    # -------------------------------------------------------------------------

    def _add_backs(
        self,
        year: int,
        *,
        depreciation: Optional[Decimal] = None,
        depletion: Optional[Decimal] = None,
        business_use_of_home: Optional[Decimal] = None,
        meals: Optional[Decimal] = None,
        share: Decimal = Decimal("1"),
    ) -> tuple[Decimal, list[str]]:
        """Total add-back for one year plus a note per item."""
        rules = self.rules
        items = []
        if rules.add_back_depreciation and depreciation:
            items.append(("depreciation", depreciation * share))
        if rules.add_back_depletion and depletion:
            items.append(("depletion", depletion * share))
        if rules.add_back_business_use_of_home and business_use_of_home:
            items.append(("business use of home", business_use_of_home * share))
        if rules.subtract_meals and meals:
            items.append(("non-deductible meals", -(meals * share)))

        total = sum((amount for _, amount in items), ZERO)
        notes = [f"{year} add-back {name} {quantize_money(amount)}" for name, amount in items]
        return total, notes

    def _self_employment_components(
        self,
        by_type: dict[DocumentType, list[IncomeDocument]],
    ) -> list[IncomeComponent]:
        components = []

        schedule_cs = by_type.get(DocumentType.SCHEDULE_C, [])
        for _, docs in self._group(schedule_cs, "business_name").items():
            entries = []
            for doc in docs:
                f: ScheduleCFields = doc.fields
                year = self._require_year(doc)
                if year is None or f.net_profit is None:
                    continue
                adjustment, notes = self._add_backs(
                    year,
                    depreciation=f.depreciation,
                    depletion=f.depletion,
                    business_use_of_home=f.business_use_of_home,
                    meals=f.meals,
                )
                entries.append(_YearEntry(year, f.net_profit, adjustment, [doc], notes))
            if entries:
                components.append(self._averaged_component(
                    ComponentType.SELF_EMPLOYMENT,
                    docs[0].fields.business_name or "Schedule C",
                    entries,
                    ["Schedule C net profit"],
                ))

        farm = []
        for doc in by_type.get(DocumentType.SCHEDULE_F, []):
            f: ScheduleFFields = doc.fields
            year = self._require_year(doc)
            if year is None or f.net_farm_profit is None:
                continue
            adjustment, notes = self._add_backs(year, depreciation=f.depreciation)
            farm.append(_YearEntry(year, f.net_farm_profit, adjustment, [doc], notes))
        if farm:
            components.append(self._averaged_component(
                ComponentType.SELF_EMPLOYMENT, "Schedule F", farm, ["Schedule F net farm profit"]
            ))

        components += self._form_1099_components(
            by_type.get(DocumentType.FORM_1099, []),
            schedule_c_years={
                d.fields.tax_year for d in schedule_cs
                if d.fields.tax_year is not None and d.fields.net_profit is not None
            },
        )

        k1_entities = {
            normalize_name(d.fields.entity_name) for d in by_type.get(DocumentType.K1, [])
        }
        returns = by_type.get(DocumentType.FORM_1065, []) + by_type.get(DocumentType.FORM_1120S, [])
        for key, docs in self._group(returns, "entity_name").items():
            if key in k1_entities:
                continue
            entries = []
            for doc in docs:
                f: BusinessReturnFields = doc.fields
                year = self._require_year(doc)
                if year is None or f.ordinary_business_income is None:
                    continue
                share = self._ownership_share(doc, f.ownership_percentage)
                adjustment, notes = self._add_backs(year, depreciation=f.depreciation, share=share)
                entries.append(_YearEntry(
                    year, f.ordinary_business_income * share, adjustment, [doc],
                    [f"{year} ownership {share * 100:.0f}%"] + notes,
                ))
            if entries:
                components.append(self._averaged_component(
                    ComponentType.SELF_EMPLOYMENT,
                    docs[0].fields.entity_name,
                    entries,
                    ["Business return ordinary income x ownership"],
                ))
        return components

    def _ownership_share(self, doc: IncomeDocument, percentage: Optional[Decimal]) -> Decimal:
        if percentage is None:
            self._warn(
                WarningCode.MISSING_DATA,
                f"{doc.file_name}: ownership percentage not found; 100% assumed",
                doc.id,
            )
            return Decimal("1")
        return percentage / 100

    def _form_1099_components(
        self,
        forms: list[IncomeDocument],
        *,
        schedule_c_years: set[int],
    ) -> list[IncomeComponent]:
        components = []
        for _, docs in self._group(forms, "payer_name").items():
            entries = []
            other_entries = []
            for doc in docs:
                f: Form1099Fields = doc.fields
                year = self._require_year(doc)
                if year is None or f.gross_amount is None:
                    continue
                entry = _YearEntry(year, f.gross_amount, documents=[doc])
                if (f.form_subtype or "NEC") not in SELF_EMPLOYMENT_1099_SUBTYPES:
                    other_entries.append(entry)
                elif year in schedule_c_years:
                    # Already reported within Schedule C gross receipts
                    self._warn(
                        WarningCode.COVERED_BY_SCHEDULE_C,
                        f"{doc.file_name}: {year} 1099 from {f.payer_name or 'unknown payer'} "
                        f"not counted separately; included in {year} Schedule C gross receipts",
                        doc.id,
                    )
                else:
                    entries.append(entry)

            label = docs[0].fields.payer_name
            if entries:
                components.append(self._averaged_component(
                    ComponentType.SELF_EMPLOYMENT, label, entries, ["1099 gross compensation"]
                ))
            if other_entries:
                components.append(self._averaged_component(
                    ComponentType.OTHER, label, other_entries, ["1099 non-employment income"]
                ))
        return components

    def _k1_components(
        self,
        k1s: list[IncomeDocument],
        returns: list[IncomeDocument],
    ) -> list[IncomeComponent]:
        depreciation_by_entity: dict[tuple[str, int], Decimal] = {}
        for doc in returns:
            f: BusinessReturnFields = doc.fields
            if f.depreciation and f.tax_year is not None:
                depreciation_by_entity[(normalize_name(f.entity_name), f.tax_year)] = f.depreciation

        components = []
        for key, docs in self._group(k1s, "entity_name").items():
            entries = []
            for doc in docs:
                f: K1Fields = doc.fields
                year = self._require_year(doc)
                if year is None or f.ordinary_income is None:
                    continue
                amount = f.ordinary_income + (f.guaranteed_payments or ZERO)
                notes = [f"{year} box 1 {f.ordinary_income}"]
                if f.guaranteed_payments:
                    notes.append(f"{year} box 4 guaranteed payments {f.guaranteed_payments}")
                adjustment = ZERO
                depreciation = depreciation_by_entity.get((key, year))
                if depreciation is not None:
                    share = (f.ownership_percentage or Decimal("100")) / 100
                    adjustment, add_notes = self._add_backs(year, depreciation=depreciation, share=share)
                    notes += add_notes
                entries.append(_YearEntry(year, amount, adjustment, [doc], notes))
            if entries:
                components.append(self._averaged_component(
                    ComponentType.K1_INCOME, docs[0].fields.entity_name, entries
                ))
        return components

    # -------------------------------------------------------------------------
    # Rental and other
    # -------------------------------------------------------------------------

    def _rental_components(self, schedules: list[IncomeDocument]) -> list[IncomeComponent]:
        entries = []
        for doc in schedules:
            f: ScheduleEFields = doc.fields
            year = self._require_year(doc)
            if year is None:
                continue
            if f.net_rental is not None:
                adjustment, notes = ZERO, []
                if self.rules.add_back_depreciation and f.depreciation:
                    adjustment = f.depreciation
                    notes.append(f"{year} add-back depreciation {f.depreciation}")
                entries.append(_YearEntry(year, f.net_rental, adjustment, [doc], notes))
            elif f.rents_received is not None:
                factor = self.rules.rental_vacancy_factor
                entries.append(_YearEntry(
                    year,
                    f.rents_received * factor,
                    documents=[doc],
                    notes=[f"{year} gross rents {f.rents_received} x vacancy factor {factor}"],
                ))
            else:
                self._warn(
                    WarningCode.MISSING_DATA,
                    f"{doc.file_name}: no net or gross rental figure; Schedule E not used",
                    doc.id,
                )
        if not entries:
            return []
        return [self._averaged_component(
            ComponentType.RENTAL_INCOME, "Schedule E", entries, ["Schedule E net rental"]
        )]

    def _other_components(self, documents: list[IncomeDocument]) -> list[IncomeComponent]:
        components = []
        for doc in documents:
            amount = doc.fields.amount
            if amount is None:
                continue
            components.append(IncomeComponent(
                component_type=ComponentType.OTHER,
                calculation_method="Annual amount / 12",
                monthly_amount=amount / 12,
                notes="Unclassified document; requires manual review",
                source_label=doc.file_name,
                **self._provenance([doc]),
            ))
        return components
