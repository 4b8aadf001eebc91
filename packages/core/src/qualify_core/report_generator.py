"""Income worksheet generation.

This module renders a finalized IncomeCalculation as an agency-style income
worksheet: components by category with subtotals, the qualifying total,
warnings, the documents reviewed and the confidence level. The renderer
performs no income arithmetic beyond the category subtotals the calculation
itself provides; the total shown is always the calculation's figure.
"""

import html
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from io import BytesIO
from typing import Iterable, Optional, Union

import structlog
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .agency_rules import get_agency_rules
from .exceptions import ReportError
from .models.documents import IncomeDocument
from .models.income import ComponentCategory, IncomeCalculation, IncomeComponent

logger = structlog.get_logger()


SUPPORTED_FORMATS = ("text", "markdown", "html", "pdf")

CATEGORY_TITLES = {
    ComponentCategory.BASE: "Base Employment Income",
    ComponentCategory.VARIABLE: "Variable Income",
    ComponentCategory.SELF_EMPLOYMENT: "Self-Employment Income",
    ComponentCategory.RENTAL: "Rental Income",
    ComponentCategory.OTHER: "Other Income",
}

DISCLAIMER = (
    "This worksheet summarizes income calculated from uploaded documents for "
    "underwriting review. It is not a loan decision."
)


@dataclass(frozen=True)
class ReportContext:
    """Who the worksheet is prepared by and for.

    Passed in explicitly so rendering never depends on a signed-in user.
    """
    borrower_name: Optional[str] = None
    prepared_by: Optional[str] = None
    organization: Optional[str] = None
    prepared_at: Optional[datetime] = None


@dataclass
class ReportSection:
    """A section of the report."""
    title: str
    content: str
    subsections: list["ReportSection"] = field(default_factory=list)


def _money(value: Optional[Decimal]) -> str:
    if value is None:
        return "-"
    if value < 0:
        return f"-${abs(value):,.2f}"
    return f"${value:,.2f}"


def _confidence_label(confidence: float) -> str:
    if confidence >= 0.8:
        return "High"
    if confidence >= 0.5:
        return "Moderate"
    return "Low"


class IncomeWorksheetGenerator:
    """
    Generate income worksheets from calculations.

    Worksheets include:
    - Header (borrower, agency, preparer, rules version)
    - Summary (qualifying monthly and annual income, confidence)
    - One table per income category with its subtotal
    - Excluded components with reasons
    - Warnings
    - Documents reviewed
    - Calculation audit trail
    """

    def __init__(self):
        self._sections: list[ReportSection] = []

    def generate(
        self,
        calculation: IncomeCalculation,
        documents: Iterable[IncomeDocument] = (),
        context: Optional[ReportContext] = None,
        format: str = "text",
    ) -> Union[str, bytes]:
        """
        Generate a worksheet.

        Args:
            calculation: The finalized calculation
            documents: The borrower's documents, for the reviewed list
            context: Preparer and borrower details
            format: Output format ("text", "markdown", "html", "pdf")

        Returns:
            Formatted worksheet string, or bytes for PDF format

        Raises:
            ReportError: If the format is not supported
        """
        if format not in SUPPORTED_FORMATS:
            raise ReportError(
                f"Unsupported report format: {format}",
                details={"supported": list(SUPPORTED_FORMATS)},
            )

        context = context or ReportContext()
        documents = list(documents)
        self._sections = []

        self._add_header(calculation, context)
        self._add_summary(calculation)
        self._add_components(calculation)
        self._add_excluded(calculation)
        self._add_warnings(calculation)
        self._add_documents(calculation, documents)
        self._add_audit_trail(calculation)

        logger.info(
            "worksheet_generated",
            calculation_id=calculation.id,
            format=format,
            sections=len(self._sections),
        )

        if format == "markdown":
            return self._format_markdown()
        elif format == "html":
            return self._format_html()
        elif format == "pdf":
            return self._format_pdf(calculation, documents, context)
        return self._format_text()

    # -------------------------------------------------------------------------
    # Sections
    # -------------------------------------------------------------------------

    @staticmethod
    def _header_rows(calculation: IncomeCalculation, context: ReportContext) -> list[tuple[str, str]]:
        prepared_at = context.prepared_at or calculation.created_at
        rows = [
            ("Borrower", context.borrower_name or calculation.borrower_id),
            ("Agency", get_agency_rules(calculation.agency).display_name),
        ]
        if context.prepared_by:
            rows.append(("Prepared by", context.prepared_by))
        if context.organization:
            rows.append(("Organization", context.organization))
        rows.append(("Date", prepared_at.strftime("%B %d, %Y")))
        rows.append(("Rules version", calculation.rules_version))
        rows.append(("Calculation", calculation.id))
        return rows

    def _add_header(self, calculation: IncomeCalculation, context: ReportContext) -> None:
        lines = ["INCOME CALCULATION WORKSHEET", "=" * 28, ""]
        for label, value in self._header_rows(calculation, context):
            lines.append(f"{label + ':':<15} {value}")
        self._sections.append(ReportSection(title="Header", content="\n".join(lines)))

    def _add_summary(self, calculation: IncomeCalculation) -> None:
        content = f"""
Qualifying Monthly Income: {_money(calculation.result_monthly_income)}
Qualifying Annual Income:  {_money(calculation.annual_income)}
Confidence:                {calculation.confidence:.0%} ({_confidence_label(calculation.confidence)})
Components Included:       {len(calculation.included_components)}
Components Excluded:       {len(calculation.excluded_components)}
Warnings:                  {len(calculation.warnings)}
""".strip()
        self._sections.append(ReportSection(title="Summary", content=content))

    @staticmethod
    def _component_line(component: IncomeComponent) -> str:
        name = component.component_type.value.replace("_", " ").title()
        if component.source_label:
            name = f"{name} - {component.source_label}"
        return f"{name[:40]:<40} {component.calculation_method[:26]:<26} {_money(component.monthly_amount):>14}"

    def _add_components(self, calculation: IncomeCalculation) -> None:
        subtotals = calculation.subtotals()
        lines = []
        for category, subtotal in subtotals.items():
            lines.append(CATEGORY_TITLES[category].upper())
            lines.append("-" * 82)
            for component in calculation.included_components:
                if component.category != category:
                    continue
                lines.append(self._component_line(component))
                if component.has_two_years:
                    trend = ""
                    if component.trend_direction is not None:
                        pct = (
                            f" {component.trend_percentage:.1f}%"
                            if component.trend_percentage is not None else ""
                        )
                        trend = f"  trend {component.trend_direction.value}{pct}"
                    lines.append(
                        f"    {component.tax_years[0] if component.tax_years else 'Year 1'}: "
                        f"{_money(component.year1_amount)}  "
                        f"{component.tax_years[-1] if component.tax_years else 'Year 2'}: "
                        f"{_money(component.year2_amount)}{trend}"
                    )
                if component.notes:
                    lines.append(f"    {component.notes}")
            lines.append(f"{'Subtotal':<67} {_money(subtotal):>14}")
            lines.append("")

        lines.append("=" * 82)
        lines.append(f"{'TOTAL QUALIFYING MONTHLY INCOME':<67} {_money(calculation.result_monthly_income):>14}")
        self._sections.append(ReportSection(title="Income Components", content="\n".join(lines)))

    def _add_excluded(self, calculation: IncomeCalculation) -> None:
        excluded = calculation.excluded_components
        if not excluded:
            return
        lines = []
        for component in excluded:
            lines.append(self._component_line(component))
            lines.append(f"    Reason: {component.exclusion_reason or 'excluded'}")
        self._sections.append(ReportSection(title="Excluded Components", content="\n".join(lines)))

    def _add_warnings(self, calculation: IncomeCalculation) -> None:
        if calculation.warning_details:
            lines = [
                f"[{w.severity.value.upper()}] {w.message}" for w in calculation.warning_details
            ]
        elif calculation.warnings:
            lines = [f"- {w}" for w in calculation.warnings]
        else:
            lines = ["No warnings."]
        self._sections.append(ReportSection(title="Warnings", content="\n".join(lines)))

    def _add_documents(self, calculation: IncomeCalculation, documents: list[IncomeDocument]) -> None:
        used = set(calculation.document_ids)
        lines = [f"{'File':<36} {'Type':<12} {'Status':<10} {'Confidence':>10}", "-" * 72]
        for doc in documents:
            if doc.removed:
                continue
            marker = "*" if doc.id in used else " "
            lines.append(
                f"{marker}{doc.file_name[:35]:<35} {doc.effective_type.value:<12} "
                f"{doc.ocr_status.value:<10} {doc.confidence:>10.0%}"
            )
            if doc.diagnostics.classification_override:
                lines.append(
                    f"    reclassified from {doc.diagnostics.original_classification.value}"
                )
            if doc.failure_reason:
                lines.append(f"    {doc.failure_reason}")
        lines.append("")
        lines.append("* used in this calculation")
        self._sections.append(ReportSection(title="Documents Reviewed", content="\n".join(lines)))

    def _add_audit_trail(self, calculation: IncomeCalculation) -> None:
        lines = [
            f"{'Step':<30} {'Input':<25} {'Output':<15}",
            "-" * 72,
        ]
        for entry in calculation.audit_log[:25]:
            input_val = entry.input_value or ""
            output_val = entry.output_value or ""
            if len(input_val) > 25:
                input_val = input_val[:23] + ".."
            if len(output_val) > 15:
                output_val = output_val[:13] + ".."
            lines.append(f"{entry.step[:30]:<30} {input_val:<25} {output_val:<15}")

        if len(calculation.audit_log) > 25:
            lines.append(f"... and {len(calculation.audit_log) - 25} more entries")
        lines.append("")
        lines.append(f"Calculated at: {calculation.created_at.strftime('%Y-%m-%d %H:%M:%S UTC')}")
        self._sections.append(ReportSection(title="Audit Trail", content="\n".join(lines)))

    # -------------------------------------------------------------------------
    # Formats
    # -------------------------------------------------------------------------

    def _format_text(self) -> str:
        output = []
        for section in self._sections:
            if section.title != "Header":
                output.append("")
                output.append("=" * 60)
                output.append(section.title.upper())
                output.append("=" * 60)
            output.append(section.content)

        output.append("")
        output.append(DISCLAIMER)
        return "\n".join(output)

    def _format_markdown(self) -> str:
        output = []
        for section in self._sections:
            if section.title == "Header":
                output.append("# Income Calculation Worksheet\n")
                output.append("```")
                output.append(section.content)
                output.append("```")
            else:
                output.append(f"\n## {section.title}\n")
                output.append("```")
                output.append(section.content)
                output.append("```")

        output.append("\n---\n")
        output.append(f"*{DISCLAIMER}*")
        return "\n".join(output)

    def _format_html(self) -> str:
        lines = [
            "<!DOCTYPE html>",
            "<html>",
            "<head>",
            "<title>Income Calculation Worksheet</title>",
            "<style>",
            "body { font-family: 'Courier New', monospace; margin: 40px; }",
            "h2 { color: #555; border-bottom: 2px solid #333; padding-bottom: 5px; }",
            "pre { background: #f5f5f5; padding: 15px; overflow-x: auto; }",
            ".disclaimer { font-size: 0.9em; color: #666; margin-top: 30px; }",
            "</style>",
            "</head>",
            "<body>",
        ]
        for section in self._sections:
            if section.title != "Header":
                lines.append(f"<h2>{html.escape(section.title)}</h2>")
            lines.append(f"<pre>{html.escape(section.content)}</pre>")

        lines.append(f'<div class="disclaimer"><p>{html.escape(DISCLAIMER)}</p></div>')
        lines.append("</body>")
        lines.append("</html>")
        return "\n".join(lines)

    def _format_pdf(
        self,
        calculation: IncomeCalculation,
        documents: list[IncomeDocument],
        context: ReportContext,
    ) -> bytes:
        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=letter,
            rightMargin=0.75 * inch,
            leftMargin=0.75 * inch,
            topMargin=0.75 * inch,
            bottomMargin=0.75 * inch,
        )

        styles = getSampleStyleSheet()
        styles.add(ParagraphStyle(
            name='ReportTitle',
            parent=styles['Heading1'],
            fontSize=18,
            spaceAfter=20,
            alignment=TA_CENTER,
            textColor=colors.HexColor('#1a365d'),
        ))
        styles.add(ParagraphStyle(
            name='SectionHeading',
            parent=styles['Heading2'],
            fontSize=14,
            spaceAfter=12,
            spaceBefore=20,
            textColor=colors.HexColor('#2c5282'),
        ))
        styles.add(ParagraphStyle(
            name='Disclaimer',
            parent=styles['Normal'],
            fontSize=8,
            textColor=colors.grey,
            alignment=TA_CENTER,
        ))

        elements = []
        elements.append(Paragraph("INCOME CALCULATION WORKSHEET", styles['ReportTitle']))

        header_table = Table(
            [[f"{label}:", value] for label, value in self._header_rows(calculation, context)],
            colWidths=[1.5 * inch, 4.5 * inch],
        )
        header_table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
            ('FONTNAME', (1, 0), (1, -1), 'Helvetica'),
            ('FONTSIZE', (0, 0), (-1, -1), 10),
            ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
        ]))
        elements.append(header_table)
        elements.append(Spacer(1, 0.2 * inch))

        # Total box
        total_table = Table(
            [[f"Qualifying Monthly Income: {_money(calculation.result_monthly_income)}"],
             [f"Confidence: {calculation.confidence:.0%} ({_confidence_label(calculation.confidence)})"]],
            colWidths=[6 * inch],
        )
        total_table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#2c5282')),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('FONTNAME', (0, 0), (-1, -1), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, 0), 13),
            ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
            ('TOPPADDING', (0, 0), (-1, -1), 8),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 8),
        ]))
        elements.append(total_table)

        component_style = TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#2c5282')),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTNAME', (0, 1), (-1, -1), 'Helvetica'),
            ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('ALIGN', (2, 0), (-1, -1), 'RIGHT'),
            ('LINEABOVE', (0, -1), (-1, -1), 1, colors.grey),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
        ])
        for category, subtotal in calculation.subtotals().items():
            elements.append(Paragraph(CATEGORY_TITLES[category], styles['SectionHeading']))
            rows = [["Component", "Method", "Monthly"]]
            for component in calculation.included_components:
                if component.category != category:
                    continue
                name = component.component_type.value.replace("_", " ").title()
                if component.source_label:
                    name = f"{name} - {component.source_label}"
                rows.append([name[:40], component.calculation_method[:34], _money(component.monthly_amount)])
            rows.append(["Subtotal", "", _money(subtotal)])
            table = Table(rows, colWidths=[2.8 * inch, 2.2 * inch, 1.2 * inch])
            table.setStyle(component_style)
            elements.append(table)

        if calculation.excluded_components:
            elements.append(Paragraph("Excluded Components", styles['SectionHeading']))
            for component in calculation.excluded_components:
                elements.append(Paragraph(
                    html.escape(
                        f"{component.component_type.value.replace('_', ' ').title()}: "
                        f"{_money(component.monthly_amount)} "
                        f"({component.exclusion_reason or 'excluded'})"
                    ),
                    styles['Normal'],
                ))

        elements.append(Paragraph("Warnings", styles['SectionHeading']))
        for message in calculation.warnings or ("No warnings.",):
            elements.append(Paragraph(html.escape(f"- {message}"), styles['Normal']))

        elements.append(Paragraph("Documents Reviewed", styles['SectionHeading']))
        doc_rows = [["File", "Type", "Status", "Confidence"]]
        for document in documents:
            if document.removed:
                continue
            doc_rows.append([
                document.file_name[:40],
                document.effective_type.value,
                document.ocr_status.value,
                f"{document.confidence:.0%}",
            ])
        doc_table = Table(doc_rows, colWidths=[2.8 * inch, 1.2 * inch, 1 * inch, 1 * inch])
        doc_table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('LINEBELOW', (0, 0), (-1, 0), 1, colors.grey),
            ('ALIGN', (3, 0), (3, -1), 'RIGHT'),
        ]))
        elements.append(doc_table)

        elements.append(Spacer(1, 0.4 * inch))
        elements.append(Paragraph(DISCLAIMER, styles['Disclaimer']))

        try:
            doc.build(elements)
        except Exception as e:
            raise ReportError(f"PDF generation failed: {e}", details={"calculation_id": calculation.id}) from e
        return buffer.getvalue()
