"""Paginated cash-flow document rendered with reportlab's canvas API.

Layout works top-down in points from the top edge of an A4 page and converts to
reportlab's bottom-left origin only when drawing.
"""

from __future__ import annotations

import io
from collections.abc import Sequence
from dataclasses import dataclass

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from crm_core.finance.aggregation import EntryType, Summary
from crm_core.reporting.formatting import fit_text, format_date, format_money
from crm_core.reporting.types import ReportContext, ReportRecord


PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 50
CONTENT_WIDTH = PAGE_WIDTH - 2 * MARGIN
ROW_HEIGHT = 20
HEADER_HEIGHT = 25
# Last row baseline allowed on a page, measured from the top edge.
ROW_LIMIT = 720
FOOTER_Y = 750

PRIMARY = colors.HexColor("#16a34a")
SECONDARY = colors.HexColor("#15803d")
TEXT = colors.HexColor("#1f2937")
LIGHT_GRAY = colors.HexColor("#f3f4f6")
STRIPE = colors.HexColor("#fafafa")
MEDIUM_GRAY = colors.HexColor("#9ca3af")
RED = colors.HexColor("#dc2626")

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
ROW_FONT_SIZE = 8


@dataclass(frozen=True)
class _Column:
    title: str
    x: float
    width: float


COLUMNS = (
    _Column("Date", MARGIN + 5, 50),
    _Column("Type", MARGIN + 60, 45),
    _Column("Category", MARGIN + 110, 85),
    _Column("Description", MARGIN + 200, 205),
    _Column("Amount", MARGIN + 410, 85),
)


class _Page:
    """Thin wrapper translating top-down coordinates onto the canvas."""

    def __init__(self, pdf: canvas.Canvas) -> None:
        self.pdf = pdf
        self.count = 1

    def text(self, x: float, top: float, value: str, *, font: str = FONT, size: float = 10, color=TEXT) -> None:  # type: ignore[no-untyped-def]
        self.pdf.setFont(font, size)
        self.pdf.setFillColor(color)
        self.pdf.drawString(x, PAGE_HEIGHT - top, value)

    def box(self, x: float, top: float, width: float, height: float, color) -> None:  # type: ignore[no-untyped-def]
        self.pdf.setFillColor(color)
        self.pdf.rect(x, PAGE_HEIGHT - top - height, width, height, stroke=0, fill=1)

    def line(self, top: float, color, width: float) -> None:  # type: ignore[no-untyped-def]
        self.pdf.setStrokeColor(color)
        self.pdf.setLineWidth(width)
        self.pdf.line(MARGIN, PAGE_HEIGHT - top, PAGE_WIDTH - MARGIN, PAGE_HEIGHT - top)

    def new_page(self) -> None:
        self.pdf.showPage()
        self.count += 1


def _draw_title(page: _Page, context: ReportContext, date_format: str) -> None:
    page.text(MARGIN, 70, "Cash Flow Report", font=FONT_BOLD, size=22, color=PRIMARY)
    page.text(MARGIN, 95, context.tenant_name or "-", size=12)
    start = format_date(context.date_range.start, date_format) or "beginning"
    end = format_date(context.date_range.end, date_format) or "today"
    page.text(MARGIN, 112, f"Period: {start} to {end}", size=10, color=MEDIUM_GRAY)
    page.text(MARGIN, 127, f"Generated at: {context.generated_at.strftime(date_format + ' %H:%M')}", size=10, color=MEDIUM_GRAY)
    page.line(145, PRIMARY, 2)


def _draw_summary(page: _Page, summary: Summary, currency: str, decimal_separator: str) -> None:
    top = 160
    boxes = (
        ("Total income", summary.income, PRIMARY, MARGIN, 160),
        ("Total expense", summary.expense, RED, MARGIN + 170, 160),
        ("Balance", summary.balance, PRIMARY if summary.balance >= 0 else RED, MARGIN + 340, CONTENT_WIDTH - 340),
    )
    for label, value, color, x, width in boxes:
        page.box(x, top, width, 60, LIGHT_GRAY)
        page.text(x + 10, top + 20, label, size=11, color=color)
        page.text(x + 10, top + 45, format_money(value, currency, decimal_separator), font=FONT_BOLD, size=14)


def _draw_table_header(page: _Page, top: float) -> float:
    page.box(MARGIN, top, CONTENT_WIDTH, HEADER_HEIGHT, LIGHT_GRAY)
    for column in COLUMNS:
        page.text(column.x, top + 16, column.title, font=FONT_BOLD, size=9)
    return top + HEADER_HEIGHT + 15


def _draw_row(page: _Page, top: float, index: int, record: ReportRecord, currency: str, decimal_separator: str, date_format: str) -> None:
    if index % 2 == 0:
        page.box(MARGIN, top - 13, CONTENT_WIDTH, ROW_HEIGHT, STRIPE)

    is_income = str(record.type) == EntryType.INCOME
    date_col, type_col, category_col, description_col, amount_col = COLUMNS
    page.text(date_col.x, top, format_date(record.transaction_date, date_format), size=ROW_FONT_SIZE)
    page.text(type_col.x, top, fit_text(str(record.type), FONT, ROW_FONT_SIZE, type_col.width), size=ROW_FONT_SIZE)
    page.text(category_col.x, top, fit_text(record.category, FONT, ROW_FONT_SIZE, category_col.width), size=ROW_FONT_SIZE)
    page.text(
        description_col.x,
        top,
        fit_text(record.description, FONT, ROW_FONT_SIZE, description_col.width),
        size=ROW_FONT_SIZE,
    )
    sign = "+" if is_income else "-"
    page.text(
        amount_col.x,
        top,
        f"{sign} {format_money(record.amount, currency, decimal_separator)}",
        size=ROW_FONT_SIZE,
        color=PRIMARY if is_income else RED,
    )


def render_pdf(
    records: Sequence[ReportRecord],
    summary: Summary,
    context: ReportContext,
    *,
    currency: str = "R$",
    decimal_separator: str = ",",
    date_format: str = "%d/%m/%Y",
) -> tuple[bytes, int]:
    """Render the cash-flow document; returns the PDF bytes and its page count.

    A new page starts whenever the next row would cross the printable limit,
    and the column header is drawn again at the top of that page.
    """

    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    pdf.setTitle("Cash Flow Report")
    page = _Page(pdf)

    _draw_title(page, context, date_format)
    _draw_summary(page, summary, currency, decimal_separator)
    page.text(MARGIN, 260, "Entries", size=14, color=SECONDARY)
    cursor = _draw_table_header(page, 275)

    for index, record in enumerate(records):
        if cursor > ROW_LIMIT:
            page.new_page()
            cursor = _draw_table_header(page, MARGIN)
        _draw_row(page, cursor, index, record, currency, decimal_separator, date_format)
        cursor += ROW_HEIGHT

    if not records:
        page.text(MARGIN + 5, cursor, "No entries for the selected filters.", size=9, color=MEDIUM_GRAY)

    page.line(FOOTER_Y, MEDIUM_GRAY, 1)
    page.text(MARGIN, FOOTER_Y + 15, "This document was generated electronically.", size=8, color=MEDIUM_GRAY)
    pdf.showPage()
    pdf.save()
    return buffer.getvalue(), page.count
