from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

from reportlab.pdfbase.pdfmetrics import stringWidth

from crm_core.finance.aggregation import DateRange


def format_amount(value: Decimal, decimal_separator: str = ".") -> str:
    quantized = Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    text = f"{quantized:.2f}"
    if decimal_separator != ".":
        text = text.replace(".", decimal_separator)
    return text


def format_money(value: Decimal, currency_symbol: str, decimal_separator: str = ".") -> str:
    return f"{currency_symbol} {format_amount(value, decimal_separator)}"


def format_date(value: date | datetime | None, date_format: str) -> str:
    if value is None:
        return ""
    return value.strftime(date_format)


def fit_text(text: str | None, font_name: str, font_size: float, max_width: float) -> str:
    """Truncate ``text`` so it renders within ``max_width`` points, ending with '...' when cut."""

    if not text:
        return ""
    single_line = " ".join(text.split())
    if stringWidth(single_line, font_name, font_size) <= max_width:
        return single_line
    ellipsis = "..."
    budget = max_width - stringWidth(ellipsis, font_name, font_size)
    cut = single_line
    while cut and stringWidth(cut, font_name, font_size) > budget:
        cut = cut[:-1]
    return cut.rstrip() + ellipsis


def report_filename(date_range: DateRange, extension: str, *, prefix: str = "cash-flow") -> str:
    if date_range.start is not None and date_range.end is not None:
        return f"{prefix}-{date_range.start.isoformat()}-{date_range.end.isoformat()}.{extension}"
    return f"{prefix}-all.{extension}"
