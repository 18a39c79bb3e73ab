from __future__ import annotations

import csv
import io
from collections.abc import Sequence

from crm_core.finance.aggregation import Summary
from crm_core.reporting.formatting import format_amount, format_date
from crm_core.reporting.types import ReportRecord


CSV_HEADERS = (
    "Date",
    "Type",
    "Category",
    "Subcategory",
    "Description",
    "Amount",
    "Payment method",
    "Bank account",
    "Reference number",
    "Status",
    "Reconciled",
    "Notes",
)
AMOUNT_COLUMN = CSV_HEADERS.index("Amount")
UTF8_BOM = "\ufeff"


def _record_row(record: ReportRecord, decimal_separator: str, date_format: str) -> list[str]:
    return [
        format_date(record.transaction_date, date_format),
        record.type,
        record.category,
        record.subcategory or "",
        record.description,
        format_amount(record.amount, decimal_separator),
        record.payment_method or "",
        record.bank_account or "",
        record.reference_number or "",
        record.status,
        "Yes" if record.reconciled else "No",
        record.notes or "",
    ]


def _summary_row(label: str, value: str) -> list[str]:
    row = [""] * (AMOUNT_COLUMN + 1)
    row[0] = label
    row[AMOUNT_COLUMN] = value
    return row


def render_csv(
    records: Sequence[ReportRecord],
    summary: Summary,
    *,
    delimiter: str = ";",
    decimal_separator: str = ",",
    date_format: str = "%d/%m/%Y",
) -> bytes:
    """Delimited export: header, one row per record, blank line, then the three totals.

    The UTF-8 BOM lets spreadsheet tools detect the encoding.
    """

    buffer = io.StringIO(newline="")
    writer = csv.writer(buffer, delimiter=delimiter, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for record in records:
        writer.writerow(_record_row(record, decimal_separator, date_format))

    writer.writerow([])
    writer.writerow(_summary_row("Total income", format_amount(summary.income, decimal_separator)))
    writer.writerow(_summary_row("Total expense", format_amount(summary.expense, decimal_separator)))
    writer.writerow(_summary_row("Balance", format_amount(summary.balance, decimal_separator)))
    return (UTF8_BOM + buffer.getvalue()).encode("utf-8")
