from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Table, TableStyle

from crm_core.finance.aggregation import effective_amount
from crm_core.finance.models import Invoice
from crm_core.reporting.formatting import fit_text, format_date, format_money


@dataclass(slots=True, frozen=True)
class InvoiceDocument:
    invoice: Invoice
    tenant_name: str
    customer_name: str | None = None
    customer_email: str | None = None
    service_name: str | None = None


def render_invoice_pdf(
    document: InvoiceDocument,
    *,
    currency: str = "R$",
    decimal_separator: str = ",",
    date_format: str = "%d/%m/%Y",
) -> bytes:
    """Render a single invoice; the total shown is always recomputed from its parts."""

    invoice = document.invoice
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle(f"Invoice {invoice.invoice_number}")
    width, height = A4

    brand = colors.HexColor("#16a34a")
    gray = colors.HexColor("#6b7280")
    dark = colors.HexColor("#111827")
    border = colors.HexColor("#e5e7eb")

    def money(value: Decimal) -> str:
        return format_money(value, currency, decimal_separator)

    c.setFillColor(brand)
    c.rect(0, height - 28 * mm, width, 28 * mm, stroke=0, fill=1)
    c.setFillColor(colors.white)
    c.setFont("Helvetica-Bold", 16)
    c.drawString(18 * mm, height - 16 * mm, fit_text(document.tenant_name, "Helvetica-Bold", 16, 100 * mm))
    c.setFont("Helvetica", 9)
    c.drawString(18 * mm, height - 22 * mm, "Invoice")

    c.setFont("Helvetica-Bold", 12)
    c.drawRightString(width - 18 * mm, height - 14 * mm, f"No. {invoice.invoice_number}")
    c.setFont("Helvetica", 9)
    c.drawRightString(
        width - 18 * mm,
        height - 20 * mm,
        f"Issued: {format_date(invoice.issue_date, date_format)}  Due: {format_date(invoice.due_date, date_format)}",
    )

    y = height - 40 * mm
    c.setFillColor(dark)
    c.setFont("Helvetica-Bold", 11)
    c.drawString(18 * mm, y, "Customer")
    c.drawString(width / 2 + 2 * mm, y, "Service")
    y -= 6 * mm

    box_width = width / 2 - 22 * mm
    c.setStrokeColor(border)
    c.setFillColor(colors.white)
    c.roundRect(18 * mm, y - 20 * mm, box_width, 20 * mm, 6, stroke=1, fill=1)
    c.roundRect(width / 2 + 2 * mm, y - 20 * mm, box_width, 20 * mm, 6, stroke=1, fill=1)

    c.setFillColor(dark)
    c.setFont("Helvetica-Bold", 10)
    c.drawString(22 * mm, y - 8 * mm, fit_text(document.customer_name or "-", "Helvetica-Bold", 10, box_width - 8 * mm))
    c.setFont("Helvetica", 9)
    if document.customer_email:
        c.setFillColor(gray)
        c.drawString(22 * mm, y - 14 * mm, fit_text(document.customer_email, "Helvetica", 9, box_width - 8 * mm))
        c.setFillColor(dark)
    c.drawString(
        width / 2 + 6 * mm,
        y - 8 * mm,
        fit_text(document.service_name or "-", "Helvetica", 9, box_width - 8 * mm),
    )

    y -= 30 * mm

    data = [["Description", "Amount"], ["Invoice amount", money(invoice.amount)]]
    if invoice.discount_amount:
        data.append(["Discount", f"- {money(invoice.discount_amount)}"])
    if invoice.fee_amount:
        data.append(["Interest / fees", f"+ {money(invoice.fee_amount)}"])
    data.append(["Total", money(effective_amount(invoice))])

    table = Table(data, colWidths=[120 * mm, 54 * mm], hAlign="LEFT")
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f3f4f6")),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 9),
                ("ALIGN", (1, 0), (1, -1), "RIGHT"),
                ("GRID", (0, 0), (-1, -1), 0.5, border),
                ("PADDING", (0, 0), (-1, -1), 6),
            ]
        )
    )
    _, table_height = table.wrapOn(c, width - 36 * mm, height)
    table.drawOn(c, 18 * mm, y - table_height)
    y = y - table_height - 12 * mm

    c.setFillColor(dark)
    c.setFont("Helvetica-Bold", 10)
    c.drawString(18 * mm, y, "Payment")
    c.setFont("Helvetica", 9)
    lines = [f"Status: {invoice.status}", f"Paid: {money(invoice.paid_amount)}"]
    if invoice.payment_method:
        lines.append(f"Payment method: {invoice.payment_method}")
    if invoice.payment_date:
        lines.append(f"Paid on: {format_date(invoice.payment_date, date_format)}")
    for offset, line in enumerate(lines, start=1):
        c.drawString(18 * mm, y - offset * 5 * mm, line)
    y -= (len(lines) + 2) * 5 * mm

    if invoice.notes:
        c.setFont("Helvetica-Bold", 10)
        c.drawString(18 * mm, y, "Notes")
        c.setFont("Helvetica", 9)
        c.setFillColor(gray)
        c.drawString(18 * mm, y - 6 * mm, fit_text(invoice.notes, "Helvetica", 9, width - 36 * mm))

    c.setFillColor(border)
    c.rect(0, 0, width, 12 * mm, stroke=0, fill=1)
    c.setFillColor(gray)
    c.setFont("Helvetica", 8)
    c.drawString(18 * mm, 4 * mm, "This document was generated electronically and is valid without signature.")
    generated = datetime.now(timezone.utc).date()
    c.drawRightString(width - 18 * mm, 4 * mm, f"Generated: {format_date(generated, date_format)}")

    c.showPage()
    c.save()
    return buf.getvalue()


def invoice_filename(invoice_number: str) -> str:
    safe = "".join(ch if ch.isalnum() or ch in "-_" else "-" for ch in invoice_number)
    return f"invoice-{safe}.pdf"

