from __future__ import annotations

import logging
from collections.abc import Sequence

from crm_core.core.config import get_settings
from crm_core.finance.aggregation import Summary
from crm_core.metrics import observe_report_export
from crm_core.otel import get_tracer
from crm_core.reporting.csv_renderer import render_csv
from crm_core.reporting.formatting import report_filename
from crm_core.reporting.pdf_renderer import render_pdf
from crm_core.reporting.types import MEDIA_TYPES, RenderedReport, ReportContext, ReportFormat, ReportRecord


logger = logging.getLogger("crm_core.reporting")
tracer = get_tracer("crm_core.reporting.renderer")


def render(
    records: Sequence[ReportRecord],
    summary: Summary,
    fmt: ReportFormat | str,
    *,
    context: ReportContext | None = None,
) -> RenderedReport:
    """Project already-aggregated records into a downloadable report.

    The summary is rendered as given; nothing here queries storage or
    recomputes totals.
    """

    report_format = ReportFormat(fmt)
    context = context or ReportContext()
    settings = get_settings()

    with tracer.start_as_current_span("reporting.render") as span:
        span.set_attribute("report.format", str(report_format))
        span.set_attribute("report.record_count", len(records))

        if report_format == ReportFormat.CSV:
            content = render_csv(
                records,
                summary,
                delimiter=settings.report_csv_delimiter,
                decimal_separator=settings.report_decimal_separator,
                date_format=settings.report_date_format,
            )
            page_count = 1
        else:
            content, page_count = render_pdf(
                records,
                summary,
                context,
                currency=settings.report_currency_symbol,
                decimal_separator=settings.report_decimal_separator,
                date_format=settings.report_date_format,
            )
        span.set_attribute("report.page_count", page_count)

    observe_report_export(str(report_format), len(records))
    logger.info(
        "report.rendered",
        extra={"format": str(report_format), "record_count": len(records)},
    )
    return RenderedReport(
        content=content,
        media_type=MEDIA_TYPES[report_format],
        filename=report_filename(context.date_range, str(report_format)),
        page_count=page_count,
    )
