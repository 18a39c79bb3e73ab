from crm_core.reporting.renderer import render
from crm_core.reporting.types import RenderedReport, ReportContext, ReportFormat

__all__ = ["RenderedReport", "ReportContext", "ReportFormat", "render"]
