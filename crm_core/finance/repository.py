from __future__ import annotations

from crm_core.finance.models import CashFlowEntry, Invoice
from crm_core.platform.security.repository import TenantScopedRepository


class CashFlowEntryRepository(TenantScopedRepository[CashFlowEntry]):
    model = CashFlowEntry
    resource = "Cash flow entry"


class InvoiceRepository(TenantScopedRepository[Invoice]):
    model = Invoice
    resource = "Invoice"
