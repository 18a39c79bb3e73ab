"""Income / expense / balance computation over tenant-filtered ledger records.

Everything here is a pure function of its inputs: callers fetch records through
a tenant-scoped repository first, and the aggregator never touches storage.
Amounts are summed as ``Decimal`` and quantized to cents only at the edge.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import StrEnum
from typing import Any, Protocol

from sqlalchemy import ColumnElement

from crm_core.core.errors import AggregationError
from crm_core.metrics import observe_aggregation, observe_aggregation_error
from crm_core.otel import get_tracer


logger = logging.getLogger("crm_core.finance")
tracer = get_tracer("crm_core.finance.aggregation")

CENT = Decimal("0.01")
ZERO = Decimal("0")


class EntryType(StrEnum):
    INCOME = "Income"
    EXPENSE = "Expense"


class EntryStatus(StrEnum):
    CONFIRMED = "Confirmed"
    PENDING = "Pending"
    CANCELLED = "Cancelled"


class InvoiceStatus(StrEnum):
    OPEN = "Open"
    PAID = "Paid"
    OVERDUE = "Overdue"
    PARTIALLY_PAID = "PartiallyPaid"
    CANCELLED = "Cancelled"


class LedgerRecord(Protocol):
    type: str
    amount: Decimal


class InvoiceAmounts(Protocol):
    amount: Decimal
    discount_amount: Decimal
    fee_amount: Decimal


def _q(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(slots=True, frozen=True)
class Summary:
    income: Decimal = ZERO
    expense: Decimal = ZERO
    balance: Decimal = ZERO

    @classmethod
    def from_totals(cls, income: Decimal, expense: Decimal) -> Summary:
        return cls(income=_q(income), expense=_q(expense), balance=_q(income - expense))


@dataclass(slots=True)
class GroupedSummary:
    """One Summary per grouping key; insertion order is not meaningful."""

    groups: dict[Any, Summary] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.groups)

    def __getitem__(self, key: Any) -> Summary:
        return self.groups[key]

    def keys(self) -> list[Any]:
        return list(self.groups.keys())


@dataclass(slots=True, frozen=True)
class DateRange:
    """Inclusive on both bounds; a missing bound leaves that side open."""

    start: date | None = None
    end: date | None = None

    @property
    def is_complete(self) -> bool:
        return self.start is not None and self.end is not None

    def contains(self, value: date) -> bool:
        if self.start is not None and value < self.start:
            return False
        if self.end is not None and value > self.end:
            return False
        return True

    def clauses(self, column: Any) -> list[ColumnElement[bool]]:
        result: list[ColumnElement[bool]] = []
        if self.start is not None:
            result.append(column >= self.start)
        if self.end is not None:
            result.append(column <= self.end)
        return result


def effective_amount(invoice: InvoiceAmounts) -> Decimal:
    """Invoice value after discount and fee; the figure every revenue total uses."""
    return _q(
        Decimal(invoice.amount or ZERO) - Decimal(invoice.discount_amount or ZERO) + Decimal(invoice.fee_amount or ZERO)
    )


def _entry_type(value: Any) -> EntryType:
    try:
        return EntryType(str(value))
    except ValueError as exc:
        raise AggregationError(f"Unknown entry type: {value!r}") from exc


def _fold(entries: Iterable[LedgerRecord]) -> tuple[Decimal, Decimal, int]:
    income = ZERO
    expense = ZERO
    count = 0
    for entry in entries:
        amount = Decimal(entry.amount)
        if _entry_type(entry.type) == EntryType.INCOME:
            income += amount
        else:
            expense += amount
        count += 1
    return income, expense, count


def aggregate(entries: Iterable[LedgerRecord], *, date_range: DateRange | None = None) -> Summary:
    with tracer.start_as_current_span("finance.aggregate") as span:
        span.set_attribute("finance.kind", "summary")
        selected: Iterable[LedgerRecord] = entries
        if date_range is not None:
            selected = [e for e in entries if date_range.contains(e.transaction_date)]  # type: ignore[attr-defined]
        income, expense, count = _fold(selected)
        span.set_attribute("finance.record_count", count)
        observe_aggregation("summary")
        return Summary.from_totals(income, expense)


def aggregate_grouped(
    entries: Iterable[LedgerRecord],
    key: str | Callable[[Any], Any],
    *,
    date_range: DateRange | None = None,
) -> GroupedSummary:
    key_fn: Callable[[Any], Any] = (lambda entry: getattr(entry, key)) if isinstance(key, str) else key

    with tracer.start_as_current_span("finance.aggregate") as span:
        span.set_attribute("finance.kind", "grouped")
        buckets: dict[Any, list[LedgerRecord]] = {}
        for entry in entries:
            if date_range is not None and not date_range.contains(entry.transaction_date):  # type: ignore[attr-defined]
                continue
            buckets.setdefault(key_fn(entry), []).append(entry)

        grouped = GroupedSummary()
        for group_key, members in buckets.items():
            income, expense, _ = _fold(members)
            grouped.groups[group_key] = Summary.from_totals(income, expense)
        span.set_attribute("finance.group_count", len(grouped))
        observe_aggregation("grouped")
        return grouped


def sort_groups(
    grouped: GroupedSummary,
    *,
    by: str = "balance",
    descending: bool = True,
) -> list[tuple[Any, Summary]]:
    if by == "key":
        return sorted(grouped.groups.items(), key=lambda item: str(item[0]), reverse=descending)
    if by not in {"income", "expense", "balance"}:
        raise ValueError(f"Cannot sort groups by {by!r}")
    return sorted(grouped.groups.items(), key=lambda item: getattr(item[1], by), reverse=descending)


def revenue_total(invoices: Iterable[InvoiceAmounts]) -> Decimal:
    with tracer.start_as_current_span("finance.aggregate") as span:
        span.set_attribute("finance.kind", "revenue")
        total = ZERO
        for invoice in invoices:
            total += effective_amount(invoice)
        observe_aggregation("revenue")
        return _q(total)


def _group_amount(value: Any) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise AggregationError(f"Non-numeric group sum: {value!r}")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise AggregationError(f"Non-numeric group sum: {value!r}") from exc
    if not amount.is_finite():
        raise AggregationError(f"Non-numeric group sum: {value!r}")
    if amount < ZERO:
        raise AggregationError(f"Negative group sum: {value!r}")
    return amount


def _reject(message: str) -> AggregationError:
    observe_aggregation_error()
    logger.error("aggregation.malformed_group_result", extra={"error": message})
    return AggregationError(message)


def summary_from_group_totals(rows: Sequence[Sequence[Any]]) -> Summary:
    """Fold storage ``(type, sum)`` rows into a Summary; malformed input is fatal."""

    with tracer.start_as_current_span("finance.aggregate") as span:
        span.set_attribute("finance.kind", "group_totals")
        totals: dict[EntryType, Decimal] = {}
        for row in rows:
            if len(row) != 2:
                raise _reject(f"Expected (type, sum) row, got {len(row)} columns")
            try:
                entry_type = _entry_type(row[0])
                amount = _group_amount(row[1])
            except AggregationError as exc:
                raise _reject(exc.message) from exc
            if entry_type in totals:
                raise _reject(f"Duplicate group for type {entry_type}")
            totals[entry_type] = amount
        observe_aggregation("group_totals")
        return Summary.from_totals(totals.get(EntryType.INCOME, ZERO), totals.get(EntryType.EXPENSE, ZERO))


def grouped_from_group_totals(rows: Sequence[Sequence[Any]]) -> GroupedSummary:
    """Fold storage ``(key, type, sum)`` rows into a GroupedSummary."""

    with tracer.start_as_current_span("finance.aggregate") as span:
        span.set_attribute("finance.kind", "grouped_totals")
        partial: dict[Any, dict[EntryType, Decimal]] = {}
        for row in rows:
            if len(row) != 3:
                raise _reject(f"Expected (key, type, sum) row, got {len(row)} columns")
            group_key = row[0]
            try:
                entry_type = _entry_type(row[1])
                amount = _group_amount(row[2])
            except AggregationError as exc:
                raise _reject(exc.message) from exc
            bucket = partial.setdefault(group_key, {})
            if entry_type in bucket:
                raise _reject(f"Duplicate group for key {group_key!r} and type {entry_type}")
            bucket[entry_type] = amount

        grouped = GroupedSummary()
        for group_key, totals in partial.items():
            grouped.groups[group_key] = Summary.from_totals(
                totals.get(EntryType.INCOME, ZERO), totals.get(EntryType.EXPENSE, ZERO)
            )
        observe_aggregation("grouped_totals")
        return grouped
