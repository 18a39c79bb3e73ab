from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

import pytest

from crm_core.core.errors import AggregationError
from crm_core.finance.aggregation import (
    DateRange,
    Summary,
    aggregate,
    aggregate_grouped,
    effective_amount,
    grouped_from_group_totals,
    revenue_total,
    sort_groups,
    summary_from_group_totals,
)


@dataclass
class Entry:
    type: str
    amount: Decimal
    transaction_date: date = date(2026, 3, 1)
    category: str = "Sales"
    payment_method: str | None = None


@dataclass
class InvoiceAmounts:
    amount: Decimal
    discount_amount: Decimal = Decimal("0")
    fee_amount: Decimal = Decimal("0")


def test_aggregate_sums_income_and_expense() -> None:
    entries = [
        Entry("Income", Decimal("1000")),
        Entry("Expense", Decimal("300")),
        Entry("Income", Decimal("250")),
    ]

    summary = aggregate(entries)

    assert summary == Summary(income=Decimal("1250.00"), expense=Decimal("300.00"), balance=Decimal("950.00"))


def test_aggregate_empty_input_is_zero() -> None:
    summary = aggregate([])

    assert summary.income == Decimal("0")
    assert summary.expense == Decimal("0")
    assert summary.balance == Decimal("0")


def test_balance_can_go_negative_and_keeps_cents() -> None:
    summary = aggregate([Entry("Income", Decimal("10.10")), Entry("Expense", Decimal("20.25"))])

    assert summary.balance == Decimal("-10.15")
    assert summary.balance == summary.income - summary.expense


def test_aggregate_uses_decimal_arithmetic() -> None:
    entries = [Entry("Income", Decimal("0.10")) for _ in range(3)]

    assert aggregate(entries).income == Decimal("0.30")


def test_date_range_is_inclusive_on_both_bounds() -> None:
    entries = [
        Entry("Income", Decimal("1"), date(2026, 1, 31)),
        Entry("Income", Decimal("10"), date(2026, 2, 1)),
        Entry("Income", Decimal("100"), date(2026, 2, 28)),
        Entry("Income", Decimal("1000"), date(2026, 3, 1)),
    ]

    bounded = aggregate(entries, date_range=DateRange(date(2026, 2, 1), date(2026, 2, 28)))
    open_end = aggregate(entries, date_range=DateRange(start=date(2026, 2, 28)))

    assert bounded.income == Decimal("110.00")
    assert open_end.income == Decimal("1100.00")


def test_unknown_entry_type_is_rejected() -> None:
    with pytest.raises(AggregationError):
        aggregate([Entry("Transfer", Decimal("5"))])


def test_grouped_summary_partitions_by_key() -> None:
    entries = [
        Entry("Income", Decimal("500"), category="Sales"),
        Entry("Expense", Decimal("200"), category="Rent"),
        Entry("Income", Decimal("100"), category="Rent"),
        Entry("Expense", Decimal("50"), category="Sales"),
    ]

    grouped = aggregate_grouped(entries, "category")

    assert set(grouped.keys()) == {"Sales", "Rent"}
    assert grouped["Sales"].balance == Decimal("450.00")
    assert grouped["Rent"].balance == Decimal("-100.00")


def test_grouped_summary_accepts_callable_key() -> None:
    entries = [Entry("Income", Decimal("5"), date(2026, 1, 3)), Entry("Income", Decimal("7"), date(2026, 2, 3))]

    grouped = aggregate_grouped(entries, lambda entry: entry.transaction_date.month)

    assert grouped[1].income == Decimal("5.00")
    assert grouped[2].income == Decimal("7.00")


def test_sort_groups_orders_on_request() -> None:
    grouped = aggregate_grouped(
        [
            Entry("Income", Decimal("10"), category="a"),
            Entry("Income", Decimal("30"), category="b"),
            Entry("Income", Decimal("20"), category="c"),
        ],
        "category",
    )

    assert [key for key, _ in sort_groups(grouped)] == ["b", "c", "a"]
    assert [key for key, _ in sort_groups(grouped, by="key", descending=False)] == ["a", "b", "c"]
    with pytest.raises(ValueError):
        sort_groups(grouped, by="volume")


def test_effective_amount_applies_discount_and_fee() -> None:
    invoice = InvoiceAmounts(amount=Decimal("100"), discount_amount=Decimal("10"), fee_amount=Decimal("5"))

    assert effective_amount(invoice) == Decimal("95.00")


def test_revenue_total_uses_effective_amounts() -> None:
    invoices = [
        InvoiceAmounts(amount=Decimal("100"), discount_amount=Decimal("10"), fee_amount=Decimal("5")),
        InvoiceAmounts(amount=Decimal("50")),
    ]

    assert revenue_total(invoices) == Decimal("145.00")
    assert revenue_total([]) == Decimal("0")


def test_summary_from_group_totals_folds_storage_rows() -> None:
    summary = summary_from_group_totals([("Income", Decimal("1250")), ("Expense", 300.0)])

    assert summary.balance == Decimal("950.00")
    assert summary_from_group_totals([]) == Summary.from_totals(Decimal("0"), Decimal("0"))


@pytest.mark.parametrize(
    "rows",
    [
        [("Refund", Decimal("1"))],
        [("Income", Decimal("1")), ("Income", Decimal("2"))],
        [("Income", "abc")],
        [("Income", None)],
        [("Expense", Decimal("-5"))],
        [("Income",)],
    ],
)
def test_malformed_group_rows_are_fatal(rows: list[tuple], caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.ERROR, logger="crm_core.finance")

    with pytest.raises(AggregationError):
        summary_from_group_totals(rows)

    assert any(record.getMessage() == "aggregation.malformed_group_result" for record in caplog.records)


def test_grouped_from_group_totals_builds_one_summary_per_key() -> None:
    grouped = grouped_from_group_totals(
        [
            ("Pix", "Income", Decimal("300")),
            ("Pix", "Expense", Decimal("100")),
            ("Card", "Expense", Decimal("40")),
        ]
    )

    assert grouped["Pix"].balance == Decimal("200.00")
    assert grouped["Card"].expense == Decimal("40.00")

    with pytest.raises(AggregationError):
        grouped_from_group_totals([("Pix", "Income", 1), ("Pix", "Income", 2)])
