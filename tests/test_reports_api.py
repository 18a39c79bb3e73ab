from __future__ import annotations

import csv
import io
from collections.abc import Generator
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from crm_core import audit
from crm_core.business.models import Customer, Event, Project, Service
from crm_core.core.auth import create_access_token
from crm_core.core.database import Base, get_db
from crm_core.finance.models import CashFlowEntry, Invoice
from crm_core.main import app
from crm_core.reporting.csv_renderer import AMOUNT_COLUMN
from crm_core.tenancy.models import Tenant


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    audit.audit_entries.clear()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    audit.audit_entries.clear()


def _headers(role: str = "ADMIN", tenant_id: str | None = "tenant-a", permissions: dict | None = None) -> dict[str, str]:
    token = create_access_token(f"{role.lower()}-{tenant_id}", role, tenant_id, permissions)
    return {"Authorization": f"Bearer {token}"}


def _invoice(tenant_id: str, number: str, status: str, amount: str, issue: date, **extra: object) -> Invoice:
    return Invoice(
        tenant_id=tenant_id,
        invoice_number=number,
        amount=Decimal(amount),
        status=status,
        issue_date=issue,
        due_date=issue + timedelta(days=30),
        **extra,
    )


def _entry(tenant_id: str, entry_type: str, amount: str, day: date, description: str = "entry") -> CashFlowEntry:
    return CashFlowEntry(
        tenant_id=tenant_id,
        type=entry_type,
        amount=Decimal(amount),
        transaction_date=day,
        category="Sales" if entry_type == "Income" else "Rent",
        description=description,
    )


@pytest.fixture(autouse=True)
def seeded(db_session: Session) -> None:
    db_session.add_all([Tenant(id="tenant-a", name="Acme"), Tenant(id="tenant-b", name="Globex")])
    db_session.flush()
    now = datetime.now(timezone.utc)
    db_session.add_all(
        [
            Customer(tenant_id="tenant-a", full_name="Jane"),
            Customer(tenant_id="tenant-a", full_name="John"),
            Customer(tenant_id="tenant-b", full_name="Other"),
            Service(tenant_id="tenant-a", name="Website"),
            Project(tenant_id="tenant-a", name="Launch"),
            Event(tenant_id="tenant-a", title="Kickoff", start_date=now + timedelta(days=3)),
            Event(tenant_id="tenant-a", title="Retro", start_date=now - timedelta(days=3)),
            _invoice(
                "tenant-a",
                "A-1",
                "Paid",
                "100",
                date(2026, 3, 1),
                discount_amount=Decimal("10"),
                fee_amount=Decimal("5"),
            ),
            _invoice("tenant-a", "A-2", "Open", "200", date(2026, 3, 10)),
            _invoice("tenant-a", "A-3", "Overdue", "50", date(2026, 1, 10)),
            _invoice("tenant-b", "B-1", "Paid", "9999", date(2026, 3, 5)),
            _entry("tenant-a", "Income", "1000", date(2026, 3, 1), "Consulting; March"),
            _entry("tenant-a", "Expense", "300", date(2026, 3, 15)),
            _entry("tenant-a", "Income", "250", date(2026, 4, 2)),
            _entry("tenant-b", "Income", "7777", date(2026, 3, 3)),
        ]
    )
    db_session.commit()


def test_dashboard_counts_own_tenant_only(client: TestClient) -> None:
    response = client.get("/api/reports/dashboard", headers=_headers())
    assert response.status_code == 200
    body = response.json()

    assert body["total_customers"] == 2
    assert body["total_services"] == 1
    assert body["total_projects"] == 1
    assert body["total_invoices"] == 3
    assert Decimal(body["total_revenue"]) == Decimal("95")
    assert body["pending_invoices"] == 1
    assert body["upcoming_events"] == 1


def test_dashboard_for_super_admin_covers_every_tenant(client: TestClient) -> None:
    body = client.get("/api/reports/dashboard", headers=_headers("SUPER_ADMIN", None)).json()

    assert body["total_customers"] == 3
    assert Decimal(body["total_revenue"]) == Decimal("10094")


def test_financial_report_filters_by_issue_date(client: TestClient) -> None:
    response = client.get(
        "/api/reports/financial?start_date=2026-03-01&end_date=2026-03-31", headers=_headers()
    )
    assert response.status_code == 200
    body = response.json()

    assert {item["invoice_number"] for item in body["invoices"]} == {"A-1", "A-2"}
    assert body["status_count"] == {"Paid": 1, "Open": 1}
    assert Decimal(body["total_revenue"]) == Decimal("95")
    assert Decimal(body["total_pending"]) == Decimal("200")


def test_sales_report_sums_paid_invoices_and_contracts(client: TestClient, db_session: Session) -> None:
    db_session.add_all(
        [
            Service(
                tenant_id="tenant-a",
                name="Hosting",
                total_value=Decimal("1500"),
                created_at=datetime(2026, 3, 31, 18, 0, tzinfo=timezone.utc),
            ),
            Service(
                tenant_id="tenant-a",
                name="Design",
                total_value=Decimal("250.50"),
                created_at=datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc),
            ),
            Service(
                tenant_id="tenant-a",
                name="Legacy",
                total_value=Decimal("700"),
                created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
            ),
            Service(
                tenant_id="tenant-b",
                name="Foreign",
                total_value=Decimal("999"),
                created_at=datetime(2026, 3, 10, tzinfo=timezone.utc),
            ),
        ]
    )
    db_session.commit()

    response = client.get("/api/reports/sales?start_date=2026-03-01&end_date=2026-03-31", headers=_headers())
    assert response.status_code == 200
    body = response.json()

    assert [item["name"] for item in body["services"]] == ["Hosting", "Design"]
    assert body["total_services"] == 2
    assert Decimal(body["total_contracts"]) == Decimal("1750.50")
    assert [item["invoice_number"] for item in body["invoices"]] == ["A-1"]
    assert body["total_invoices"] == 1
    assert Decimal(body["total_revenue"]) == Decimal("95")


def test_sales_report_for_super_admin_spans_tenants(client: TestClient) -> None:
    body = client.get(
        "/api/reports/sales?start_date=2026-03-01&end_date=2026-03-31", headers=_headers("SUPER_ADMIN", None)
    ).json()

    assert {item["invoice_number"] for item in body["invoices"]} == {"A-1", "B-1"}
    assert Decimal(body["total_revenue"]) == Decimal("10094")


def test_projects_report_counts_statuses(client: TestClient, db_session: Session) -> None:
    db_session.add_all(
        [
            Project(tenant_id="tenant-a", name="Migration", status="In Progress"),
            Project(tenant_id="tenant-a", name="Audit", status="Completed"),
            Project(tenant_id="tenant-b", name="Elsewhere", status="Planning"),
        ]
    )
    db_session.commit()

    response = client.get("/api/reports/projects", headers=_headers())
    assert response.status_code == 200
    body = response.json()

    assert body["total_projects"] == 3
    assert {item["name"] for item in body["projects"]} == {"Launch", "Migration", "Audit"}
    assert body["status_count"] == {"Planning": 1, "In Progress": 1, "Completed": 1}

    everything = client.get("/api/reports/projects", headers=_headers("SUPER_ADMIN", None)).json()
    assert everything["total_projects"] == 4
    assert everything["status_count"]["Planning"] == 2


def test_reports_require_reports_capability(client: TestClient) -> None:
    response = client.get("/api/reports/dashboard", headers=_headers("USER", "tenant-a", {"cashflow": ["read"]}))

    assert response.status_code == 403
    for path in ("/api/reports/sales", "/api/reports/projects"):
        assert client.get(path, headers=_headers("USER", "tenant-a", {"cashflow": ["read"]})).status_code == 403


def test_csv_export_matches_filtered_entries(client: TestClient) -> None:
    response = client.get(
        "/api/cashflow/export/csv?start_date=2026-03-01&end_date=2026-03-31", headers=_headers()
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "text/csv; charset=utf-8"
    assert response.headers["content-disposition"] == 'attachment; filename="cash-flow-2026-03-01-2026-03-31.csv"'
    rows = list(csv.reader(io.StringIO(response.content.decode("utf-8-sig"), newline=""), delimiter=";"))
    data_rows = rows[1 : rows.index([])]
    assert len(data_rows) == 2
    assert "Consulting; March" in {row[4] for row in data_rows}
    assert rows[-1][0] == "Balance"
    assert rows[-1][AMOUNT_COLUMN] == "700,00"
    assert audit.audit_entries[-1]["action"] == "report.exported"


def test_pdf_export_download(client: TestClient) -> None:
    response = client.get("/api/cashflow/export/pdf", headers=_headers())

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["content-disposition"] == 'attachment; filename="cash-flow-all.pdf"'
    assert response.content.startswith(b"%PDF")


def test_empty_export_is_a_valid_report(client: TestClient) -> None:
    response = client.get(
        "/api/cashflow/export/csv?start_date=2020-01-01&end_date=2020-01-31", headers=_headers()
    )

    assert response.status_code == 200
    rows = list(csv.reader(io.StringIO(response.content.decode("utf-8-sig"), newline=""), delimiter=";"))
    assert rows[1] == []
    assert rows[-1][AMOUNT_COLUMN] == "0,00"


def test_export_requires_cashflow_and_reports_read(client: TestClient) -> None:
    only_cashflow = _headers("USER", "tenant-a", {"cashflow": ["read"]})
    both = _headers("USER", "tenant-a", {"cashflow": ["read"], "reports": ["read"]})

    assert client.get("/api/cashflow/export/csv", headers=only_cashflow).status_code == 403
    assert client.get("/api/cashflow/export/csv", headers=both).status_code == 200
