from __future__ import annotations

from collections.abc import Generator
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from crm_core import audit
from crm_core.business.models import Customer, Service
from crm_core.core.auth import create_access_token
from crm_core.core.database import Base, get_db
from crm_core.main import app
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

    db_session.add_all([Tenant(id="tenant-a", name="Acme"), Tenant(id="tenant-b", name="Globex")])
    db_session.commit()
    app.dependency_overrides[get_db] = override_get_db
    audit.audit_entries.clear()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    audit.audit_entries.clear()


def _headers(role: str = "ADMIN", tenant_id: str | None = "tenant-a") -> dict[str, str]:
    token = create_access_token(f"{role.lower()}-{tenant_id}", role, tenant_id)
    return {"Authorization": f"Bearer {token}"}


def _invoice(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "invoice_number": "INV-001",
        "amount": "100.00",
        "discount_amount": "10.00",
        "fee_amount": "5.00",
        "issue_date": "2026-03-01",
        "due_date": "2026-03-31",
    }
    payload.update(overrides)
    return payload


def test_invoice_total_is_effective_amount(client: TestClient) -> None:
    created = client.post("/api/financial/invoices", json=_invoice(), headers=_headers())
    assert created.status_code == 201, created.text
    body = created.json()

    assert Decimal(body["total"]) == Decimal("95")
    assert body["status"] == "Open"
    assert body["tenant_id"] == "tenant-a"

    fetched = client.get(f"/api/financial/invoices/{body['id']}", headers=_headers()).json()
    assert Decimal(fetched["total"]) == Decimal("95")

    updated = client.put(
        f"/api/financial/invoices/{body['id']}",
        json={"fee_amount": "20.00"},
        headers=_headers(),
    ).json()
    assert Decimal(updated["total"]) == Decimal("110")


def test_super_admin_invoice_needs_existing_tenant(client: TestClient) -> None:
    root = _headers("SUPER_ADMIN", None)

    unknown = client.post("/api/financial/invoices", json=_invoice(act_as_tenant_id="no-such-tenant"), headers=root)
    created = client.post("/api/financial/invoices", json=_invoice(act_as_tenant_id="tenant-b"), headers=root)

    assert unknown.status_code == 422
    assert unknown.json()["details"] == {"field": "act_as_tenant_id"}
    assert created.status_code == 201
    assert created.json()["tenant_id"] == "tenant-b"


def test_invoice_number_is_unique_per_tenant(client: TestClient) -> None:
    assert client.post("/api/financial/invoices", json=_invoice(), headers=_headers()).status_code == 201

    duplicate = client.post("/api/financial/invoices", json=_invoice(), headers=_headers())
    other_tenant = client.post("/api/financial/invoices", json=_invoice(), headers=_headers("ADMIN", "tenant-b"))

    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "conflict"
    assert other_tenant.status_code == 201


def test_due_date_must_not_precede_issue_date(client: TestClient) -> None:
    response = client.post("/api/financial/invoices", json=_invoice(due_date="2026-02-01"), headers=_headers())

    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"

    created = client.post("/api/financial/invoices", json=_invoice(), headers=_headers()).json()
    rejected = client.put(
        f"/api/financial/invoices/{created['id']}", json={"due_date": "2026-01-01"}, headers=_headers()
    )
    assert rejected.status_code == 422
    assert rejected.json()["details"] == {"field": "due_date"}


def test_list_filters_and_isolation(client: TestClient) -> None:
    client.post("/api/financial/invoices", json=_invoice(), headers=_headers())
    client.post(
        "/api/financial/invoices",
        json=_invoice(invoice_number="INV-002", status="Paid", due_date="2026-04-30"),
        headers=_headers(),
    )
    client.post("/api/financial/invoices", json=_invoice(invoice_number="B-1"), headers=_headers("ADMIN", "tenant-b"))

    everything = client.get("/api/financial/invoices", headers=_headers()).json()
    paid = client.get("/api/financial/invoices?status=Paid", headers=_headers()).json()
    april = client.get(
        "/api/financial/invoices?start_date=2026-04-01&end_date=2026-04-30", headers=_headers()
    ).json()

    assert {item["invoice_number"] for item in everything} == {"INV-001", "INV-002"}
    assert [item["invoice_number"] for item in paid] == ["INV-002"]
    assert [item["invoice_number"] for item in april] == ["INV-002"]


def test_foreign_invoice_cannot_be_read_or_deleted(client: TestClient) -> None:
    foreign = client.post(
        "/api/financial/invoices", json=_invoice(), headers=_headers("ADMIN", "tenant-b")
    ).json()

    assert client.get(f"/api/financial/invoices/{foreign['id']}", headers=_headers()).status_code == 404
    assert client.get(f"/api/financial/invoices/{foreign['id']}/pdf", headers=_headers()).status_code == 404
    assert client.delete(f"/api/financial/invoices/{foreign['id']}", headers=_headers()).status_code == 404
    assert client.delete(
        f"/api/financial/invoices/{foreign['id']}", headers=_headers("ADMIN", "tenant-b")
    ).status_code == 204


def test_invoice_pdf_download(client: TestClient, db_session: Session) -> None:
    customer = Customer(tenant_id="tenant-a", full_name="Jane Buyer", email="jane@example.com")
    db_session.add(customer)
    db_session.flush()
    service = Service(tenant_id="tenant-a", customer_id=customer.id, name="Website", total_value=Decimal("100"))
    db_session.add(service)
    db_session.commit()

    created = client.post(
        "/api/financial/invoices",
        json=_invoice(invoice_number="INV/2026/7", customer_id=str(customer.id), service_id=str(service.id)),
        headers=_headers(),
    ).json()

    response = client.get(f"/api/financial/invoices/{created['id']}/pdf", headers=_headers())

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["content-disposition"] == 'attachment; filename="invoice-INV-2026-7.pdf"'
    assert response.content.startswith(b"%PDF")
    assert audit.audit_entries[-1]["entity_type"] == "report.invoice"
