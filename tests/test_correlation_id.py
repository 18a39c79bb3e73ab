from __future__ import annotations

import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from crm_core import audit
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


@pytest.fixture(autouse=True)
def clear_audit() -> Generator[None, None, None]:
    audit.audit_entries.clear()
    yield
    audit.audit_entries.clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    db_session.add(Tenant(id="tenant-a", name="Acme"))
    db_session.commit()
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


ADMIN = {"Authorization": f"Bearer {create_access_token('admin-a', 'ADMIN', 'tenant-a')}"}


def test_generated_correlation_id_returned_in_header_and_error_envelope(client: TestClient) -> None:
    response = client.get(f"/api/cashflow/{uuid.uuid4()}", headers=ADMIN)
    assert response.status_code == 404
    header_value = response.headers.get("x-correlation-id")
    assert header_value
    body = response.json()
    assert body["correlation_id"] == header_value
    assert body["code"] == "not_found"
    assert body["message"] == "Cash flow entry not found"


def test_correlation_id_respected_when_provided(client: TestClient) -> None:
    response = client.get(f"/api/cashflow/{uuid.uuid4()}", headers={**ADMIN, "X-Correlation-Id": "abc-123"})
    assert response.status_code == 404
    assert response.headers.get("x-correlation-id") == "abc-123"
    assert response.json()["correlation_id"] == "abc-123"
    request_id = response.headers.get("x-request-id")
    assert request_id
    assert request_id != "abc-123"


def test_unsafe_correlation_id_is_replaced(client: TestClient) -> None:
    supplied = "bad id with spaces " + "x" * 200
    response = client.get(f"/api/cashflow/{uuid.uuid4()}", headers={**ADMIN, "X-Correlation-Id": supplied})
    assert response.status_code == 404
    header_value = response.headers.get("x-correlation-id")
    assert header_value
    assert header_value != supplied
    assert str(uuid.UUID(header_value)) == header_value
    assert response.json()["correlation_id"] == header_value


def test_request_validation_uses_error_envelope(client: TestClient) -> None:
    response = client.post(
        "/api/cashflow",
        json={"type": "Gift", "amount": "-1"},
        headers={**ADMIN, "X-Correlation-Id": "corr-validation"},
    )

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "validation_error"
    assert body["correlation_id"] == "corr-validation"
    assert {item["field"] for item in body["details"]} >= {"type", "amount", "transaction_date"}


def test_audit_uses_request_correlation_id(client: TestClient) -> None:
    response = client.get("/api/admin/tenants", headers={**ADMIN, "X-Correlation-Id": "corr-audit-1"})
    assert response.status_code == 403

    denials = [entry for entry in audit.audit_entries if entry["action"] == "authz.denied"]
    assert denials
    assert denials[-1]["correlation_id"] == "corr-audit-1"
