from __future__ import annotations

import logging
import uuid
from collections.abc import Generator
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from crm_core import audit
from crm_core.core.database import Base
from crm_core.core.errors import ForbiddenError, NotFoundError, ValidationError
from crm_core.finance.models import CashFlowEntry
from crm_core.finance.repository import CashFlowEntryRepository
from crm_core.platform.security import Identity, Role, TenantScope, resolve_write_tenant, scope_filter
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


def _entry(tenant_id: str, entry_type: str, amount: str) -> CashFlowEntry:
    return CashFlowEntry(
        tenant_id=tenant_id,
        type=entry_type,
        amount=Decimal(amount),
        transaction_date=date(2026, 3, 1),
        category="Sales",
        description=f"{entry_type} {amount}",
    )


@pytest.fixture()
def seeded(db_session: Session) -> dict[str, uuid.UUID]:
    db_session.add_all([Tenant(id="tenant-a", name="Acme"), Tenant(id="tenant-b", name="Globex")])
    db_session.flush()
    a_income = _entry("tenant-a", "Income", "1000.00")
    a_expense = _entry("tenant-a", "Expense", "300.00")
    b_income = _entry("tenant-b", "Income", "5000.00")
    db_session.add_all([a_income, a_expense, b_income])
    db_session.commit()
    return {"a_income": a_income.id, "a_expense": a_expense.id, "b_income": b_income.id}


def test_super_admin_scope_is_universal() -> None:
    scope = scope_filter(Identity(user_id="root", role=Role.SUPER_ADMIN))

    assert scope.universal is True
    assert scope.matches("tenant-a")
    assert scope.matches("tenant-b")


def test_tenant_user_scope_is_pinned_to_own_tenant() -> None:
    scope = scope_filter(Identity(user_id="u1", role=Role.USER, tenant_id="tenant-a"))

    assert scope == TenantScope(tenant_id="tenant-a")
    assert scope.matches("tenant-a")
    assert not scope.matches("tenant-b")
    assert not scope.matches(None)


def test_scope_clause_renders_tenant_predicate() -> None:
    scope = scope_filter(Identity(user_id="u1", role=Role.ADMIN, tenant_id="tenant-a"))
    sql = str(select(CashFlowEntry).where(scope.clause(CashFlowEntry)))

    assert "cash_flow_entry.tenant_id" in sql


@pytest.mark.parametrize("role", [Role.USER, Role.ADMIN])
def test_missing_tenant_fails_closed(role: Role, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="crm_core.security")

    with pytest.raises(ForbiddenError) as exc_info:
        scope_filter(Identity(user_id="orphan", role=role, tenant_id=None))

    assert exc_info.value.message == "No tenant associated with this identity"
    assert any(record.getMessage() == "scope.fail_closed" for record in caplog.records)
    assert audit.audit_entries[-1]["action"] == "scope.fail_closed"
    assert audit.audit_entries[-1]["actor_user_id"] == "orphan"


def test_find_never_returns_other_tenant_rows(db_session: Session, seeded: dict[str, uuid.UUID]) -> None:
    repository = CashFlowEntryRepository()
    scope = scope_filter(Identity(user_id="u1", role=Role.USER, tenant_id="tenant-a"))

    rows = repository.find(db_session, scope)

    assert {row.id for row in rows} == {seeded["a_income"], seeded["a_expense"]}
    assert all(row.tenant_id == "tenant-a" for row in rows)
    assert repository.count(db_session, scope) == 2


def test_get_out_of_scope_record_is_not_found(db_session: Session, seeded: dict[str, uuid.UUID]) -> None:
    repository = CashFlowEntryRepository()
    scope = scope_filter(Identity(user_id="u1", role=Role.ADMIN, tenant_id="tenant-a"))

    with pytest.raises(NotFoundError) as exc_info:
        repository.get(db_session, scope, seeded["b_income"])

    assert exc_info.value.message == "Cash flow entry not found"


def test_super_admin_reads_every_tenant(db_session: Session, seeded: dict[str, uuid.UUID]) -> None:
    repository = CashFlowEntryRepository()
    scope = scope_filter(Identity(user_id="root", role=Role.SUPER_ADMIN))

    rows = repository.find(db_session, scope)

    assert {row.tenant_id for row in rows} == {"tenant-a", "tenant-b"}
    assert repository.get(db_session, scope, seeded["b_income"]).tenant_id == "tenant-b"


def test_group_sum_is_scoped(db_session: Session, seeded: dict[str, uuid.UUID]) -> None:
    repository = CashFlowEntryRepository()
    scope = scope_filter(Identity(user_id="u1", role=Role.USER, tenant_id="tenant-a"))

    rows = dict(repository.group_sum(db_session, scope, [CashFlowEntry.type], CashFlowEntry.amount))

    assert Decimal(str(rows["Income"])) == Decimal("1000")
    assert Decimal(str(rows["Expense"])) == Decimal("300")


def test_resolve_write_tenant_requires_explicit_target_for_super_admin(
    db_session: Session, seeded: dict[str, uuid.UUID]
) -> None:
    root = Identity(user_id="root", role=Role.SUPER_ADMIN)

    with pytest.raises(ValidationError) as exc_info:
        resolve_write_tenant(db_session, root, None)

    assert exc_info.value.field == "act_as_tenant_id"
    assert resolve_write_tenant(db_session, root, "tenant-b") == "tenant-b"


def test_resolve_write_tenant_rejects_unknown_tenant(db_session: Session, seeded: dict[str, uuid.UUID]) -> None:
    root = Identity(user_id="root", role=Role.SUPER_ADMIN)

    with pytest.raises(ValidationError) as exc_info:
        resolve_write_tenant(db_session, root, "no-such-tenant")

    assert exc_info.value.field == "act_as_tenant_id"


def test_resolve_write_tenant_pins_tenant_users(db_session: Session, seeded: dict[str, uuid.UUID]) -> None:
    admin = Identity(user_id="a1", role=Role.ADMIN, tenant_id="tenant-a")

    assert resolve_write_tenant(db_session, admin, None) == "tenant-a"
    assert resolve_write_tenant(db_session, admin, "tenant-a") == "tenant-a"
    with pytest.raises(ForbiddenError):
        resolve_write_tenant(db_session, admin, "tenant-b")
