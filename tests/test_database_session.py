from __future__ import annotations

from collections.abc import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from crm_core.core import database
from crm_core.core.database import Base, install_statement_timeout, statement_timeout_sql
from crm_core.tenancy.models import Tenant


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    install_statement_timeout(SessionLocal)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def test_timeout_statement_only_for_postgres() -> None:
    assert statement_timeout_sql("postgresql", 15000) == "SET LOCAL statement_timeout = 15000"
    assert statement_timeout_sql("postgresql", 0) is None
    assert statement_timeout_sql("sqlite", 15000) is None


def test_timeout_is_applied_to_every_transaction(db_session: Session, monkeypatch: pytest.MonkeyPatch) -> None:
    armed: list[str] = []

    def fake_timeout_sql(dialect_name: str, timeout_ms: int) -> str:
        armed.append(dialect_name)
        return "SELECT 1"

    monkeypatch.setattr(database, "statement_timeout_sql", fake_timeout_sql)

    tenant = Tenant(id="tenant-a", name="Acme")
    db_session.add(tenant)
    db_session.commit()
    assert armed == ["sqlite"]

    db_session.refresh(tenant)
    assert armed == ["sqlite", "sqlite"]
    db_session.commit()

    tenant.name = "Acme Renamed"
    db_session.commit()
    assert len(armed) == 3
