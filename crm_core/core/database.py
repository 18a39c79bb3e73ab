from __future__ import annotations

from collections.abc import Generator

from sqlalchemy import Connection, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, SessionTransaction, sessionmaker

from crm_core.core.config import get_settings


class Base(DeclarativeBase):
    pass


settings = get_settings()

engine = create_engine(settings.database_url, pool_pre_ping=True, future=True)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def statement_timeout_sql(dialect_name: str, timeout_ms: int) -> str | None:
    if timeout_ms <= 0 or dialect_name != "postgresql":
        return None
    return f"SET LOCAL statement_timeout = {int(timeout_ms)}"


def _apply_statement_timeout(session: Session, transaction: SessionTransaction, connection: Connection) -> None:
    """``SET LOCAL`` ends with its transaction, so the deadline is re-armed on every begin."""

    statement = statement_timeout_sql(connection.dialect.name, get_settings().statement_timeout_ms)
    if statement is not None:
        connection.exec_driver_sql(statement)


def install_statement_timeout(factory: sessionmaker[Session]) -> None:
    event.listen(factory, "after_begin", _apply_statement_timeout)


install_statement_timeout(SessionLocal)


def get_db() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
