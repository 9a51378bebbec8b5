"""Database connection and session management."""

from __future__ import annotations

import threading
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from payroll_disbursement.config import Settings, get_settings
from payroll_disbursement.models import Account, Base, Grade, OwnerType

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine


def make_engine(database_url: str) -> Engine:
    """Create a database engine.

    SQLite URLs get a shared connection for in-memory databases and
    foreign key enforcement; any other backend uses a regular pool.
    """
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=False, **kwargs)

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to an engine."""
    return sessionmaker(engine, expire_on_commit=False, autoflush=True)


# Global engine and session factory
_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None
_init_lock = threading.Lock()


def init_db(database_url: str | None = None) -> tuple[Engine, sessionmaker[Session]]:
    """Initialize database engine, schema, reference data and session factory.

    Safe to call from several threads; only the first call builds anything.
    """
    global _engine, _session_factory
    with _init_lock:
        if _engine is None or _session_factory is None:
            engine = make_engine(database_url or get_settings().database_url)
            Base.metadata.create_all(engine)
            factory = make_session_factory(engine)
            with factory() as session:
                seed_reference_data(session)
                session.commit()
            _engine, _session_factory = engine, factory
        return _engine, _session_factory


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get a database session that commits on success."""
    _, factory = init_db()
    with factory() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


GRADE_NAMES = {
    1: "Grade 1",
    2: "Grade 2",
    3: "Grade 3",
    4: "Grade 4",
    5: "Grade 5",
    6: "Grade 6",
}


def seed_grades(session: Session) -> list[Grade]:
    """Insert the six grade rows if they are missing. Idempotent."""
    existing = {g.rank: g for g in session.scalars(select(Grade)).all()}
    for rank, name in GRADE_NAMES.items():
        if rank not in existing:
            existing[rank] = Grade(rank=rank, name=name)
            session.add(existing[rank])
    session.flush()
    return [existing[rank] for rank in sorted(existing)]


def seed_reference_data(session: Session, settings: Settings | None = None) -> None:
    """Seed grades and the external funding source account."""
    settings = settings or get_settings()
    seed_grades(session)
    if session.get(Account, settings.external_funding_account_id) is None:
        session.add(
            Account(
                account_id=settings.external_funding_account_id,
                owner_type=OwnerType.EXTERNAL.value,
                account_name="External funding source",
                current_balance=0,
                overdraft_limit=0,
            )
        )
    session.flush()
