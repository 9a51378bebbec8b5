"""FastAPI dependencies for dependency injection."""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from payroll_disbursement.config import Settings, get_settings
from payroll_disbursement.database import init_db
from payroll_disbursement.events import EventEmitter
from payroll_disbursement.services import (
    Actor,
    FundingService,
    LedgerService,
    PayrollBatchService,
    Role,
    Scope,
    SqlEmployeeDirectory,
    resolve_scope,
)


def get_db_session() -> Generator[Session, None, None]:
    """Get database session dependency."""
    _, factory = init_db()
    with factory() as session:
        try:
            yield session
        except Exception:
            session.rollback()
            raise


def get_app_settings() -> Settings:
    """Settings dependency, overridable in tests."""
    return get_settings()


def get_emitter(request: Request) -> EventEmitter:
    """The application's shared event emitter."""
    return request.app.state.emitter


def get_actor(
    x_actor_role: Annotated[str | None, Header()] = None,
    x_actor_id: Annotated[str | None, Header()] = None,
    x_actor_grade_rank: Annotated[int | None, Header()] = None,
    x_actor_company_id: Annotated[str | None, Header()] = None,
) -> Actor:
    """Build the caller's actor context from request headers."""
    if not x_actor_role or not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Actor-Role and X-Actor-Id headers are required",
        )
    try:
        role = Role(x_actor_role.upper())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid X-Actor-Role: {x_actor_role}",
        )
    return Actor(
        role=role,
        actor_id=x_actor_id,
        grade_rank=x_actor_grade_rank,
        company_id=x_actor_company_id,
    )


# Type aliases for cleaner dependency injection
DbSession = Annotated[Session, Depends(get_db_session)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Emitter = Annotated[EventEmitter, Depends(get_emitter)]
CurrentActor = Annotated[Actor, Depends(get_actor)]


def get_scope(db: DbSession, actor: CurrentActor) -> Scope:
    """Visibility scope of the caller."""
    return scope_for(db, actor)


ActorScope = Annotated[Scope, Depends(get_scope)]


def scope_for(db: Session, actor: Actor, company_filter: str | None = None) -> Scope:
    """Resolve a scope, narrowing the snapshot to the actor's company when known."""
    snapshot_company = None if actor.role == Role.ADMIN else actor.company_id
    snapshot = SqlEmployeeDirectory(db).hierarchy_snapshot(snapshot_company)
    return resolve_scope(actor, snapshot, company_filter=company_filter)


def batch_service(db: Session, emitter: EventEmitter, settings: Settings) -> PayrollBatchService:
    return PayrollBatchService(db, emitter=emitter, settings=settings)


def funding_service(db: Session, emitter: EventEmitter, settings: Settings) -> FundingService:
    ledger = LedgerService(db)
    return FundingService(
        db,
        ledger=ledger,
        batches=PayrollBatchService(db, ledger=ledger, emitter=emitter, settings=settings),
        emitter=emitter,
        settings=settings,
    )
