"""Database session factory and configuration.

Provides database connectivity and session management for the ContractFlow backend.
Includes a tenant-scoped session factory for background jobs such as trash cleanup.
"""

from contextlib import contextmanager
from typing import Generator
from uuid import UUID

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session

from .config import get_settings

DATABASE_URL = get_settings().DATABASE_URL

# Pool settings only apply to PostgreSQL (not SQLite)
_engine_kwargs = {
    "pool_pre_ping": True,
    "echo": False,
}

if not DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["pool_size"] = 5
    _engine_kwargs["max_overflow"] = 10
else:
    _engine_kwargs["connect_args"] = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.query(Customer).all()

    Automatically commits on success, rolls back on exception.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """Dependency for FastAPI endpoints.

    Usage:
        @router.get("/customers")
        def list_customers(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def org_scoped_session(org_id: UUID) -> Session:
    """Create a database session scoped to a specific organization.

    The org_id is stored in session.info["org_id"] and picked up by the
    before_flush listener below, so rows created outside a request still
    land in the right tenant.

    Args:
        org_id: Organization UUID to scope this session to

    Returns:
        Session: SQLAlchemy session with tenant context
    """
    session = SessionLocal()
    session.info["org_id"] = org_id
    return session


@event.listens_for(Session, "before_flush")
def auto_populate_org_id(session, flush_context, instances):
    """Populate org_id on new rows when the session carries a tenant context.

    Only applies to models with an org_id attribute that is still unset.
    """
    org_id = session.info.get("org_id")
    if not org_id:
        return

    for instance in session.new:
        if hasattr(instance, 'org_id') and instance.org_id is None:
            instance.org_id = org_id
