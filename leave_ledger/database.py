import logging
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from sqlalchemy.orm.exc import StaleDataError
from leave_ledger.core.config import settings
from leave_ledger.core.exceptions import PersistenceError

logger = logging.getLogger(__name__)

# Support both PostgreSQL and SQLite via centralized settings
DATABASE_URL = settings.database_url

if DATABASE_URL.startswith("postgresql"):
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)
else:
    # SQLite configuration for local development/testing
    engine = create_engine(
        DATABASE_URL, connect_args={"check_same_thread": False}
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    """
    Session Provider: Provides a database session per request.
    Transaction management is handled explicitly in the Service Layer.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def commit_or_rollback(db: Session) -> None:
    """
    Commit the current unit of work. Any storage failure rolls the session
    back and surfaces as PersistenceError so no partial write survives.
    """
    try:
        db.commit()
    except StaleDataError:
        # Lost an optimistic version race; the caller may retry the unit of work
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Commit failed, transaction rolled back: {e}", exc_info=True)
        raise PersistenceError("Could not save changes") from e

def init_db(bind=None):
    """
    Registers all domain models and initializes the database schema.
    This should be called during the application startup lifespan.
    """
    # Import all models to ensure they are registered with Base.metadata before create_all
    from leave_ledger.models import (  # noqa: F401
        employee, leave_policy, leave_balance, leave_request, notification
    )
    Base.metadata.create_all(bind=bind or engine)
