"""
SQLAlchemy database connection and session management.

This module provides:
- Database engine configuration (Azure SQL via pymssql by default, any
  SQLAlchemy URL through DATABASE_URL)
- Session factory for dependency injection
- The unit-of-work helper every ledger mutation runs inside

Usage:
     from database import get_session, unit_of_work

     # In FastAPI routes:
     @router.post("/payments")
     def create(body: PaymentCreate, db: Session = Depends(get_session)):
          with unit_of_work(db):
               ...
     """
import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import QueuePool, StaticPool

from config import settings
from exceptions import AppError, ConcurrentUpdateError

logger = logging.getLogger(__name__)


def _engine_kwargs(url: str) -> dict:
     if url.startswith("sqlite"):
          kwargs = {"connect_args": {"check_same_thread": False}}
          # In-memory databases live and die with a single connection
          if url in ("sqlite://", "sqlite:///:memory:"):
               kwargs["poolclass"] = StaticPool
          return kwargs
     return {
          "poolclass": QueuePool,
          "pool_size": settings.db_pool_size,
          "max_overflow": settings.db_max_overflow,
          "pool_timeout": 30,
          "pool_recycle": 1800,  # Recycle connections after 30 minutes
          "pool_pre_ping": True,
     }


engine = create_engine(
     settings.database_url,
     echo=settings.sql_echo,
     **_engine_kwargs(settings.database_url),
)

# Session factory
SessionLocal = sessionmaker(
     bind=engine,
     autocommit=False,
     autoflush=False,
     expire_on_commit=False,
)


def get_session() -> Generator[Session, None, None]:
     """
     FastAPI dependency that provides a database session.

     Services commit their own units of work; anything still pending when
     the request finishes is committed here, and rolled back on error.

     Yields:
          Session: SQLAlchemy database session
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


@contextmanager
def get_session_context() -> Generator[Session, None, None]:
     """
     Context manager for database sessions (for use outside FastAPI routes).

     Usage:
          with get_session_context() as db:
               InvoiceService.mark_overdue_invoices(db, company_id)
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


@contextmanager
def unit_of_work(session: Session) -> Generator[Session, None, None]:
     """
     Run a multi-row write as one atomic unit.

     Commits when the block exits cleanly. Any exception rolls back every
     change made in the block and propagates. A version conflict on a
     versioned row surfaces as ConcurrentUpdateError.
     """
     try:
          yield session
          session.commit()
     except StaleDataError as exc:
          session.rollback()
          logger.warning("Concurrent modification detected: %s", exc)
          raise ConcurrentUpdateError(
               "The record was modified by another request, please retry"
          ) from exc
     except AppError:
          session.rollback()
          raise
     except Exception:
          session.rollback()
          logger.exception("Unit of work failed, transaction rolled back")
          raise


def init_db() -> None:
     """
     Initialize database tables.

     Creates all tables defined in the models if they don't exist.
     For production, use Alembic migrations instead.
     """
     from models import Base
     Base.metadata.create_all(bind=engine)


def check_connection() -> bool:
     """
     Test database connectivity.

     Returns:
          bool: True if connection successful, False otherwise
     """
     try:
          with engine.connect() as conn:
               conn.execute(text("SELECT 1"))
          return True
     except Exception as e:
          logger.error("Database connection failed: %s", e)
          return False
