import re
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, declared_attr


def new_id() -> str:
     return str(uuid.uuid4())


def utcnow() -> datetime:
     """Naive UTC timestamp, the form every DateTime column stores."""
     return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
     """
     Base class for all SQLAlchemy models.
     Provides common configuration and mixins.
     """

     @declared_attr.directive
     def __tablename__(cls) -> str:
          """
          Automatically generate table name from class name.
          Example: Occupancy -> occupancies, Invoice -> invoices
          """
          name = re.sub(r'(?<!^)(?=[A-Z])', '_', cls.__name__).lower()
          # Pluralize (simple version)
          if name.endswith('y'):
               return name[:-1] + 'ies'
          elif name.endswith('s'):
               return name + 'es'
          return name + 's'


class CompanyScopedMixin:
     """
     Columns shared by every company-owned row.

     company_id is the tenant isolation key; is_active is the soft-delete flag.
     """
     id = Column(String(36), primary_key=True, default=new_id)
     company_id = Column(String(36), nullable=False, index=True)
     is_active = Column(Boolean, default=True, nullable=False)
     created_at = Column(DateTime, server_default=func.now(), nullable=False)
     updated_at = Column(DateTime, onupdate=func.now(), nullable=True)
