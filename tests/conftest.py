import os
import sys

# In-memory database and a known signing key, set before any app module
# reads its settings.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")

# Allow running pytest from the repo root or from within `tests/`.
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from database import SessionLocal, engine, get_session
from deps import get_company_id
from main import app
from models import Base, Occupancy, OccupancyStatus
from services import InvoiceService

COMPANY_ID = "company-a"
OTHER_COMPANY_ID = "company-b"


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    def _session_override():
        yield db_session

    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_company_id] = lambda: COMPANY_ID
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_occupancy(db_session):
    def _make(
        company_id=COMPANY_ID,
        monthly_rent="1000.00",
        status=OccupancyStatus.ACTIVE,
        tenant_id="tenant-1",
        is_active=True,
    ):
        occupancy = Occupancy(
            company_id=company_id,
            tenant_id=tenant_id,
            lease_start_date=date(2024, 1, 1),
            lease_end_date=date(2024, 12, 31),
            monthly_rent=Decimal(monthly_rent),
            status=status,
            is_active=is_active,
        )
        db_session.add(occupancy)
        db_session.commit()
        return occupancy

    return _make


@pytest.fixture
def make_invoice(db_session, make_occupancy):
    counter = {"n": 0}

    def _make(total="1000.00", company_id=COMPANY_ID, occupancy=None, send=True, due_date=date(2024, 1, 5)):
        counter["n"] += 1
        occupancy = occupancy or make_occupancy(company_id=company_id)
        invoice = InvoiceService.create_invoice(
            db_session,
            company_id,
            {
                "invoice_number": f"INV-TEST-{counter['n']:03d}",
                "occupancy_id": occupancy.id,
                "tenant_id": occupancy.tenant_id,
                "invoice_date": date(2024, 1, 1),
                "due_date": due_date,
                "line_items": [
                    {
                        "description": "Monthly Rent - January 2024",
                        "quantity": 1,
                        "unit_price": Decimal(total),
                        "amount": Decimal(total),
                        "type": "rent",
                    }
                ],
                "subtotal": Decimal(total),
                "tax_amount": Decimal("0"),
            },
        )
        if send:
            invoice = InvoiceService.mark_as_sent(db_session, company_id, invoice.id)
        return invoice

    return _make
