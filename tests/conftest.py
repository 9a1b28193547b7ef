"""
Pytest fixtures for the pharmacy test suite.

Provides:
- A fresh in-memory SQLite database per test (StaticPool, SAVEPOINT-capable)
- Factory fixtures for hospitals, users, patients, medications and batches
- A FastAPI TestClient bound to the test session, plus bearer tokens
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date
from decimal import Decimal
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import hms_pharmacy.models  # noqa: F401  (registers every table)
from hms_pharmacy.api.deps import get_db
from hms_pharmacy.core.config import settings
from hms_pharmacy.db.base import Base
from hms_pharmacy.main import app
from hms_pharmacy.models import Hospital, Medication, MedicationBatch, Patient, User
from hms_pharmacy.schemas.medication import MedicationCreate
from hms_pharmacy.services import medications as medication_service


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; take it over
    @event.listens_for(eng, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def db(engine) -> Generator[Session, None, None]:
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_hospital(db):
    def _make(name: str = "City Care Hospital") -> Hospital:
        hospital = Hospital(name=name, gstin="33AAACC1234F1Z5", is_active=True)
        db.add(hospital)
        db.commit()
        db.refresh(hospital)
        return hospital

    return _make


@pytest.fixture
def hospital(make_hospital) -> Hospital:
    return make_hospital()


@pytest.fixture
def other_hospital(make_hospital) -> Hospital:
    return make_hospital("Lakeside Clinic")


@pytest.fixture
def make_user(db):
    def _make(hospital_id, role: str = "pharmacist", email: str = None) -> User:
        count = db.query(User).count()
        user = User(
            hospital_id=hospital_id,
            name=f"{role.title()} {count + 1}",
            email=email or f"{role}{count + 1}@example.test",
            role=role,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def pharmacist(make_user, hospital) -> User:
    return make_user(hospital.id, "pharmacist")


@pytest.fixture
def patient(db, hospital) -> Patient:
    p = Patient(hospital_id=hospital.id, uhid="UH-0001", name="Anita Raman", phone="9840012345")
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


@pytest.fixture
def make_medication(db, hospital):
    """Medication through the service, so opening stock gets its batch and ledger entry."""

    def _make(
        name: str = "Paracetamol 500mg",
        *,
        hospital_id: int = None,
        unit_price="10.00",
        purchase_price="6.00",
        gst_rate="12",
        opening_stock: int = 0,
        batch_no: str = None,
        expiry_date: date = None,
        hsn_code: str = "30049011",
        category: str = "",
        is_restricted_drug: bool = False,
        schedule_category: str = "",
    ) -> Medication:
        payload = MedicationCreate(
            name=name,
            hsn_code=hsn_code,
            category=category,
            is_restricted_drug=is_restricted_drug,
            schedule_category=schedule_category,
            unit_price=Decimal(unit_price),
            purchase_price=Decimal(purchase_price),
            gst_rate=Decimal(gst_rate),
            opening_stock=opening_stock,
            batch_no=batch_no,
            expiry_date=expiry_date,
        )
        return medication_service.create_medication(
            db, hospital_id=hospital_id or hospital.id, payload=payload)

    return _make


@pytest.fixture
def make_batch(db):
    """Raw batch row; also grows the medication aggregate so the stock invariant holds."""

    def _make(
        medication: Medication,
        batch_no: str,
        quantity: int,
        expiry_date: date,
        purchase_date: date = None,
    ) -> MedicationBatch:
        batch = MedicationBatch(
            hospital_id=medication.hospital_id,
            medication_id=medication.id,
            batch_no=batch_no.upper(),
            expiry_date=expiry_date,
            purchase_date=purchase_date,
            quantity_on_hand=quantity,
            unit_cost=Decimal("5.00"),
            is_active=True,
        )
        db.add(batch)
        medication.stock_quantity = int(medication.stock_quantity or 0) + quantity
        db.commit()
        db.refresh(batch)
        db.refresh(medication)
        return batch

    return _make


# =============================================================================
# HTTP
# =============================================================================


def make_token(user_id: int, hospital_id, role: str) -> str:
    claims = {"sub": str(user_id), "role": role}
    if hospital_id is not None:
        claims["hid"] = hospital_id
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {make_token(user.id, user.hospital_id, user.role)}"}

    return _headers


@pytest.fixture
def client(db) -> Generator[TestClient, None, None]:
    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
