# hms_pharmacy/api/routes_medications.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from hms_pharmacy.api.deps import (
    STOCK_ROLES,
    SALES_ROLES,
    CurrentUser,
    get_db,
    require_roles,
    resolve_hospital_id,
)
from hms_pharmacy.api.response import ok
from hms_pharmacy.schemas.medication import (
    BatchOut,
    LedgerEntryOut,
    MedicationCreate,
    MedicationDetailOut,
    MedicationOut,
    MedicationUpdate,
    StockAdjustIn,
    StockPositionOut,
)
from hms_pharmacy.services import medications as medication_service
from hms_pharmacy.services import stock_ledger as ledger_service

router = APIRouter(prefix="/medications", tags=["Medications"])


@router.post("")
def create_medication(
    payload: MedicationCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*STOCK_ROLES)),
):
    hid = resolve_hospital_id(user, payload.hospital_id)
    med = medication_service.create_medication(db, hospital_id=hid, payload=payload, user=user)
    return ok(MedicationOut.model_validate(med).model_dump(), status_code=201)


@router.get("")
def list_medications(
    hospital_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    low_stock: bool = Query(False),
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*SALES_ROLES)),
):
    hid = resolve_hospital_id(user, hospital_id)
    rows = medication_service.list_medications(
        db, hospital_id=hid, search=search, category=category,
        low_stock=low_stock, include_inactive=include_inactive,
    )
    return ok([MedicationOut.model_validate(m).model_dump() for m in rows])


@router.get("/{medication_id}")
def get_medication(
    medication_id: int,
    hospital_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*SALES_ROLES)),
):
    hid = resolve_hospital_id(user, hospital_id)
    med = medication_service.get_medication(db, hospital_id=hid, medication_id=medication_id)
    return ok(MedicationDetailOut.model_validate(med).model_dump())


@router.put("/{medication_id}")
def update_medication(
    medication_id: int,
    payload: MedicationUpdate,
    hospital_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*STOCK_ROLES)),
):
    hid = resolve_hospital_id(user, hospital_id)
    med = medication_service.update_medication(db, hospital_id=hid, medication_id=medication_id, payload=payload)
    return ok(MedicationOut.model_validate(med).model_dump())


@router.delete("/{medication_id}")
def delete_medication(
    medication_id: int,
    hospital_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*STOCK_ROLES)),
):
    # soft delete: history (batches, ledger, invoices) keeps pointing at the row
    hid = resolve_hospital_id(user, hospital_id)
    med = medication_service.deactivate_medication(db, hospital_id=hid, medication_id=medication_id)
    return ok(MedicationOut.model_validate(med).model_dump())


@router.patch("/{medication_id}/stock")
def adjust_stock(
    medication_id: int,
    payload: StockAdjustIn,
    hospital_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*STOCK_ROLES)),
):
    hid = resolve_hospital_id(user, hospital_id)
    med = medication_service.adjust_stock(db, hospital_id=hid, medication_id=medication_id,
                                          payload=payload, user=user)
    return ok(MedicationDetailOut.model_validate(med).model_dump())


@router.get("/{medication_id}/batches")
def list_batches(
    medication_id: int,
    hospital_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*SALES_ROLES)),
):
    hid = resolve_hospital_id(user, hospital_id)
    rows = medication_service.list_batches(db, hospital_id=hid, medication_id=medication_id)
    return ok([BatchOut.model_validate(b).model_dump() for b in rows])


@router.get("/{medication_id}/ledger")
def list_ledger(
    medication_id: int,
    hospital_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*STOCK_ROLES)),
):
    hid = resolve_hospital_id(user, hospital_id)
    medication_service.get_medication(db, hospital_id=hid, medication_id=medication_id)
    rows = ledger_service.list_ledger(db, hospital_id=hid, medication_id=medication_id,
                                      date_from=date_from, date_to=date_to)
    return ok([LedgerEntryOut.model_validate(e).model_dump() for e in rows])


@router.get("/{medication_id}/stock-position")
def stock_position(
    medication_id: int,
    hospital_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*STOCK_ROLES)),
):
    hid = resolve_hospital_id(user, hospital_id)
    med = medication_service.get_medication(db, hospital_id=hid, medication_id=medication_id)
    return ok(StockPositionOut(**ledger_service.stock_position(db, med)).model_dump())
