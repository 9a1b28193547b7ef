# hms_pharmacy/api/routes_stock_purchases.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from hms_pharmacy.api.deps import (
    STOCK_ROLES,
    CurrentUser,
    get_db,
    require_roles,
    resolve_hospital_id,
    scope_hospital_id,
)
from hms_pharmacy.api.response import ok
from hms_pharmacy.schemas.stock_purchase import (
    PurchaseCreate,
    PurchaseOut,
    PurchaseReturnCreate,
    PurchaseReturnOut,
    VendorCreate,
    VendorOut,
)
from hms_pharmacy.services import stock_purchases as purchase_service

router = APIRouter(prefix="/stock-purchases", tags=["Stock Purchases"])


@router.get("/vendors")
def list_vendors(
    hospital_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*STOCK_ROLES)),
):
    hid = resolve_hospital_id(user, hospital_id)
    return ok([VendorOut.model_validate(v).model_dump() for v in purchase_service.list_vendors(db, hospital_id=hid)])


@router.post("/vendors")
def create_vendor(
    payload: VendorCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*STOCK_ROLES)),
):
    hid = resolve_hospital_id(user, payload.hospital_id)
    vendor = purchase_service.create_vendor(db, hospital_id=hid, payload=payload)
    return ok(VendorOut.model_validate(vendor).model_dump(), status_code=201)


@router.post("")
def create_purchase(
    payload: PurchaseCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*STOCK_ROLES)),
):
    hid = resolve_hospital_id(user, payload.hospital_id)
    purchase = purchase_service.create_purchase(db, hospital_id=hid, payload=payload, user=user)
    return ok(PurchaseOut.model_validate(purchase).model_dump(), status_code=201)


@router.get("")
def list_purchases(
    hospital_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    vendor_id: Optional[int] = Query(None),
    medication_id: Optional[int] = Query(None),
    q: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*STOCK_ROLES)),
):
    rows = purchase_service.list_purchases(
        db, hospital_id=scope_hospital_id(user, hospital_id), date_from=date_from, date_to=date_to,
        vendor_id=vendor_id, medication_id=medication_id, search=q,
    )
    return ok([PurchaseOut.model_validate(p).model_dump() for p in rows])


@router.get("/{purchase_id}/returns")
def list_purchase_returns(
    purchase_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*STOCK_ROLES)),
):
    rows = purchase_service.list_purchase_returns(db, hospital_id=scope_hospital_id(user), purchase_id=purchase_id)
    return ok([PurchaseReturnOut.model_validate(r).model_dump() for r in rows])


@router.post("/{purchase_id}/returns")
def create_purchase_return(
    purchase_id: int,
    payload: PurchaseReturnCreate,
    hospital_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*STOCK_ROLES)),
):
    hid = resolve_hospital_id(user, hospital_id)
    ret = purchase_service.create_purchase_return(
        db, hospital_id=hid, purchase_id=purchase_id, payload=payload, user=user,
    )
    return ok(PurchaseReturnOut.model_validate(ret).model_dump(), status_code=201)
