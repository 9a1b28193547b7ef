# hms_pharmacy/api/deps.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from hms_pharmacy.core.config import settings
from hms_pharmacy.db.session import SessionLocal

SUPER_ADMIN = "super_admin"
ADMIN = "admin"
PHARMACIST = "pharmacist"
RECEPTIONIST = "receptionist"

REPORT_ROLES = (ADMIN, SUPER_ADMIN)
SALES_ROLES = (ADMIN, SUPER_ADMIN, PHARMACIST, RECEPTIONIST)
STOCK_ROLES = (ADMIN, SUPER_ADMIN, PHARMACIST)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# =========================================================
# AUTH HELPERS
# =========================================================
@dataclass
class CurrentUser:
    id: int
    hospital_id: Optional[int]
    role: str

    @property
    def is_super_admin(self) -> bool:
        return self.role == SUPER_ADMIN


def _extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def _decode_token(raw_token: str) -> dict:
    try:
        return jwt.decode(raw_token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")


def current_user(authorization: Optional[str] = Header(None)) -> CurrentUser:
    raw = _extract_bearer(authorization)
    if not raw:
        raise HTTPException(status_code=401, detail="Missing token")

    payload = _decode_token(raw)
    sub = payload.get("sub")
    role = (payload.get("role") or "").strip().lower()
    if not sub or not role:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    hid = payload.get("hid")
    if hid is None and role != SUPER_ADMIN:
        raise HTTPException(status_code=403, detail="User is not linked to a hospital")

    try:
        return CurrentUser(id=int(sub), hospital_id=int(hid) if hid is not None else None, role=role)
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token payload")


def require_roles(*roles: str):
    allowed = {r.lower() for r in roles}

    def _dep(user: CurrentUser = Depends(current_user)) -> CurrentUser:
        if user.role not in allowed:
            raise HTTPException(status_code=403, detail="Forbidden: insufficient role")
        return user

    return _dep


# =========================================================
# HOSPITAL SCOPE
# =========================================================
def resolve_hospital_id(user: CurrentUser, requested: Optional[int]) -> int:
    """Hospital a write (or single-hospital read) acts on."""
    if user.is_super_admin:
        if not requested:
            raise HTTPException(status_code=400, detail="hospital_id is required for super_admin")
        return int(requested)
    return int(user.hospital_id)


def scope_hospital_id(user: CurrentUser, requested: Optional[int] = None) -> Optional[int]:
    """Read filter: None lets a super_admin see every hospital."""
    if user.is_super_admin:
        return int(requested) if requested else None
    return int(user.hospital_id)
