# hms_pharmacy/models/hospital.py
from datetime import datetime

from sqlalchemy import Column, Integer, String, Boolean, DateTime

from hms_pharmacy.db.base import Base


class Hospital(Base):
    """Tenant root: every pharmacy row carries a hospital_id."""
    __tablename__ = "hospitals"
    __table_args__ = {
        "mysql_engine": "InnoDB",
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    gstin = Column(String(50), default="")
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
