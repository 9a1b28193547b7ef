# hms_pharmacy/models/patient.py
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint

from hms_pharmacy.db.base import Base


class Patient(Base):
    __tablename__ = "patients"
    __table_args__ = (
        UniqueConstraint("hospital_id", "uhid", name="uq_patients_hospital_uhid"),
    )

    id = Column(Integer, primary_key=True, index=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False, index=True)
    uhid = Column(String(50), nullable=False)
    name = Column(String(255), nullable=False)
    phone = Column(String(30), default="")

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    @property
    def display_id(self) -> str:
        return self.uhid or str(self.id)
