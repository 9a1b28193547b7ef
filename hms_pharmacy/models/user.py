# hms_pharmacy/models/user.py
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from hms_pharmacy.db.base import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = {
        "mysql_engine": "InnoDB",
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }

    id = Column(Integer, primary_key=True, index=True)
    # NULL only for super_admin accounts
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=True, index=True)
    name = Column(String(120), nullable=False)
    email = Column(String(191), unique=True, nullable=False)
    role = Column(String(30), nullable=False, default="pharmacist")
    is_active = Column(Boolean, default=True)

    hospital = relationship("Hospital")
