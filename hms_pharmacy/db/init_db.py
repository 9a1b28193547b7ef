# hms_pharmacy/db/init_db.py
from __future__ import annotations

import argparse
from typing import Optional

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hms_pharmacy.db.base import Base
from hms_pharmacy.db.session import engine
# Import all models so metadata is complete
from hms_pharmacy import models  # noqa: F401
from hms_pharmacy.models import Hospital, User


def print_tables(conn):
    names = inspect(conn).get_table_names()
    print("Existing tables:", names)
    return set(names)


def seed_hospital(db: Session, name: str, admin_email: Optional[str] = None) -> Hospital:
    """
    Create the hospital (and an admin user) only when missing; safe to run multiple times.
    """
    hospital = db.query(Hospital).filter(Hospital.name == name).first()
    if not hospital:
        hospital = Hospital(name=name, is_active=True)
        db.add(hospital)
        db.flush()

    if admin_email:
        exists = db.query(User).filter(User.email == admin_email).first()
        if not exists:
            db.add(
                User(hospital_id=hospital.id,
                     name="Administrator",
                     email=admin_email,
                     role="admin",
                     is_active=True))
    return hospital


def run(fresh: bool = False,
        hospital_name: Optional[str] = None,
        admin_email: Optional[str] = None) -> None:
    if fresh:
        print("WARNING: Dropping ALL tables (dev only) ...")
        Base.metadata.drop_all(bind=engine)

    print("Creating all missing tables ...")
    Base.metadata.create_all(bind=engine)

    with engine.connect() as conn:
        print_tables(conn)

    if not hospital_name:
        return

    try:
        with Session(engine) as db:
            hospital = seed_hospital(db, hospital_name, admin_email)
            db.commit()
            print(f"Hospital seeded: #{hospital.id} {hospital.name}")
    except SQLAlchemyError as e:
        print("Seeding failed:", e)
        raise


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Initialize DB (create tables, optionally seed a hospital).")
    parser.add_argument(
        "--fresh",
        action="store_true",
        help="Drop & recreate all tables (DEV ONLY).",
    )
    parser.add_argument("--hospital", help="Seed a hospital with this name.")
    parser.add_argument("--admin-email", help="Seed an admin user for the hospital.")
    args = parser.parse_args()
    run(fresh=args.fresh, hospital_name=args.hospital, admin_email=args.admin_email)
