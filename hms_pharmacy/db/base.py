# hms_pharmacy/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """All pharmacy tables (stock, sales, returns, purchases) inherit from this."""
    pass
