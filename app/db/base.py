# app/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """All IPD tables (wards, beds, admissions, orders, etc.) inherit from this."""
    pass
