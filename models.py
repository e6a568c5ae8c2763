from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field
from sqlalchemy import CheckConstraint, DateTime, UniqueConstraint


class RestaurantTable(SQLModel, table=True):
    __tablename__ = "restaurant_tables"
    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_tables_capacity_positive"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    table_number: int = Field(unique=True)
    capacity: int


class Customer(SQLModel, table=True):
    __tablename__ = "customers"

    id: Optional[int] = Field(default=None, primary_key=True)
    first_name: str = Field(max_length=50)
    last_name: str = Field(max_length=50)
    email: str = Field(max_length=255, unique=True)
    phone: Optional[str] = Field(default=None, max_length=25)
    created_at: datetime = Field(default_factory=datetime.now, sa_type=DateTime)


class Booking(SQLModel, table=True):
    __tablename__ = "bookings"
    __table_args__ = (
        # Database-level protection against double booking
        UniqueConstraint("table_id", "slot", name="uq_bookings_table_slot"),
        CheckConstraint("party_size > 0", name="ck_bookings_party_size_positive"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    customer_id: int = Field(
        foreign_key="customers.id", ondelete="RESTRICT", index=True
    )
    table_id: int = Field(
        foreign_key="restaurant_tables.id", ondelete="RESTRICT", index=True
    )
    # Naive UTC, whole seconds; matches SQL DATETIME
    slot: datetime = Field(index=True, sa_type=DateTime)
    party_size: int
    notes: Optional[str] = Field(default=None, max_length=255)
