from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum as SQLEnum,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# SQLite only autoincrements INTEGER primary keys.
_PK_TYPE = BigInteger().with_variant(Integer, 'sqlite')


class Base(DeclarativeBase):
    pass


class OrderStatus(str, Enum):
    PENDING = 'Pending'
    AWAITING_APPROVAL = 'Awaiting approval'
    AWAITING_FULFILMENT = 'Awaiting fulfilment'
    DISPATCHED = 'Dispatched'
    DELIVERED = 'Delivered'
    CANCELLED = 'Cancelled'


class Employee(Base):
    __tablename__ = 'employees'
    __table_args__ = (
        UniqueConstraint('employee_id', name='employees_employee_id_key'),
        # Active employees only; a deactivated employee's address may be reissued.
        Index(
            'ux_employees_email_lookup_token_active',
            'email_lookup_token',
            unique=True,
            postgresql_where=text('active'),
            sqlite_where=text('active'),
        ),
    )

    id: Mapped[int] = mapped_column(_PK_TYPE, primary_key=True)
    employee_id: Mapped[str] = mapped_column(String(64), nullable=False)
    first_name: Mapped[str] = mapped_column(Text, nullable=False)
    last_name: Mapped[str] = mapped_column(Text, nullable=False)
    # NULL scheme marks a legacy plaintext value written before field encryption.
    email_scheme: Mapped[str | None] = mapped_column(String(32))
    email_value: Mapped[str] = mapped_column(Text, nullable=False)
    email_lookup_token: Mapped[str | None] = mapped_column(String(64))
    branch_id: Mapped[str | None] = mapped_column(String(64))
    cycle_duration: Mapped[dict | None] = mapped_column(JSON)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Order(Base):
    __tablename__ = 'orders'
    __table_args__ = (
        UniqueConstraint('order_id', name='orders_order_id_key'),
        Index('ix_orders_employee_category_status', 'employee_id', 'category', 'status'),
    )

    id: Mapped[int] = mapped_column(_PK_TYPE, primary_key=True)
    order_id: Mapped[str] = mapped_column(String(64), nullable=False)
    employee_id: Mapped[str] = mapped_column(String(64), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name='order_status', values_callable=lambda enum: [item.value for item in enum]),
        nullable=False,
    )
    order_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
