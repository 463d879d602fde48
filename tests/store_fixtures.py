from __future__ import annotations

from datetime import datetime
from types import SimpleNamespace

from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from uniform_portal.models import Base, Employee, Order, OrderStatus
from uniform_portal.services.field_cipher import CURRENT_SCHEME, AesGcmCodec, FieldCipher


def make_session() -> Session:
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()


def make_cipher(token_key: bytes = b'test-lookup-token-key', **extra_codecs) -> FieldCipher:
    codecs = {CURRENT_SCHEME: AesGcmCodec(AESGCM.generate_key(bit_length=256))}
    codecs.update(extra_codecs)
    return FieldCipher(codecs=codecs, token_key=token_key)


def add_raw_employee(
    db: Session,
    employee_id: str,
    email_value: str,
    *,
    email_scheme: str | None = None,
    lookup_token: str | None = None,
    cycle_duration: dict | None = None,
    active: bool = True,
) -> Employee:
    employee = Employee(
        employee_id=employee_id,
        first_name='Test',
        last_name=employee_id,
        email_scheme=email_scheme,
        email_value=email_value,
        email_lookup_token=lookup_token,
        branch_id='BR-1',
        cycle_duration=cycle_duration,
        active=active,
    )
    db.add(employee)
    db.flush()
    return employee


def add_order(
    db: Session,
    order_id: str,
    employee_id: str,
    category: str,
    order_date: datetime,
    status: OrderStatus = OrderStatus.DELIVERED,
) -> Order:
    order = Order(
        order_id=order_id,
        employee_id=employee_id,
        category=category,
        status=status,
        order_date=order_date,
    )
    db.add(order)
    db.flush()
    return order


def statement_timeout_error() -> OperationalError:
    return OperationalError('SELECT 1', {}, SimpleNamespace(sqlstate='57014'))
