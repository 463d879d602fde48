from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from uniform_portal.models import Order, OrderStatus


def _as_utc(value: datetime | None) -> datetime | None:
    # Some drivers (SQLite) hand back naive datetimes for timezone-aware columns.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def last_delivered(db: Session, employee_id: str, category: str) -> datetime | None:
    latest = db.execute(
        select(func.max(Order.order_date)).where(
            Order.employee_id == employee_id,
            Order.category == category,
            Order.status == OrderStatus.DELIVERED,
        )
    ).scalar_one_or_none()
    return _as_utc(latest)


def last_delivered_by_category(db: Session, employee_id: str) -> dict[str, datetime]:
    rows = db.execute(
        select(Order.category, func.max(Order.order_date))
        .where(
            Order.employee_id == employee_id,
            Order.status == OrderStatus.DELIVERED,
        )
        .group_by(Order.category)
    ).all()
    return {category: _as_utc(latest) for category, latest in rows}


def last_delivered_for_employees(db: Session, employee_ids: Iterable[str]) -> dict[tuple[str, str], datetime]:
    ids = sorted(set(employee_ids))
    if not ids:
        return {}

    rows = db.execute(
        select(Order.employee_id, Order.category, func.max(Order.order_date))
        .where(
            Order.employee_id.in_(ids),
            Order.status == OrderStatus.DELIVERED,
        )
        .group_by(Order.employee_id, Order.category)
    ).all()
    return {(employee_id, category): _as_utc(latest) for employee_id, category, latest in rows}
