from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Mapping

import structlog
from sqlalchemy.orm import Session

from uniform_portal.config import CycleConfig
from uniform_portal.db import store_deadline
from uniform_portal.errors import UnknownCategoryError
from uniform_portal.models import Employee
from uniform_portal.services.employee_directory import get_cycle_duration
from uniform_portal.services.order_history_service import (
    last_delivered,
    last_delivered_by_category,
    last_delivered_for_employees,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class EligibilityDecision:
    category: str
    last_delivered_at: datetime | None
    cycle_months: int
    due_at: datetime
    is_eligible: bool


@dataclass
class EligibilityReport:
    employee_id: str
    as_of: datetime
    decisions: dict[str, EligibilityDecision] = field(default_factory=dict)
    errors: dict[str, UnknownCategoryError] = field(default_factory=dict)


def add_months(value: datetime, months: int) -> datetime:
    """Calendar-month addition, clamped to the last day of the target month.

    Jan 31 + 1 month is Feb 28 (Feb 29 in leap years), never Mar 3.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_cycle_months(cycle_duration: Mapping[str, int], category: str, *, config: CycleConfig) -> int:
    if not config.is_recognized(category):
        raise UnknownCategoryError(category, 'not a recognized uniform category')
    if category not in cycle_duration:
        raise UnknownCategoryError(category)

    months = cycle_duration[category]
    if not isinstance(months, int) or isinstance(months, bool) or months <= 0:
        raise UnknownCategoryError(category, f'cycle must be a positive number of months, got {months!r}')
    return months


def decide(category: str, *, cycle_months: int, last_delivered_at: datetime | None, as_of: datetime) -> EligibilityDecision:
    as_of = _as_utc(as_of)
    if last_delivered_at is None:
        return EligibilityDecision(
            category=category,
            last_delivered_at=None,
            cycle_months=cycle_months,
            due_at=as_of,
            is_eligible=True,
        )

    due_at = add_months(_as_utc(last_delivered_at), cycle_months)
    return EligibilityDecision(
        category=category,
        last_delivered_at=last_delivered_at,
        cycle_months=cycle_months,
        due_at=due_at,
        is_eligible=as_of >= due_at,
    )


def evaluate(
    db: Session,
    employee: Employee,
    category: str,
    as_of: datetime,
    *,
    config: CycleConfig,
    timeout_seconds: float | None = None,
) -> EligibilityDecision:
    category = category.strip().lower()
    cycle_months = resolve_cycle_months(get_cycle_duration(employee, config=config), category, config=config)
    with store_deadline(db, timeout_seconds):
        latest = last_delivered(db, employee.employee_id, category)
    return decide(category, cycle_months=cycle_months, last_delivered_at=latest, as_of=as_of)


def _build_report(
    employee: Employee,
    as_of: datetime,
    *,
    config: CycleConfig,
    latest_by_category: Mapping[str, datetime],
) -> EligibilityReport:
    report = EligibilityReport(employee_id=employee.employee_id, as_of=_as_utc(as_of))
    cycle_duration = get_cycle_duration(employee, config=config)
    for category in sorted(cycle_duration):
        try:
            cycle_months = resolve_cycle_months(cycle_duration, category, config=config)
        except UnknownCategoryError as exc:
            logger.warning(
                'Skipping category without a valid reissuance cycle',
                employee_id=employee.employee_id,
                category=category,
                reason=exc.reason,
            )
            report.errors[category] = exc
            continue
        report.decisions[category] = decide(
            category,
            cycle_months=cycle_months,
            last_delivered_at=latest_by_category.get(category),
            as_of=as_of,
        )
    return report


def evaluate_all(
    db: Session,
    employee: Employee,
    as_of: datetime,
    *,
    config: CycleConfig,
    timeout_seconds: float | None = None,
) -> EligibilityReport:
    with store_deadline(db, timeout_seconds):
        latest_by_category = last_delivered_by_category(db, employee.employee_id)
    return _build_report(employee, as_of, config=config, latest_by_category=latest_by_category)


def evaluate_many(
    db: Session,
    employees: Iterable[Employee],
    as_of: datetime,
    *,
    config: CycleConfig,
    timeout_seconds: float | None = None,
) -> dict[str, EligibilityReport]:
    employees = list(employees)
    with store_deadline(db, timeout_seconds):
        latest = last_delivered_for_employees(db, [employee.employee_id for employee in employees])

    by_employee: dict[str, dict[str, datetime]] = {}
    for (employee_id, category), delivered_at in latest.items():
        by_employee.setdefault(employee_id, {})[category] = delivered_at

    return {
        employee.employee_id: _build_report(
            employee,
            as_of,
            config=config,
            latest_by_category=by_employee.get(employee.employee_id, {}),
        )
        for employee in employees
    }
