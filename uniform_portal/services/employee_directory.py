from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from uniform_portal.config import CycleConfig, settings
from uniform_portal.db import store_deadline
from uniform_portal.errors import CipherMismatchError, ConsistencyError, NotFoundError
from uniform_portal.models import Employee
from uniform_portal.services.field_cipher import (
    DECRYPTION_FAILURES,
    Encrypted,
    FieldCipher,
    Plaintext,
    StoredField,
    normalize_email,
)

logger = structlog.get_logger()


class LookupPath(str, Enum):
    """How `find_by_email` locates rows.

    AUTO and SCAN see every active employee. TOKEN only sees rows that carry a
    lookup token, so legacy rows written before tokens existed are invisible to
    it until the re-encryption migration has run.
    """

    AUTO = 'auto'
    TOKEN = 'token'
    SCAN = 'scan'


@dataclass(frozen=True)
class EmployeeView:
    employee_id: str
    first_name: str
    last_name: str
    email: str
    branch_id: str | None
    cycle_duration: dict[str, int]
    cycle_duration_is_default: bool
    active: bool
    needs_reencryption: bool


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def stored_email(employee: Employee) -> StoredField:
    if employee.email_scheme is None:
        return Plaintext(employee.email_value)
    return Encrypted(scheme=employee.email_scheme, payload=employee.email_value)


def find_by_id(db: Session, employee_id: str, *, timeout_seconds: float | None = None) -> Employee:
    with store_deadline(db, timeout_seconds):
        employee = db.execute(select(Employee).where(Employee.employee_id == employee_id)).scalar_one_or_none()
    if employee is None:
        raise NotFoundError(f'Employee {employee_id} not found')
    return employee


def _token_matches(db: Session, normalized: str, *, cipher: FieldCipher) -> list[Employee]:
    """Active employees whose lookup token matches, each checked against its decrypted email.

    A token that disagrees with the stored email raises ConsistencyError.
    """
    hits = db.execute(
        select(Employee).where(
            Employee.email_lookup_token == cipher.lookup_token(normalized),
            Employee.active.is_(True),
        )
    ).scalars().all()

    for employee in hits:
        try:
            plaintext = cipher.decrypt(stored_email(employee))
        except CipherMismatchError as exc:
            logger.warning('Unrecognized email scheme on token match', employee_id=employee.employee_id, scheme=exc.scheme)
            raise
        except DECRYPTION_FAILURES as exc:
            logger.error('Token match cannot be decrypted', employee_id=employee.employee_id)
            raise ConsistencyError(f'Stored email for employee {employee.employee_id} cannot be decrypted') from exc
        if normalize_email(plaintext) != normalized:
            logger.error('Lookup token does not match stored email', employee_id=employee.employee_id)
            raise ConsistencyError(f'Lookup token for employee {employee.employee_id} does not match its stored email')
    return list(hits)


def _scan_matches(
    db: Session,
    normalized: str,
    *,
    cipher: FieldCipher,
    untokened_only: bool,
    batch_size: int,
) -> list[Employee]:
    stmt = select(Employee).where(Employee.active.is_(True)).order_by(Employee.id.asc())
    if untokened_only:
        stmt = stmt.where(Employee.email_lookup_token.is_(None))

    matches: list[Employee] = []
    for employee in db.execute(stmt.execution_options(yield_per=batch_size)).scalars():
        try:
            plaintext = cipher.decrypt(stored_email(employee))
        except CipherMismatchError as exc:
            logger.warning('Skipping employee with unrecognized email scheme', employee_id=employee.employee_id, scheme=exc.scheme)
            continue
        except DECRYPTION_FAILURES:
            logger.warning('Skipping employee whose email cannot be decrypted', employee_id=employee.employee_id)
            continue
        if normalize_email(plaintext) == normalized:
            matches.append(employee)
    return matches


def _email_matches(
    db: Session,
    normalized: str,
    *,
    cipher: FieldCipher,
    path: LookupPath,
    batch_size: int,
) -> list[Employee]:
    if path == LookupPath.TOKEN:
        return _token_matches(db, normalized, cipher=cipher)
    if path == LookupPath.SCAN:
        return _scan_matches(db, normalized, cipher=cipher, untokened_only=False, batch_size=batch_size)

    # Tokened rows are found by index; rows written before tokens existed by decrypting.
    matches = _token_matches(db, normalized, cipher=cipher)
    matches.extend(_scan_matches(db, normalized, cipher=cipher, untokened_only=True, batch_size=batch_size))
    return matches


def find_by_email(
    db: Session,
    raw_email: str,
    *,
    cipher: FieldCipher,
    path: LookupPath = LookupPath.AUTO,
    timeout_seconds: float | None = None,
    batch_size: int | None = None,
) -> Employee:
    normalized = normalize_email(raw_email)
    if not normalized:
        raise NotFoundError('Email is required')

    with store_deadline(db, timeout_seconds):
        matches = _email_matches(
            db,
            normalized,
            cipher=cipher,
            path=path,
            batch_size=batch_size or settings.email_scan_batch_size,
        )

    if not matches:
        raise NotFoundError('No employee found for email')
    if len(matches) > 1:
        employee_ids = sorted(employee.employee_id for employee in matches)
        logger.error('Duplicate active employees for one email', employee_ids=employee_ids, path=path.value)
        raise ConsistencyError(f'Email resolves to {len(matches)} active employees: {", ".join(employee_ids)}')
    return matches[0]


def get_cycle_duration(employee: Employee, *, config: CycleConfig) -> dict[str, int]:
    if employee.cycle_duration is not None:
        return dict(employee.cycle_duration)
    return dict(config.default_months)


def describe_employee(employee: Employee, *, cipher: FieldCipher, config: CycleConfig) -> EmployeeView:
    try:
        decrypted = cipher.decrypt_with_status(stored_email(employee))
    except CipherMismatchError:
        logger.warning('Unrecognized email scheme', employee_id=employee.employee_id, scheme=employee.email_scheme)
        raise
    except DECRYPTION_FAILURES as exc:
        raise ConsistencyError(f'Stored email for employee {employee.employee_id} cannot be decrypted') from exc

    if decrypted.needs_reencryption:
        logger.info(
            'Employee email needs re-encryption',
            employee_id=employee.employee_id,
            scheme=employee.email_scheme or 'plaintext',
        )

    return EmployeeView(
        employee_id=employee.employee_id,
        first_name=employee.first_name,
        last_name=employee.last_name,
        email=decrypted.plaintext,
        branch_id=employee.branch_id,
        cycle_duration=get_cycle_duration(employee, config=config),
        cycle_duration_is_default=employee.cycle_duration is None,
        active=employee.active,
        needs_reencryption=decrypted.needs_reencryption,
    )


def _assert_email_available(db: Session, normalized: str, *, cipher: FieldCipher, employee_id: str | None) -> None:
    matches = _email_matches(
        db,
        normalized,
        cipher=cipher,
        path=LookupPath.AUTO,
        batch_size=settings.email_scan_batch_size,
    )
    others = [employee for employee in matches if employee.employee_id != employee_id]
    if others:
        raise ConsistencyError(f'Email is already assigned to employee {others[0].employee_id}')


def _write_email(db: Session, employee: Employee, email: str, *, cipher: FieldCipher) -> None:
    envelope = cipher.encrypt(email)
    # Envelope and token go out in the same row write.
    employee.email_scheme = envelope.scheme
    employee.email_value = envelope.payload
    employee.email_lookup_token = cipher.lookup_token(normalize_email(email))
    employee.updated_at = _now()
    try:
        db.flush()
    except IntegrityError as exc:
        raise ConsistencyError('Email is already assigned to another active employee') from exc


def set_employee_email(
    db: Session,
    employee: Employee,
    raw_email: str,
    *,
    cipher: FieldCipher,
    timeout_seconds: float | None = None,
) -> Employee:
    email = raw_email.strip()
    if not email:
        raise ValueError('Email is required')

    with store_deadline(db, timeout_seconds):
        _assert_email_available(db, normalize_email(email), cipher=cipher, employee_id=employee.employee_id)
        _write_email(db, employee, email, cipher=cipher)
    return employee


def create_employee(
    db: Session,
    *,
    employee_id: str,
    first_name: str,
    last_name: str,
    email: str,
    cipher: FieldCipher,
    branch_id: str | None = None,
    cycle_duration: dict[str, int] | None = None,
    timeout_seconds: float | None = None,
) -> Employee:
    email = email.strip()
    if not email:
        raise ValueError('Email is required')

    with store_deadline(db, timeout_seconds):
        existing = db.execute(select(Employee.id).where(Employee.employee_id == employee_id)).scalar_one_or_none()
        if existing is not None:
            raise ConsistencyError(f'Employee {employee_id} already exists')
        _assert_email_available(db, normalize_email(email), cipher=cipher, employee_id=None)

        envelope = cipher.encrypt(email)
        employee = Employee(
            employee_id=employee_id,
            first_name=first_name,
            last_name=last_name,
            email_scheme=envelope.scheme,
            email_value=envelope.payload,
            email_lookup_token=cipher.lookup_token(normalize_email(email)),
            branch_id=branch_id,
            cycle_duration=dict(cycle_duration) if cycle_duration is not None else None,
            active=True,
        )
        db.add(employee)
        try:
            db.flush()
        except IntegrityError as exc:
            raise ConsistencyError(f'Employee {employee_id} conflicts with an existing record') from exc
    return employee
