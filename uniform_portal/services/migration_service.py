"""Explicit one-off migrations. Reads never rewrite records; these do."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from uniform_portal.config import CycleConfig
from uniform_portal.errors import CipherMismatchError, ConsistencyError
from uniform_portal.models import Employee
from uniform_portal.services.employee_directory import stored_email
from uniform_portal.services.field_cipher import DECRYPTION_FAILURES, FieldCipher, normalize_email

logger = structlog.get_logger()


@dataclass
class ReencryptionResult:
    scanned: int = 0
    reencrypted: int = 0
    tokens_backfilled: int = 0
    failed: dict[str, str] = field(default_factory=dict)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def reencrypt_employee_emails(
    db: Session,
    *,
    cipher: FieldCipher,
    batch_size: int = 500,
    dry_run: bool = False,
) -> ReencryptionResult:
    """Move legacy plaintext and old-scheme emails to the current scheme.

    Records already on the current scheme only get a missing lookup token
    filled in. A record that cannot be decrypted is reported in ``failed``
    and the batch carries on.
    """
    result = ReencryptionResult()
    stmt = select(Employee).order_by(Employee.id.asc()).execution_options(yield_per=batch_size)
    for employee in db.execute(stmt).scalars():
        result.scanned += 1
        try:
            decrypted = cipher.decrypt_with_status(stored_email(employee))
        except CipherMismatchError as exc:
            logger.warning('Cannot re-encrypt email', employee_id=employee.employee_id, scheme=exc.scheme)
            result.failed[employee.employee_id] = str(exc)
            continue
        except DECRYPTION_FAILURES as exc:
            logger.warning('Cannot decrypt email', employee_id=employee.employee_id, error=type(exc).__name__)
            result.failed[employee.employee_id] = 'undecryptable payload'
            continue

        token = cipher.lookup_token(normalize_email(decrypted.plaintext))
        if decrypted.needs_reencryption:
            result.reencrypted += 1
            if not dry_run:
                envelope = cipher.encrypt(decrypted.plaintext)
                employee.email_scheme = envelope.scheme
                employee.email_value = envelope.payload
                employee.email_lookup_token = token
                employee.updated_at = _now()
        elif employee.email_lookup_token != token:
            result.tokens_backfilled += 1
            if not dry_run:
                employee.email_lookup_token = token
                employee.updated_at = _now()

    if not dry_run:
        try:
            db.flush()
        except IntegrityError as exc:
            raise ConsistencyError('Re-encryption produced duplicate lookup tokens for active employees') from exc
    logger.info(
        'Email re-encryption pass finished',
        scanned=result.scanned,
        reencrypted=result.reencrypted,
        tokens_backfilled=result.tokens_backfilled,
        failed=len(result.failed),
        dry_run=dry_run,
    )
    return result


def backfill_cycle_durations(db: Session, *, config: CycleConfig, dry_run: bool = False) -> int:
    missing = [
        employee
        for employee in db.execute(select(Employee).order_by(Employee.id.asc())).scalars().all()
        if employee.cycle_duration is None
    ]
    if not dry_run:
        for employee in missing:
            employee.cycle_duration = dict(config.default_months)
            employee.updated_at = _now()
        db.flush()
    logger.info('Cycle duration backfill finished', updated=len(missing), dry_run=dry_run)
    return len(missing)
