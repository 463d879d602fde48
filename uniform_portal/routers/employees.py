from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from uniform_portal.config import CycleConfig
from uniform_portal.db import get_db
from uniform_portal.dependencies import get_client_ip, get_cycle_config, get_field_cipher
from uniform_portal.schemas import EligibilityOut, EmployeeOut
from uniform_portal.services.eligibility_service import evaluate_all
from uniform_portal.services.employee_directory import describe_employee, find_by_email, find_by_id
from uniform_portal.services.field_cipher import FieldCipher

router = APIRouter(prefix='/employees', tags=['employees'])
logger = structlog.get_logger()


@router.get('', response_model=EmployeeOut)
def employee_by_email(
    request: Request,
    email: str = Query(..., min_length=3),
    db: Session = Depends(get_db),
    cipher: FieldCipher = Depends(get_field_cipher),
    config: CycleConfig = Depends(get_cycle_config),
):
    employee = find_by_email(db, email, cipher=cipher)
    logger.info('Employee resolved by email', employee_id=employee.employee_id, ip=get_client_ip(request))
    return EmployeeOut.from_view(describe_employee(employee, cipher=cipher, config=config))


@router.get('/{employee_id}', response_model=EmployeeOut)
def employee_by_id(
    employee_id: str,
    db: Session = Depends(get_db),
    cipher: FieldCipher = Depends(get_field_cipher),
    config: CycleConfig = Depends(get_cycle_config),
):
    employee = find_by_id(db, employee_id)
    return EmployeeOut.from_view(describe_employee(employee, cipher=cipher, config=config))


@router.get('/{employee_id}/eligibility', response_model=EligibilityOut)
def employee_eligibility(
    employee_id: str,
    as_of: datetime | None = Query(None),
    db: Session = Depends(get_db),
    config: CycleConfig = Depends(get_cycle_config),
):
    employee = find_by_id(db, employee_id)
    report = evaluate_all(db, employee, as_of or datetime.now(tz=timezone.utc), config=config)
    return EligibilityOut.from_report(report)
