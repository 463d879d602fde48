from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel

from uniform_portal.services.eligibility_service import EligibilityDecision, EligibilityReport
from uniform_portal.services.employee_directory import EmployeeView


class EmployeeOut(BaseModel):
    employeeId: str
    firstName: str
    lastName: str
    email: str
    branchId: Optional[str] = None
    cycleDuration: Dict[str, int]
    cycleDurationIsDefault: bool
    active: bool
    needsReencryption: bool

    @classmethod
    def from_view(cls, view: EmployeeView) -> EmployeeOut:
        return cls(
            employeeId=view.employee_id,
            firstName=view.first_name,
            lastName=view.last_name,
            email=view.email,
            branchId=view.branch_id,
            cycleDuration=view.cycle_duration,
            cycleDurationIsDefault=view.cycle_duration_is_default,
            active=view.active,
            needsReencryption=view.needs_reencryption,
        )


class DecisionOut(BaseModel):
    category: str
    lastDeliveredAt: Optional[datetime] = None
    cycleMonths: int
    dueAt: datetime
    isEligible: bool

    @classmethod
    def from_decision(cls, decision: EligibilityDecision) -> DecisionOut:
        return cls(
            category=decision.category,
            lastDeliveredAt=decision.last_delivered_at,
            cycleMonths=decision.cycle_months,
            dueAt=decision.due_at,
            isEligible=decision.is_eligible,
        )


class EligibilityOut(BaseModel):
    employeeId: str
    asOf: datetime
    decisions: Dict[str, DecisionOut]
    errors: Dict[str, str]

    @classmethod
    def from_report(cls, report: EligibilityReport) -> EligibilityOut:
        return cls(
            employeeId=report.employee_id,
            asOf=report.as_of,
            decisions={category: DecisionOut.from_decision(d) for category, d in report.decisions.items()},
            errors={category: str(exc) for category, exc in report.errors.items()},
        )
