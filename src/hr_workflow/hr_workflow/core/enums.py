from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Actor roles supplied by the authorization layer."""

    ADMIN = "admin"
    HR = "hr"
    STAFF = "staff"
    SYSTEM = "system"


class ChangeStatus(str, Enum):
    """Lifecycle states of a change request."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    APPLIED = "applied"
    CANCELLED = "cancelled"


class ChangeKind(str, Enum):
    # Employee movements
    PROMOTION = "promotion"
    DEMOTION = "demotion"
    TRANSFER = "transfer"
    MUTATION = "mutation"
    SALARY_ADJUSTMENT = "salary_adjustment"
    GRADE_CHANGE = "grade_change"
    STATUS_CHANGE = "status_change"
    DEPARTMENT_CHANGE = "department_change"
    POSITION_CHANGE = "position_change"
    COMPANY_TRANSFER = "company_transfer"

    # Compensation
    PAYROLL_ADJUSTMENT = "payroll_adjustment"
    ALLOWANCE = "allowance"


class ReferenceKind(str, Enum):
    POSITION = "position"
    DEPARTMENT = "department"
    COMPANY = "company"
    SALARY_GRADE = "salary_grade"


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    DELETE = "delete"
    APPLY = "apply"


class AdjustmentType(str, Enum):
    BONUS = "bonus"
    ALLOWANCE = "allowance"
    REIMBURSEMENT = "reimbursement"
    DEDUCTION = "deduction"
    PENALTY = "penalty"
    LOAN = "loan"
    ADVANCE = "advance"
    CORRECTION = "correction"
    INCENTIVE = "incentive"
    COMMISSION = "commission"


class AllowanceType(str, Enum):
    TRANSPORT = "transport"
    MEAL = "meal"
    HOUSING = "housing"
    COMMUNICATION = "communication"
    MEDICAL = "medical"
    POSITION = "position"
    PERFORMANCE = "performance"
    ATTENDANCE = "attendance"
    SHIFT = "shift"
    REMOTE = "remote"
    THR = "thr"
    BONUS = "bonus"
    OTHER = "other"


class Frequency(str, Enum):
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    DAILY = "daily"
    ONE_TIME = "one_time"
