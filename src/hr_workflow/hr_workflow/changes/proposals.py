"""Typed proposed-state variants, one per family of change kinds.

Every variant knows which subject fields it writes (``to_fields``) and how
to rebuild itself from a loose payload (``from_payload``), so request bodies
and stored JSON go through the same validation.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Mapping, Optional

from ..common.validators import (
    optional_text,
    require_pay_period,
    require_positive,
    require_positive_int,
    to_decimal,
)
from ..core.constants import ADJUSTMENT_FIELD_PREFIX, ALLOWANCE_FIELD_PREFIX, MONEY_PLACES
from ..core.enums import AdjustmentType, AllowanceType, ChangeKind, Frequency
from ..core.exceptions import ValidationError

_CENT = Decimal(1).scaleb(-MONEY_PLACES)

EMPLOYEE_FIELDS = (
    "position_id",
    "department_id",
    "company_id",
    "basic_salary",
    "grade_code",
    "employment_status",
)


def _blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _opt_id(payload: Mapping[str, Any], name: str) -> Optional[int]:
    value = payload.get(name)
    return None if _blank(value) else require_positive_int(value, name)


def _opt_money(payload: Mapping[str, Any], name: str) -> Optional[Decimal]:
    value = payload.get(name)
    if _blank(value):
        return None
    return require_positive(to_decimal(value, name), name).quantize(_CENT)


def _money(payload: Mapping[str, Any], name: str) -> Decimal:
    value = _opt_money(payload, name)
    if value is None:
        raise ValidationError(f"{name} is required")
    return value


def _enum(enum_cls: type[Enum], value: object, name: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Invalid {name}: {value!r}")


def _as_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


class Proposal:
    kinds: ClassVar[tuple[ChangeKind, ...]] = ()
    derived: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Proposal":
        raise NotImplementedError

    @classmethod
    def _reject_unknown(cls, payload: Mapping[str, Any]) -> None:
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(payload) - known)
        if unknown:
            raise ValidationError(f"Unknown fields for {cls.__name__}: {', '.join(unknown)}")

    def to_fields(self) -> dict[str, Any]:
        """Subject field keys written by this proposal, with their new values."""
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in EMPLOYEE_FIELDS and value is not None:
                out[f.name] = value
        return out

    def to_payload(self) -> dict[str, Any]:
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None and f.name not in self.derived:
                out[f.name] = value
        return out

    def merge(self, patch: Mapping[str, Any]) -> "Proposal":
        payload = self.to_payload()
        payload.update(patch)
        return type(self).from_payload(payload)


@dataclass(frozen=True)
class PlacementChange(Proposal):
    kinds: ClassVar[tuple[ChangeKind, ...]] = (
        ChangeKind.PROMOTION,
        ChangeKind.DEMOTION,
        ChangeKind.POSITION_CHANGE,
        ChangeKind.GRADE_CHANGE,
    )

    position_id: Optional[int] = None
    department_id: Optional[int] = None
    basic_salary: Optional[Decimal] = None
    grade_code: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "PlacementChange":
        cls._reject_unknown(payload)
        proposal = cls(
            position_id=_opt_id(payload, "position_id"),
            department_id=_opt_id(payload, "department_id"),
            basic_salary=_opt_money(payload, "basic_salary"),
            grade_code=optional_text(payload.get("grade_code"), "grade_code"),
        )
        if not proposal.to_fields():
            raise ValidationError("At least one change is required")
        return proposal


@dataclass(frozen=True)
class TransferChange(Proposal):
    kinds: ClassVar[tuple[ChangeKind, ...]] = (
        ChangeKind.TRANSFER,
        ChangeKind.MUTATION,
        ChangeKind.DEPARTMENT_CHANGE,
        ChangeKind.COMPANY_TRANSFER,
    )

    company_id: Optional[int] = None
    department_id: Optional[int] = None
    position_id: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TransferChange":
        cls._reject_unknown(payload)
        proposal = cls(
            company_id=_opt_id(payload, "company_id"),
            department_id=_opt_id(payload, "department_id"),
            position_id=_opt_id(payload, "position_id"),
        )
        if not proposal.to_fields():
            raise ValidationError("At least one change is required")
        return proposal


@dataclass(frozen=True)
class SalaryChange(Proposal):
    kinds: ClassVar[tuple[ChangeKind, ...]] = (ChangeKind.SALARY_ADJUSTMENT,)

    basic_salary: Decimal
    grade_code: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SalaryChange":
        cls._reject_unknown(payload)
        return cls(
            basic_salary=_money(payload, "basic_salary"),
            grade_code=optional_text(payload.get("grade_code"), "grade_code"),
        )


@dataclass(frozen=True)
class StatusChange(Proposal):
    kinds: ClassVar[tuple[ChangeKind, ...]] = (ChangeKind.STATUS_CHANGE,)

    employment_status: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "StatusChange":
        cls._reject_unknown(payload)
        status = optional_text(payload.get("employment_status"), "employment_status")
        if status is None:
            raise ValidationError("employment_status is required")
        return cls(employment_status=status)


@dataclass(frozen=True)
class PayrollAdjustmentChange(Proposal):
    """One-off or recurring payroll line for a pay period.

    Loan and advance adjustments carrying both a total and an installment
    amount are paid in installments: the line amount becomes the
    installment and the adjustment is recurring.
    """

    kinds: ClassVar[tuple[ChangeKind, ...]] = (ChangeKind.PAYROLL_ADJUSTMENT,)
    derived: ClassVar[tuple[str, ...]] = ("total_installments",)

    adjustment_type: AdjustmentType
    amount: Decimal
    pay_period: str
    is_recurring: bool = False
    total_loan_amount: Optional[Decimal] = None
    installment_amount: Optional[Decimal] = None
    total_installments: Optional[int] = None

    @property
    def field_key(self) -> str:
        return f"{ADJUSTMENT_FIELD_PREFIX}{self.pay_period}.{self.adjustment_type.value}"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "PayrollAdjustmentChange":
        cls._reject_unknown(payload)
        adjustment_type = _enum(AdjustmentType, payload.get("adjustment_type"), "adjustment_type")
        pay_period = require_pay_period(payload.get("pay_period"))
        total = _opt_money(payload, "total_loan_amount")
        installment = _opt_money(payload, "installment_amount")
        is_recurring = _as_bool(payload.get("is_recurring", False))

        if adjustment_type in (AdjustmentType.LOAN, AdjustmentType.ADVANCE) and total and installment:
            return cls(
                adjustment_type=adjustment_type,
                amount=installment,
                pay_period=pay_period,
                is_recurring=True,
                total_loan_amount=total,
                installment_amount=installment,
                total_installments=math.ceil(total / installment),
            )

        return cls(
            adjustment_type=adjustment_type,
            amount=_money(payload, "amount"),
            pay_period=pay_period,
            is_recurring=is_recurring,
        )

    def to_fields(self) -> dict[str, Any]:
        return {self.field_key: self.amount}


@dataclass(frozen=True)
class AllowanceChange(Proposal):
    kinds: ClassVar[tuple[ChangeKind, ...]] = (ChangeKind.ALLOWANCE,)

    allowance_type: AllowanceType
    amount: Decimal
    frequency: Frequency = Frequency.MONTHLY

    @property
    def field_key(self) -> str:
        return f"{ALLOWANCE_FIELD_PREFIX}{self.allowance_type.value}"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AllowanceChange":
        cls._reject_unknown(payload)
        frequency = payload.get("frequency") or Frequency.MONTHLY.value
        return cls(
            allowance_type=_enum(AllowanceType, payload.get("allowance_type"), "allowance_type"),
            amount=_money(payload, "amount"),
            frequency=_enum(Frequency, frequency, "frequency"),
        )

    def to_fields(self) -> dict[str, Any]:
        return {self.field_key: self.amount}


PROPOSAL_TYPES: dict[ChangeKind, type[Proposal]] = {}
for _variant in (
    PlacementChange,
    TransferChange,
    SalaryChange,
    StatusChange,
    PayrollAdjustmentChange,
    AllowanceChange,
):
    for _kind in _variant.kinds:
        PROPOSAL_TYPES[_kind] = _variant


def parse_proposal(change_kind: ChangeKind, payload: Optional[Mapping[str, Any]]) -> Proposal:
    if not isinstance(payload, Mapping):
        raise ValidationError("proposed_state must be an object")
    return PROPOSAL_TYPES[change_kind].from_payload(payload)
