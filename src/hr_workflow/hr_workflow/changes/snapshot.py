from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping

from ..core.constants import PERCENT_PLACES
from ..core.enums import ReferenceKind
from ..core.exceptions import SubjectNotFound, ValidationError
from ..reference.model import SubjectRecord
from ..reference.repository import ReferenceStore
from .proposals import EMPLOYEE_FIELDS, Proposal

# Subject field -> (reference kind, display-name key).
REFERENCE_FIELDS: dict[str, tuple[ReferenceKind, str]] = {
    "position_id": (ReferenceKind.POSITION, "position_name"),
    "department_id": (ReferenceKind.DEPARTMENT, "department_name"),
    "company_id": (ReferenceKind.COMPANY, "company_name"),
    "grade_code": (ReferenceKind.SALARY_GRADE, "grade_name"),
}

_PCT = Decimal(1).scaleb(-PERCENT_PLACES)


@dataclass(frozen=True)
class Snapshot:
    subject: SubjectRecord
    previous_state: Mapping[str, Any]
    proposed_names: Mapping[str, Any]
    computed_deltas: Mapping[str, Any]


def _is_number(value: object) -> bool:
    return isinstance(value, (int, Decimal)) and not isinstance(value, bool)


def delta_prefix(field_key: str) -> str:
    return "salary" if field_key == "basic_salary" else field_key


def compute_deltas(previous: Mapping[str, Any], proposed: Mapping[str, Any]) -> dict[str, Any]:
    """Numeric differences for fields present on both sides.

    Reference ids are not quantities and never produce a delta.

    The percentage is None when the previous value is zero.
    """
    deltas: dict[str, Any] = {}
    for key, new in proposed.items():
        if key in REFERENCE_FIELDS:
            continue
        old = previous.get(key)
        if not (_is_number(old) and _is_number(new)):
            continue
        delta = Decimal(new) - Decimal(old)
        prefix = delta_prefix(key)
        deltas[f"{prefix}_delta"] = delta
        deltas[f"{prefix}_delta_pct"] = (delta / Decimal(old) * 100).quantize(_PCT) if old else None
    return deltas


def previous_state_of(subject: SubjectRecord, proposal: Proposal) -> dict[str, Any]:
    """Denormalized copy of every tracked field, ids and display names alike."""
    state: dict[str, Any] = {
        "employee_code": subject.employee_code,
        "employee_name": subject.name,
    }
    for key in EMPLOYEE_FIELDS:
        state[key] = subject.fields.get(key)
    for _, name_key in REFERENCE_FIELDS.values():
        state[name_key] = subject.display_names.get(name_key)
    for key in proposal.to_fields():
        if key not in state:
            state[key] = subject.fields.get(key)
    return state


class SnapshotEngine:
    """Captures the subject's state and the proposal's resolved names.

    Performs reads only.
    """

    def __init__(self, reference: ReferenceStore):
        self._reference = reference

    def resolve_names(self, proposal: Proposal) -> dict[str, Any]:
        names: dict[str, Any] = {}
        for key, value in proposal.to_fields().items():
            if key not in REFERENCE_FIELDS:
                continue
            kind, name_key = REFERENCE_FIELDS[key]
            name = self._reference.resolve_reference_entity(kind, value)
            if name is None:
                raise ValidationError(f"Unknown {kind.value}: {value}")
            names[name_key] = name
        return names

    def capture(self, subject_id: int, proposal: Proposal) -> Snapshot:
        subject = self._reference.resolve_subject(int(subject_id))
        if subject is None:
            raise SubjectNotFound(subject_id)

        previous = previous_state_of(subject, proposal)
        return Snapshot(
            subject=subject,
            previous_state=previous,
            proposed_names=self.resolve_names(proposal),
            computed_deltas=compute_deltas(previous, proposal.to_fields()),
        )
