from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, Sequence

from ..core.enums import ReferenceKind
from .model import Department, SubjectRecord


class ReferenceStore(Protocol):
    """Employee and reference-entity lookups owned by the CRUD layer."""

    def resolve_subject(self, subject_id: int) -> Optional[SubjectRecord]:
        raise NotImplementedError

    def resolve_reference_entity(self, kind: ReferenceKind, entity_id: Any) -> Optional[str]:
        """Return the current display name, or None when the entity is gone."""

        raise NotImplementedError

    def apply_changes(self, subject_id: int, changes: Mapping[str, Any]) -> SubjectRecord:
        """Write ``changes`` onto the subject and return its new state."""

        raise NotImplementedError


class DepartmentRepository(Protocol):
    def list_all(self) -> Sequence[Department]:
        raise NotImplementedError

    def get_by_id(self, dept_id: int) -> Optional[Department]:
        raise NotImplementedError

    def set_parent(self, dept_id: int, parent_id: Optional[int]) -> bool:
        raise NotImplementedError
