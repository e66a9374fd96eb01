from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class SubjectRecord:
    """Point-in-time view of an employee as the workflow sees it.

    ``fields`` is a flat mapping of tracked field keys (``basic_salary``,
    ``allowance.meal`` ...) to current values; ``display_names`` carries the
    names of the referenced entities (``position_name`` ...).
    """

    subject_id: int
    employee_code: str
    name: str
    tenant_id: int
    fields: Mapping[str, Any] = field(default_factory=dict)
    display_names: Mapping[str, Optional[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
        object.__setattr__(self, "display_names", MappingProxyType(dict(self.display_names)))


@dataclass(frozen=True)
class Department:
    dept_id: int
    dept_name: str
    parent_id: Optional[int] = None
    company_id: Optional[int] = None
