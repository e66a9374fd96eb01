from __future__ import annotations

from typing import Iterable, Optional

from ..core.exceptions import NotFound, ValidationError
from .model import Department


class DepartmentIndex:
    """Parent index over the department hierarchy.

    Cycles are rejected when a parent is assigned, so reads can walk the
    chain without guarding against loops.
    """

    def __init__(self, departments: Iterable[Department]):
        self._by_id = {d.dept_id: d for d in departments}
        self._parent = {d.dept_id: d.parent_id for d in self._by_id.values()}

    def ancestors(self, dept_id: int) -> list[int]:
        out: list[int] = []
        current = self._parent.get(dept_id)
        while current is not None:
            out.append(current)
            current = self._parent.get(current)
        return out

    def path_names(self, dept_id: int) -> list[str]:
        chain = list(reversed(self.ancestors(dept_id))) + [dept_id]
        return [self._by_id[i].dept_name for i in chain if i in self._by_id]

    def check_parent(self, dept_id: int, parent_id: Optional[int]) -> None:
        if dept_id not in self._by_id:
            raise NotFound("Department", dept_id)
        if parent_id is None:
            return
        if parent_id not in self._by_id:
            raise NotFound("Department", parent_id)
        if parent_id == dept_id or dept_id in self.ancestors(parent_id):
            raise ValidationError(f"Department {parent_id} cannot be the parent of {dept_id}: cycle")

    def assign_parent(self, dept_id: int, parent_id: Optional[int]) -> None:
        self.check_parent(dept_id, parent_id)
        self._parent[dept_id] = parent_id
