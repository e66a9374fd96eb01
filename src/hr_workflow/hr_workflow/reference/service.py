from __future__ import annotations

import logging
from typing import Optional

from ..core.exceptions import ValidationError
from .department_tree import DepartmentIndex
from .repository import DepartmentRepository

logger = logging.getLogger(__name__)


class DepartmentService:
    def __init__(self, departments: DepartmentRepository):
        self._departments = departments

    def index(self) -> DepartmentIndex:
        return DepartmentIndex(self._departments.list_all())

    def assign_parent(self, *, dept_id: int, parent_id: Optional[int]) -> None:
        self.index().check_parent(int(dept_id), parent_id)
        if not self._departments.set_parent(int(dept_id), parent_id):
            raise ValidationError("Updating the department parent failed")
        logger.info("department parent assigned dept_id=%s parent_id=%s", dept_id, parent_id)

    def path_names(self, dept_id: int) -> list[str]:
        return self.index().path_names(int(dept_id))
