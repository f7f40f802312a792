# esspower/optimization/constraints.py
"""
Constraint store, partitioned into persistent constraints (derived from unit
capabilities, replaced on every variable space rebuild) and transient
constraints (added by callers, wiped once per cycle).
"""

import itertools
import logging
from typing import Dict, List

from ..schema import Constraint, ConstraintHandle

logger = logging.getLogger(__name__)


class ConstraintStore:

    def __init__(self):
        self._persistent: List[Constraint] = []
        self._transient: Dict[int, Constraint] = {}
        self._ids = itertools.count(1)

    def __len__(self):
        return len(self._persistent) + len(self._transient)

    def add(self, constraint: Constraint) -> ConstraintHandle:
        handle = ConstraintHandle(next(self._ids))
        self._transient[handle.id] = constraint
        return handle

    def remove(self, handle: ConstraintHandle) -> bool:
        return self._transient.pop(handle.id, None) is not None

    def get(self, handle: ConstraintHandle) -> Constraint:
        return self._transient[handle.id]

    def clear_transient(self):
        if self._transient:
            logger.debug(f"Clearing {len(self._transient)} transient constraints")
        self._transient.clear()

    def set_persistent(self, constraints: List[Constraint]):
        self._persistent = list(constraints)

    def purge_unit(self, unit_id: str) -> int:
        """Drop every transient constraint referencing the unit"""
        stale = [
            handle_id for handle_id, c in self._transient.items()
            if unit_id in c.unit_ids()
        ]
        for handle_id in stale:
            del self._transient[handle_id]
        self._persistent = [c for c in self._persistent if unit_id not in c.unit_ids()]
        return len(stale)

    def persistent_constraints(self) -> List[Constraint]:
        return list(self._persistent)

    def transient_constraints(self) -> List[Constraint]:
        return list(self._transient.values())

    def all_constraints(self) -> List[Constraint]:
        return self._persistent + list(self._transient.values())
