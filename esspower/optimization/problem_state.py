# esspower/optimization/problem_state.py
"""
Problem state shared by the solver, the validator and the extrema queries:
variable space, constraint store and per-cycle targets behind one
re-entrant lock.
"""

import logging
import threading
from typing import Dict, List, Optional

from ..schema import (
    Phase, Pwr, Relationship, Unit, UnitCapabilities, VariableKey,
    Coefficient, Constraint, ConstraintHandle
)
from .variables import VariableSpace
from .constraints import ConstraintStore
from .lp_interface import LPDataInterface

logger = logging.getLogger(__name__)


class ProblemState:

    def __init__(self, symmetric_mode: bool = False):
        self.lock = threading.RLock()
        self.variables = VariableSpace(symmetric_mode)
        self.constraints = ConstraintStore()
        self._targets: Dict[VariableKey, float] = {}

    # ========== Units ==========

    def add_unit(self, unit_id: str, capabilities: Optional[UnitCapabilities] = None):
        with self.lock:
            self.variables.add_unit(Unit(unit_id, capabilities or UnitCapabilities()))
            self._regenerate_persistent()
            logger.info(f"Added unit [{unit_id}] ({len(self.variables)} variables)")

    def remove_unit(self, unit_id: str):
        with self.lock:
            self.variables.remove_unit(unit_id)
            purged = self.constraints.purge_unit(unit_id)
            self._targets = {k: v for k, v in self._targets.items() if k.unit_id != unit_id}
            self._regenerate_persistent()
            logger.info(f"Removed unit [{unit_id}], purged {purged} transient constraints")

    def set_symmetric_mode(self, symmetric_mode: bool):
        with self.lock:
            if self.variables.set_symmetric_mode(symmetric_mode):
                self._regenerate_persistent()

    def _regenerate_persistent(self):
        self.constraints.set_persistent(self.variables.capability_constraints())

    # ========== Constraints ==========

    def add_constraint(self, constraint: Constraint) -> ConstraintHandle:
        with self.lock:
            self._check_references(constraint)
            return self.constraints.add(constraint)

    def remove_constraint(self, handle: ConstraintHandle) -> bool:
        with self.lock:
            return self.constraints.remove(handle)

    def _check_references(self, constraint: Constraint):
        if not constraint.coefficients:
            raise ValueError(f"Constraint without coefficients: {constraint}")
        for c in constraint.coefficients:
            self.variables.expand(c.unit_id, c.phase, c.pwr)

    def get_coefficient(self, unit_id: str, phase: Phase, pwr: Pwr, weight: float = 1.0) -> Coefficient:
        with self.lock:
            self.variables.get_unit(unit_id)
        return Coefficient(unit_id, Phase(phase), Pwr(pwr), weight)

    def create_simple_constraint(self, description: str, unit_id: str, phase: Phase, pwr: Pwr,
                                 relationship: Relationship, value: float) -> Constraint:
        """Single-coefficient constraint, not yet added to the store"""
        return Constraint(
            description,
            [self.get_coefficient(unit_id, phase, pwr)],
            relationship,
            value
        )

    def get_constraints_for_all_units(self) -> List[Constraint]:
        with self.lock:
            return self.constraints.all_constraints()

    # ========== Targets ==========

    def set_target(self, unit_id: str, phase: Phase, pwr: Pwr, value: float):
        with self.lock:
            self.variables.expand(unit_id, phase, pwr)
            self._targets[VariableKey(unit_id, Phase(phase), Pwr(pwr))] = float(value)

    def targets(self) -> Dict[VariableKey, float]:
        with self.lock:
            return dict(self._targets)

    # ========== Cycle ==========

    def initialize_cycle(self):
        """Wipe transient constraints and targets, re-sync the variable space"""
        with self.lock:
            self.constraints.clear_transient()
            self._targets.clear()
            self.variables.rebuild()
            self._regenerate_persistent()

    def build_interface(self, default_targets: Optional[Dict[VariableKey, float]] = None) -> LPDataInterface:
        with self.lock:
            return LPDataInterface(
                self.variables,
                self.constraints.all_constraints(),
                self._targets,
                default_targets
            )
