# esspower/optimization/lp_interface.py
"""
Clean interface between the live problem state and the LP/QP backend.
Flattens the variable space and constraint set into numeric arrays.
"""

from typing import Dict, Any, List, Optional
import numpy as np

from ..schema import Constraint, Pwr, VariableKey
from .variables import VariableSpace


class LPDataInterface:
    """Snapshot of variables, constraints and targets in matrix form"""

    def __init__(self, variables: VariableSpace, constraints: List[Constraint],
                 targets: Optional[Dict[VariableKey, float]] = None,
                 default_targets: Optional[Dict[VariableKey, float]] = None):
        """
        Args:
            variables: Current variable space
            constraints: Persistent and transient constraints, in that order
            targets: Explicit per-cycle targets, keyed by stable key
            default_targets: Fallback targets (usually the last applied setpoints)
        """
        self.variables = variables
        self.constraints = list(constraints)
        self.targets = dict(targets or {})
        self.default_targets = dict(default_targets or {})
        self.n = len(variables)

    def to_lp_params(self) -> Dict[str, Any]:
        """Convert the snapshot to the backend parameter dictionary"""
        variables = self.variables.variables
        m = len(self.constraints)

        params = {
            "n_vars": self.n,
            "n_constraints": m,
            "keys": [v.key for v in variables],
        }

        # =================================================================
        # CONSTRAINT MATRIX  A x (sense) rhs
        # =================================================================
        A = np.zeros((m, self.n))
        rhs = np.zeros(m)
        senses = []
        descriptions = []

        for row, constraint in enumerate(self.constraints):
            for coefficient in constraint.coefficients:
                for variable, multiplier in self.variables.expand(
                        coefficient.unit_id, coefficient.phase, coefficient.pwr):
                    A[row, variable.index] += coefficient.weight * multiplier
            rhs[row] = constraint.value
            senses.append(constraint.relationship)
            descriptions.append(constraint.description)

        params.update({
            "A": A,
            "rhs": rhs,
            "senses": senses,
            "descriptions": descriptions,
        })

        # =================================================================
        # TARGETS
        # =================================================================
        params["targets"] = self._build_targets(variables)

        # =================================================================
        # UNIT GROUPINGS (per power type, indices summing to each unit's total)
        # =================================================================
        unit_totals = {pwr: [] for pwr in Pwr}
        for unit in self.variables.units:
            for pwr in Pwr:
                indices = [
                    v.index for v in variables
                    if v.unit_id == unit.unit_id and v.pwr == pwr
                ]
                unit_totals[pwr].append((unit.unit_id, indices))
        params["unit_totals"] = unit_totals

        return params

    def _build_targets(self, variables) -> np.ndarray:
        targets = np.zeros(self.n)
        for v in variables:
            targets[v.index] = self.default_targets.get(v.key, 0.0)

        for key, value in self.targets.items():
            terms = self.variables.expand(key.unit_id, key.phase, key.pwr)
            if len(terms) == 1:
                variable, multiplier = terms[0]
                targets[variable.index] = value / multiplier
            else:
                for variable, _ in terms:
                    targets[variable.index] = value / len(terms)
        return targets

    def get_problem_summary(self) -> Dict[str, Any]:
        """Get summary of the snapshot for logging"""
        return {
            "num_units": len(self.variables.units),
            "num_variables": self.n,
            "num_constraints": len(self.constraints),
            "num_targets": len(self.targets),
            "symmetric_mode": self.variables.symmetric_mode,
        }
