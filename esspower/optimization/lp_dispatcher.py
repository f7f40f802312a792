# esspower/optimization/lp_dispatcher.py
"""
LP/QP dispatcher for the power allocation problem.

Builds a gurobipy model over one free variable per (unit, phase, power type)
from the parameter dictionary produced by LPDataInterface. Capability limits
arrive as ordinary constraint rows, so no variable bounds are set here.
Strategies attach their own objective before calling solve().
"""

import numpy as np
import gurobipy as gp
from gurobipy import GRB
from typing import Dict, Any, Optional, Sequence
from dataclasses import dataclass
import logging

from ..schema import Relationship

logger = logging.getLogger(__name__)

# Half-width of the band used to pin an already decided variable
PIN_TOLERANCE = 1e-6

# Per-index preference for rounding up earlier variables on equal fractions
ROUNDING_TIE_BREAK = 1e-6


@dataclass
class DispatchResult:
    """Container for one backend solve"""
    status: int
    solve_time: float
    values: Optional[np.ndarray]       # x, in variable index order
    objective_value: Optional[float]

    @property
    def solved(self) -> bool:
        return self.values is not None


class LPDispatcher:
    """
    Gurobi model over the current variables and constraints.
    """

    def __init__(self, params: Dict[str, Any], time_limit: Optional[float] = None,
                 name: str = "EssPower"):
        """
        Args:
            params: Dictionary from LPDataInterface.to_lp_params()
            time_limit: Maximum solve time in seconds
            name: Model name
        """
        self.params = params
        self.n = params["n_vars"]

        self.model = gp.Model(name)
        self.model.setParam('OutputFlag', 0)
        if time_limit:
            self.model.setParam('TimeLimit', time_limit)

        self.vars = {}

        self._build_variables()
        self._build_constraints()

    def _build_variables(self):
        self.vars['x'] = self.model.addVars(self.n, lb=-GRB.INFINITY, ub=GRB.INFINITY, name="x")

    def _build_constraints(self):
        A = self.params["A"]
        rhs = self.params["rhs"]
        x = self.vars['x']

        for row, sense in enumerate(self.params["senses"]):
            expr = gp.quicksum(float(A[row, j]) * x[j] for j in np.flatnonzero(A[row]))
            value = float(rhs[row])
            name = f"c_{row}"

            if sense == Relationship.EQUALS:
                self.model.addConstr(expr == value, name=name)
            elif sense == Relationship.GREATER_OR_EQUALS:
                self.model.addConstr(expr >= value, name=name)
            elif sense == Relationship.LESS_OR_EQUALS:
                self.model.addConstr(expr <= value, name=name)
            else:
                raise ValueError(f"Unknown relationship: {sense}")

    # ========== Objective helpers ==========

    def deviation(self, targets: np.ndarray, indices: Optional[Sequence[int]] = None) -> gp.QuadExpr:
        """Sum of squared deviations from the targets"""
        x = self.vars['x']
        if indices is None:
            indices = range(self.n)
        return gp.quicksum((x[i] - float(targets[i])) * (x[i] - float(targets[i])) for i in indices)

    def total(self, indices: Sequence[int], weights: Optional[Sequence[float]] = None) -> gp.LinExpr:
        x = self.vars['x']
        if weights is None:
            weights = [1.0] * len(indices)
        return gp.quicksum(float(w) * x[i] for i, w in zip(indices, weights))

    def set_objective(self, expr, sense=GRB.MINIMIZE):
        self.model.setObjective(expr, sense)

    def pin(self, index: int, value: float):
        """Fix a variable to a decided value"""
        var = self.vars['x'][index]
        var.LB = value - PIN_TOLERANCE
        var.UB = value + PIN_TOLERANCE

    def round_to_integers(self, values: np.ndarray) -> Optional[np.ndarray]:
        """
        Integer assignment next to a continuous solution that still satisfies
        every constraint row. Each variable goes to its floor or its ceiling;
        the largest fractional parts are rounded up first, ties in index order.

        Args:
            values: Continuous solution in variable index order

        Returns:
            Integer-valued array, or None if no such assignment exists
        """
        x = self.vars['x']
        floors = np.floor(np.round(values, 6))
        fractions = values - floors

        self.vars['up'] = self.model.addVars(self.n, vtype=GRB.BINARY, name="up")
        up = self.vars['up']
        for i in range(self.n):
            self.model.addConstr(x[i] == float(floors[i]) + up[i], name=f"round_{i}")

        self.model.setParam('MIPGap', 0)
        self.set_objective(gp.quicksum(
            (1 - 2 * float(fractions[i]) - ROUNDING_TIE_BREAK * (self.n - i)) * up[i]
            for i in range(self.n)
        ))

        result = self.solve()
        if not result.solved:
            return None
        return np.round(result.values)

    def distinguish_unbounded(self):
        """Make the backend report INFEASIBLE or UNBOUNDED instead of INF_OR_UNBD"""
        self.model.setParam('DualReductions', 0)

    # ========== Solve ==========

    def solve(self) -> DispatchResult:
        self.model.optimize()
        status = self.model.Status

        if status == GRB.OPTIMAL:
            x = self.vars['x']
            values = np.array([x[i].X for i in range(self.n)])
            objective = self.model.ObjVal
        else:
            values = None
            objective = None
            logger.debug(f"Backend finished with status {status}")

        return DispatchResult(
            status=status,
            solve_time=self.model.Runtime,
            values=values,
            objective_value=objective
        )

    def close(self):
        self.model.dispose()
