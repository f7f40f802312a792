# esspower/optimization/strategies.py
"""
Solver strategies: named policies for picking one assignment among the
feasible ones. Every strategy ends on a strictly convex objective, so the
final optimum is unique and a repeated run on the same
input gives the same setpoints.
"""

from typing import Dict, Any, Optional
import logging
import numpy as np

from ..schema import Pwr, SolverStrategy
from .lp_dispatcher import LPDispatcher

logger = logging.getLogger(__name__)

# Weight of the target term in the near-equal objective
NEAR_EQUAL_TARGET_WEIGHT = 1e-3

# Band in W around the unit total differences fixed by equal-distribution
EQUAL_TOLERANCE = 1e-3


class Strategy:
    """Base class. Subclasses attach an objective in _run and solve."""

    name: SolverStrategy = SolverStrategy.NONE

    def __init__(self, time_limit: Optional[float] = None):
        self.time_limit = time_limit

    def attempt(self, params: Dict[str, Any]) -> Optional[np.ndarray]:
        """
        Try to solve the problem.

        Args:
            params: Dictionary from LPDataInterface.to_lp_params()

        Returns:
            Setpoints in variable index order, or None if this strategy found no solution
        """
        dispatcher = LPDispatcher(params, self.time_limit, name=self.name.value)
        try:
            return self._run(dispatcher, params)
        finally:
            dispatcher.close()

    def _run(self, dispatcher: LPDispatcher, params: Dict[str, Any]) -> Optional[np.ndarray]:
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}({self.name.value})"


class MoveTowardsTarget(Strategy):
    """Minimize the sum of squared deviations from the targets"""

    name = SolverStrategy.MOVE_TOWARDS_TARGET

    def _run(self, dispatcher, params):
        dispatcher.set_objective(dispatcher.deviation(params["targets"]))
        return dispatcher.solve().values


def unit_spread(dispatcher: LPDispatcher, params: Dict[str, Any]):
    """Sum over power types of the squared pairwise differences of unit totals"""
    spread = 0
    for pwr in Pwr:
        groups = params["unit_totals"][pwr]
        for a in range(len(groups)):
            for b in range(a + 1, len(groups)):
                diff = dispatcher.total(groups[a][1]) - dispatcher.total(groups[b][1])
                spread += diff * diff
    return spread


class EqualDistribution(Strategy):
    """
    Share the allocation equally between units, as far as the constraints
    allow. Units held at a limit keep it; the rest end up with equal totals.

    Stage 1 minimizes the pairwise spread of unit totals. The optimal
    differences between totals are unique, so stage 2 fixes them and moves
    the remaining freedom (common level, split over phases) towards the
    targets. Fails only when the constraint set is infeasible.
    """

    name = SolverStrategy.EQUAL_DISTRIBUTION

    def _run(self, dispatcher, params):
        has_pairs = any(len(params["unit_totals"][pwr]) > 1 for pwr in Pwr)

        if has_pairs:
            dispatcher.set_objective(unit_spread(dispatcher, params))
            result = dispatcher.solve()
            if not result.solved:
                return None
            self._fix_differences(dispatcher, params, result.values)

        dispatcher.set_objective(dispatcher.deviation(params["targets"]))
        return dispatcher.solve().values

    @staticmethod
    def _fix_differences(dispatcher, params, values):
        for pwr in Pwr:
            groups = params["unit_totals"][pwr]
            if len(groups) < 2:
                continue
            _, first = groups[0]
            first_total = values[first].sum()
            for unit_id, indices in groups[1:]:
                difference = float(values[indices].sum() - first_total)
                expr = dispatcher.total(indices) - dispatcher.total(first)
                dispatcher.model.addConstr(expr >= difference - EQUAL_TOLERANCE,
                                           name=f"equal_lo_{pwr.value}_{unit_id}")
                dispatcher.model.addConstr(expr <= difference + EQUAL_TOLERANCE,
                                           name=f"equal_hi_{pwr.value}_{unit_id}")


class NearEqualDistribution(Strategy):
    """Penalize differences between unit totals instead of forbidding them"""

    name = SolverStrategy.NEAR_EQUAL_DISTRIBUTION

    def _run(self, dispatcher, params):
        dispatcher.set_objective(
            unit_spread(dispatcher, params)
            + NEAR_EQUAL_TARGET_WEIGHT * dispatcher.deviation(params["targets"])
        )
        return dispatcher.solve().values


class MoveTowardsTargetInOrder(Strategy):
    """
    Move each variable as close to its target as the others allow, in index
    order, pinning each result before the next. Units registered earlier win.
    """

    name = SolverStrategy.MOVE_TOWARDS_TARGET_IN_ORDER

    def _run(self, dispatcher, params):
        targets = params["targets"]
        values = np.zeros(dispatcher.n)

        for i in range(dispatcher.n):
            dispatcher.set_objective(dispatcher.deviation(targets, [i]))
            result = dispatcher.solve()
            if not result.solved:
                logger.debug(f"{self.name.value}: no solution at variable {params['keys'][i]}")
                return None
            values[i] = result.values[i]
            dispatcher.pin(i, values[i])

        return values


class AllConstraints(Strategy):
    """Plain feasibility; picks the assignment closest to zero"""

    name = SolverStrategy.ALL_CONSTRAINTS

    def _run(self, dispatcher, params):
        dispatcher.set_objective(dispatcher.deviation(np.zeros(dispatcher.n)))
        return dispatcher.solve().values
