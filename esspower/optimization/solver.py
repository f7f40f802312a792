# esspower/optimization/solver.py
"""
Feasibility and optimization engine.

One invocation walks IDLE -> BUILDING -> SOLVING -> SOLVED | INFEASIBLE -> IDLE
while holding the problem-state lock, so constraint and unit changes from
other threads wait until the invocation is done.
"""

import math
import time
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
import gurobipy as gp
from gurobipy import GRB

from ..schema import Goal, Phase, Pwr, SolverStrategy, VariableKey, FailurePolicy
from ..exceptions import Infeasible, UnknownVariable
from ..utils.validators import debug_log_constraints
from .problem_state import ProblemState
from .lp_dispatcher import LPDispatcher
from .registry import strategy_chain

logger = logging.getLogger(__name__)

DEFAULT_STRATEGY = SolverStrategy.MOVE_TOWARDS_TARGET


class SolverState(Enum):
    IDLE = "idle"
    BUILDING = "building"
    SOLVING = "solving"
    SOLVED = "solved"
    INFEASIBLE = "infeasible"


@dataclass
class SolveResult:
    """Outcome of one solve() call"""
    solved: bool
    duration_ms: int
    strategy: SolverStrategy
    setpoints: Dict[VariableKey, int] = field(default_factory=dict)

    def get(self, unit_id: str, phase: Phase = Phase.ALL, pwr: Pwr = Pwr.ACTIVE) -> int:
        key = VariableKey(unit_id, Phase(phase), Pwr(pwr))
        try:
            return self.setpoints[key]
        except KeyError:
            raise UnknownVariable(key) from None


SolvedCallback = Callable[[bool, int, SolverStrategy], None]
ApplyCallback = Callable[[str, Dict[Tuple[Phase, Pwr], int]], None]


class Solver:

    def __init__(self, problem: ProblemState,
                 strategy: SolverStrategy = DEFAULT_STRATEGY,
                 debug_mode: bool = False,
                 fallback: bool = True,
                 failure_policy: FailurePolicy = "keep-previous",
                 time_limit: Optional[float] = 1.0):
        """
        Args:
            problem: Shared problem state
            strategy: Strategy tried first
            debug_mode: Log problem summaries and constraint listings
            fallback: Try the remaining strategies when the configured one fails
            failure_policy: 'keep-previous' or 'zero' setpoints after a failed solve
            time_limit: Per-attempt backend time limit in seconds
        """
        self.problem = problem
        self.strategy = SolverStrategy(strategy)
        self.debug_mode = debug_mode
        self.fallback = fallback
        self.failure_policy = failure_policy
        self.time_limit = time_limit

        self.state = SolverState.IDLE
        self._setpoints: Dict[VariableKey, int] = {}
        self._on_solved: List[SolvedCallback] = []
        self._on_apply: List[ApplyCallback] = []

    def on_solved(self, callback: SolvedCallback):
        self._on_solved.append(callback)

    def on_apply(self, callback: ApplyCallback):
        self._on_apply.append(callback)

    def set_strategy(self, strategy: SolverStrategy):
        self.strategy = SolverStrategy(strategy)

    def set_debug_mode(self, debug_mode: bool):
        self.debug_mode = debug_mode

    def _transition(self, state: SolverState):
        logger.debug(f"Solver state {self.state.value} -> {state.value}")
        self.state = state

    def _build_params(self):
        interface = self.problem.build_interface(self._setpoints)
        params = interface.to_lp_params()
        if self.debug_mode:
            logger.info(f"Problem: {interface.get_problem_summary()}")
        return params

    # ========== Feasibility ==========

    def is_solvable_or_error(self):
        """
        Check that the current constraint set has any solution. No objective
        is optimized and no setpoints are touched.

        Raises:
            Infeasible: if no assignment satisfies all constraints
        """
        with self.problem.lock:
            self._transition(SolverState.BUILDING)
            try:
                params = self._build_params()
                self._transition(SolverState.SOLVING)
                dispatcher = LPDispatcher(params, self.time_limit, name="feasibility")
                try:
                    result = dispatcher.solve()
                finally:
                    dispatcher.close()
            finally:
                self._transition(SolverState.IDLE)

        if not result.solved:
            raise Infeasible(f"Constraint set is not solvable (status {result.status})")

    # ========== Solve ==========

    def solve(self) -> SolveResult:
        """
        Solve the current problem and apply the setpoints.

        Never raises for infeasibility: a failed cycle is reported with
        solved=False and handled by the failure policy.
        """
        start = time.monotonic()

        with self.problem.lock:
            self._transition(SolverState.BUILDING)
            try:
                params = self._build_params()

                if params["n_vars"] == 0:
                    solved, used, setpoints = True, SolverStrategy.NONE, {}
                    self._transition(SolverState.SOLVED)
                else:
                    self._transition(SolverState.SOLVING)
                    solved, used, setpoints = self._run_strategies(params)

                    if solved:
                        self._transition(SolverState.SOLVED)
                        self._apply(setpoints)
                    else:
                        self._transition(SolverState.INFEASIBLE)
                        self._handle_failure(params)
            finally:
                self._transition(SolverState.IDLE)

        duration_ms = max(0, int((time.monotonic() - start) * 1000))
        result = SolveResult(solved, duration_ms, used, setpoints)
        self._publish(result)
        return result

    def _run_strategies(self, params):
        used = self.strategy
        for strategy in strategy_chain(self.strategy, self.fallback, self.time_limit):
            used = strategy.name
            try:
                values = strategy.attempt(params)
            except gp.GurobiError as e:
                logger.error(f"Strategy [{used.value}] failed in backend: {e}")
                values = None

            if values is not None:
                setpoints = {key: int(v) for key, v in zip(params["keys"], self._round(params, values))}
                return True, used, setpoints
            logger.info(f"Strategy [{used.value}] found no solution")

        return False, used, {}

    def _round(self, params, values: np.ndarray) -> np.ndarray:
        """Integer setpoints that keep every constraint row satisfied where possible"""
        try:
            dispatcher = LPDispatcher(params, self.time_limit, name="rounding")
            try:
                integral = dispatcher.round_to_integers(values)
            finally:
                dispatcher.close()
        except gp.GurobiError as e:
            logger.error(f"Rounding failed in backend: {e}")
            integral = None

        if integral is None:
            logger.info("No integer assignment satisfies every constraint, rounding each setpoint")
            integral = np.round(values)
        return integral

    def _handle_failure(self, params):
        logger.warning(f"Unable to solve power distribution, policy '{self.failure_policy}'")
        if self.debug_mode:
            debug_log_constraints(logger, "Unable to solve with following constraints:",
                                  self.problem.get_constraints_for_all_units())
        if self.failure_policy == "zero":
            self._apply({key: 0 for key in params["keys"]})

    def _apply(self, setpoints: Dict[VariableKey, int]):
        self._setpoints = dict(setpoints)

        by_unit: Dict[str, Dict[Tuple[Phase, Pwr], int]] = {}
        for key, value in setpoints.items():
            by_unit.setdefault(key.unit_id, {})[(key.phase, key.pwr)] = value

        for unit_id, values in by_unit.items():
            for callback in self._on_apply:
                callback(unit_id, values)

    def _publish(self, result: SolveResult):
        for callback in self._on_solved:
            callback(result.solved, result.duration_ms, result.strategy)

    def get_setpoint(self, unit_id: str, phase: Phase = Phase.ALL, pwr: Pwr = Pwr.ACTIVE) -> int:
        """Last applied setpoint, 0 if nothing was applied yet"""
        with self.problem.lock:
            terms = self.problem.variables.expand(unit_id, phase, pwr)
            return int(round(sum(self._setpoints.get(v.key, 0) * m for v, m in terms)))

    # ========== Extrema ==========

    def get_power_extrema(self, unit_id: str, phase: Phase, pwr: Pwr, goal: Goal) -> float:
        """
        Maximize or minimize one (unit, phase, power type) under the full
        constraint set without touching the applied setpoints.

        Returns:
            The optimum; +/-inf if unbounded, nan if infeasible
        """
        goal = Goal(goal)
        with self.problem.lock:
            terms = self.problem.variables.expand(unit_id, phase, pwr)
            params = self._build_params()

            dispatcher = LPDispatcher(params, self.time_limit, name="extrema")
            try:
                dispatcher.distinguish_unbounded()
                dispatcher.set_objective(
                    dispatcher.total([v.index for v, _ in terms], [m for _, m in terms]),
                    GRB.MAXIMIZE if goal == Goal.MAXIMIZE else GRB.MINIMIZE
                )
                result = dispatcher.solve()
            finally:
                dispatcher.close()

        if result.solved:
            return result.objective_value
        if result.status == GRB.UNBOUNDED:
            return math.inf if goal == Goal.MAXIMIZE else -math.inf

        logger.warning(f"No {goal.value} for [{unit_id},{Phase(phase).value},{Pwr(pwr).value}]: "
                       f"status {result.status}")
        return math.nan
