# esspower/power.py
"""
High-level power allocation interface.
Single entry point for the unit registry, the cycle driver, the result sink
and any logic that adds constraints or queries power extrema.
"""

import math
import logging
from typing import Dict, Any, Optional, Union
from pathlib import Path

from .schema import (
    Goal, Phase, Pwr, Relationship, SolverStrategy, PowerConfig, Scenario,
    UnitCapabilities, Coefficient, Constraint, ConstraintHandle
)
from .exceptions import ConstraintRejected, OutOfRange
from .optimization import ProblemState, Solver, SolveResult, ConstraintValidator
from .io import DataLoader, DataWriter

logger = logging.getLogger(__name__)

# Representable range of integer power values
INT_MIN = -2 ** 31
INT_MAX = 2 ** 31 - 1

TOPIC_CYCLE_BEFORE_WRITE = "cycle_before_write"
TOPIC_CYCLE_AFTER_WRITE = "cycle_after_write"


class PowerComponent:
    """
    Power allocation for a fleet of energy storage units.

    Example:
        power = PowerComponent()
        power.add_unit("ess0", UnitCapabilities(min_active_power=-5000, max_active_power=5000))
        power.add_constraint(power.create_simple_constraint(
            "setpoint", "ess0", Phase.ALL, Pwr.ACTIVE, Relationship.EQUALS, 3000))
        result = power.solve()
    """

    def __init__(self, config: Optional[PowerConfig] = None):
        """
        Initialize the component.

        Args:
            config: Symmetric mode, debug mode, strategy and failure handling
        """
        self.config = config or PowerConfig()

        self.problem = ProblemState(self.config.symmetric_mode)
        self.solver = Solver(
            self.problem,
            strategy=self.config.strategy,
            debug_mode=self.config.debug_mode,
            fallback=self.config.fallback,
            failure_policy=self.config.failure_policy,
            time_limit=self.config.time_limit_s,
        )
        self.validator = ConstraintValidator(self.solver)

        self.last_result: Optional[SolveResult] = None
        self.channels: Dict[str, Any] = {
            "solved": None,
            "solve_duration": None,
            "solve_strategy": None,
        }
        self.solver.on_solved(self._update_channels)

    @classmethod
    def from_config(cls, config_path: Union[str, Path]) -> 'PowerComponent':
        """
        Create a component from a configuration file.

        Args:
            config_path: Path to configuration YAML/JSON

        Returns:
            Configured PowerComponent instance
        """
        return cls(DataLoader.load_config(config_path))

    @classmethod
    def from_scenario(cls, scenario: Scenario, skip_rejected: bool = True) -> 'PowerComponent':
        """
        Create a component and load units, constraints and targets of a scenario.

        Args:
            scenario: Parsed scenario
            skip_rejected: Log and skip validated constraints that get rejected
                instead of raising ConstraintRejected

        Returns:
            PowerComponent ready to solve
        """
        component = cls(scenario.config)

        for unit in scenario.units:
            component.add_unit(unit.id, unit.capabilities)

        for spec in scenario.constraints:
            constraint = spec.to_constraint()
            if not spec.validated:
                component.add_constraint(constraint)
                continue
            try:
                component.add_constraint_and_validate(constraint)
            except ConstraintRejected as e:
                if not skip_rejected:
                    raise
                logger.warning(f"Skipping rejected constraint: {e.constraint}")

        for target in scenario.targets:
            component.set_target(target.unit, target.phase, target.pwr, target.value)

        return component

    def _update_channels(self, solved: bool, duration_ms: int, strategy: SolverStrategy):
        self.channels["solved"] = solved
        self.channels["solve_duration"] = duration_ms
        self.channels["solve_strategy"] = strategy

    @property
    def debug_mode(self) -> bool:
        return self.solver.debug_mode

    # ========== Registry ==========

    def add_unit(self, unit_id: str, capabilities: Optional[UnitCapabilities] = None):
        self.problem.add_unit(unit_id, capabilities)

    def remove_unit(self, unit_id: str):
        self.problem.remove_unit(unit_id)

    def set_symmetric_mode(self, symmetric_mode: bool):
        self.problem.set_symmetric_mode(symmetric_mode)

    # ========== Constraints ==========

    def add_constraint(self, constraint: Constraint) -> ConstraintHandle:
        return self.problem.add_constraint(constraint)

    def add_constraint_and_validate(self, constraint: Constraint) -> ConstraintHandle:
        """
        Add a constraint only if the whole constraint set stays solvable.

        Raises:
            ConstraintRejected: carrying the constraint; nothing was stored
        """
        outcome = self.validator.add(constraint)
        if isinstance(outcome, ConstraintRejected):
            raise outcome
        return outcome

    def remove_constraint(self, handle: ConstraintHandle) -> bool:
        return self.problem.remove_constraint(handle)

    def get_coefficient(self, unit_id: str, phase: Phase, pwr: Pwr) -> Coefficient:
        return self.problem.get_coefficient(unit_id, phase, pwr)

    def create_simple_constraint(self, description: str, unit_id: str, phase: Phase, pwr: Pwr,
                                 relationship: Relationship, value: float) -> Constraint:
        return self.problem.create_simple_constraint(description, unit_id, phase, pwr, relationship, value)

    def set_target(self, unit_id: str, phase: Phase, pwr: Pwr, value: float):
        self.problem.set_target(unit_id, phase, pwr, value)

    # ========== Queries ==========

    def get_max_power(self, unit_id: str, phase: Phase = Phase.ALL, pwr: Pwr = Pwr.ACTIVE) -> int:
        return self._get_power_extrema(unit_id, phase, pwr, Goal.MAXIMIZE)

    def get_min_power(self, unit_id: str, phase: Phase = Phase.ALL, pwr: Pwr = Pwr.ACTIVE) -> int:
        return self._get_power_extrema(unit_id, phase, pwr, Goal.MINIMIZE)

    def _get_power_extrema(self, unit_id: str, phase: Phase, pwr: Pwr, goal: Goal) -> int:
        power = self.solver.get_power_extrema(unit_id, phase, pwr, goal)
        try:
            return self._to_int_power(power, goal)
        except OutOfRange:
            # Compatibility shim: 0 also hides real infeasibility
            logger.error(f"{goal.name} Power for [{unit_id},{Phase(phase).value},{Pwr(pwr).value}={power}] "
                         f"is out of bounds. Returning '0'")
            return 0

    @staticmethod
    def _to_int_power(power: float, goal: Goal) -> int:
        if not INT_MIN < power < INT_MAX:
            raise OutOfRange(power)
        power = round(power, 6)
        if goal == Goal.MAXIMIZE:
            return math.floor(power)
        return math.ceil(power)

    def get_setpoint(self, unit_id: str, phase: Phase = Phase.ALL, pwr: Pwr = Pwr.ACTIVE) -> int:
        return self.solver.get_setpoint(unit_id, phase, pwr)

    # ========== Cycle ==========

    def solve(self) -> SolveResult:
        self.last_result = self.solver.solve()
        return self.last_result

    def begin_new_cycle(self):
        self.problem.initialize_cycle()

    def handle_event(self, topic: str):
        if topic == TOPIC_CYCLE_BEFORE_WRITE:
            self.solve()
        elif topic == TOPIC_CYCLE_AFTER_WRITE:
            self.begin_new_cycle()
        else:
            logger.debug(f"Ignoring event topic {topic}")

    def on_solved(self, callback):
        self.solver.on_solved(callback)

    def on_apply(self, callback):
        self.solver.on_apply(callback)

    def save_results(self, output_path: Union[str, Path], format: str = 'csv',
                     include_metadata: bool = True):
        """
        Save the last solve result to file.

        Args:
            output_path: Where to save results
            format: Output format ('csv', 'parquet', 'json')
            include_metadata: Whether to include metadata
        """
        if not self.last_result:
            raise ValueError("No results to save. Run solve() first.")

        DataWriter.save_results(self.last_result, output_path, format, include_metadata)


def quick_solve(scenario_path: Union[str, Path],
                output_path: Optional[Union[str, Path]] = None) -> SolveResult:
    """
    Quick one-line solve of a scenario file.

    Args:
        scenario_path: Path to scenario file
        output_path: Optional path to save results

    Returns:
        SolveResult

    Example:
        result = quick_solve('scenario.yaml', 'setpoints.csv')
    """
    component = PowerComponent.from_scenario(DataLoader.load_scenario(scenario_path))
    result = component.solve()

    if output_path:
        component.save_results(output_path)

    print("\n=== Solve Result ===")
    print(f"{'solved':25s}: {result.solved}")
    print(f"{'strategy':25s}: {result.strategy.value}")
    print(f"{'duration_ms':25s}: {result.duration_ms}")
    for key, value in result.setpoints.items():
        print(f"{str(key):25s}: {value}")

    return result
