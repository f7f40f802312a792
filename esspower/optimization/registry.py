# esspower/optimization/registry.py
"""
Registry mapping strategy names to their implementations, plus the fixed
priority order used when the configured strategy finds no solution.
"""

from typing import Dict, List, Optional, Type

from ..schema import SolverStrategy
from .strategies import (
    Strategy, MoveTowardsTarget, EqualDistribution, NearEqualDistribution,
    MoveTowardsTargetInOrder, AllConstraints
)

STRATEGIES: Dict[SolverStrategy, Type[Strategy]] = {
    SolverStrategy.MOVE_TOWARDS_TARGET: MoveTowardsTarget,
    SolverStrategy.EQUAL_DISTRIBUTION: EqualDistribution,
    SolverStrategy.NEAR_EQUAL_DISTRIBUTION: NearEqualDistribution,
    SolverStrategy.MOVE_TOWARDS_TARGET_IN_ORDER: MoveTowardsTargetInOrder,
    SolverStrategy.ALL_CONSTRAINTS: AllConstraints,
}

# Fallback priority, fastest and most commonly wanted first
FALLBACK_ORDER: List[SolverStrategy] = [
    SolverStrategy.MOVE_TOWARDS_TARGET,
    SolverStrategy.EQUAL_DISTRIBUTION,
    SolverStrategy.NEAR_EQUAL_DISTRIBUTION,
    SolverStrategy.MOVE_TOWARDS_TARGET_IN_ORDER,
    SolverStrategy.ALL_CONSTRAINTS,
]

DESCRIPTIONS: Dict[SolverStrategy, str] = {
    SolverStrategy.MOVE_TOWARDS_TARGET: "min Σ(x_i - t_i)² - closest to the targets",
    SolverStrategy.EQUAL_DISTRIBUTION: "min Σ(total_u - total_v)², fix the differences, then min Σ(x_i - t_i)²",
    SolverStrategy.NEAR_EQUAL_DISTRIBUTION: "min Σ(total_u - total_v)² + ε·Σ(x_i - t_i)²",
    SolverStrategy.MOVE_TOWARDS_TARGET_IN_ORDER: "min (x_i - t_i)² per variable in index order, pinning each",
    SolverStrategy.ALL_CONSTRAINTS: "min Σx_i² - plain feasibility, closest to zero",
}


def get_strategy(name: SolverStrategy, time_limit: Optional[float] = None) -> Strategy:
    """
    Instantiate the strategy registered under the given name.

    Args:
        name: Strategy name
        time_limit: Per-attempt time limit in seconds

    Returns:
        Strategy instance
    """
    try:
        return STRATEGIES[SolverStrategy(name)](time_limit)
    except KeyError:
        raise ValueError(f"No implementation registered for strategy: {name}") from None


def strategy_chain(configured: SolverStrategy, fallback: bool = True,
                   time_limit: Optional[float] = None) -> List[Strategy]:
    """
    Strategies to try, in order: the configured one, then (if fallback is
    enabled) the remaining ones in FALLBACK_ORDER.
    """
    names = [SolverStrategy(configured)]
    if fallback:
        names += [name for name in FALLBACK_ORDER if name not in names]
    return [get_strategy(name, time_limit) for name in names]


def describe_strategies() -> str:
    """
    Generate a human-readable description of the registered strategies.

    Returns:
        Formatted string, one strategy per line in fallback order
    """
    lines = ["Solver strategies (fallback order)", "=" * 40]
    for name in FALLBACK_ORDER:
        lines.append(f"  {name.value:30s} → {DESCRIPTIONS[name]}")
    return "\n".join(lines)
