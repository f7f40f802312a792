"""
Constraint-based power allocation core.
"""

from .variables import Variable, VariableSpace
from .constraints import ConstraintStore
from .problem_state import ProblemState
from .lp_interface import LPDataInterface
from .lp_dispatcher import LPDispatcher, DispatchResult
from .solver import Solver, SolveResult, SolverState
from .validator import ConstraintValidator

__all__ = [
    "Variable",
    "VariableSpace",
    "ConstraintStore",
    "ProblemState",
    "LPDataInterface",
    "LPDispatcher",
    "DispatchResult",
    "Solver",
    "SolveResult",
    "SolverState",
    "ConstraintValidator",
]
