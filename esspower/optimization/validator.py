# esspower/optimization/validator.py
"""
Transactional constraint validator: add a constraint, check that the whole
constraint set is still solvable, roll back if it is not.
"""

import logging
from typing import Union

from ..schema import Constraint, ConstraintHandle
from ..exceptions import ConstraintRejected, Infeasible
from ..utils.validators import debug_log_constraints
from .solver import Solver

logger = logging.getLogger(__name__)


class ConstraintValidator:
    """
    At most one bad constraint is ever inside the store, and only for the
    duration of the check.
    """

    def __init__(self, solver: Solver):
        self.solver = solver
        self.problem = solver.problem

    def add(self, constraint: Constraint) -> Union[ConstraintHandle, ConstraintRejected]:
        """
        Add and validate a constraint as one atomic step.

        Returns:
            The handle if the constraint set stays solvable, otherwise a
            ConstraintRejected carrying the constraint (store unchanged)
        """
        with self.problem.lock:
            handle = self.problem.add_constraint(constraint)
            try:
                self.solver.is_solvable_or_error()
            except Infeasible as e:
                self.problem.remove_constraint(handle)
                if self.solver.debug_mode:
                    debug_log_constraints(logger, "Unable to validate with following constraints:",
                                          self.problem.get_constraints_for_all_units())
                    logger.info(f"Failed to add Constraint: {constraint}")
                rejection = ConstraintRejected(constraint)
                rejection.__cause__ = e
                return rejection
        return handle
