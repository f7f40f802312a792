"""
ESS Power Allocation
Constraint-based power setpoint solver for energy storage fleets.
"""

__version__ = "0.1.0"

# Main API exports
from .power import PowerComponent, quick_solve
from .schema import (
    Phase, Pwr, Relationship, PhaseTopology, SolverStrategy, Goal,
    UnitCapabilities, PowerConfig, Scenario,
    Coefficient, Constraint, ConstraintHandle, VariableKey
)
from .exceptions import (
    PowerException, ConstraintRejected, Infeasible, OutOfRange,
    UnknownUnit, UnknownVariable
)
from .io import DataLoader, DataWriter, generate_template

# Convenience imports
from .optimization.solver import SolveResult
from .utils.validators import validate_scenario, generate_validation_report

__all__ = [
    "PowerComponent",
    "quick_solve",
    "Phase",
    "Pwr",
    "Relationship",
    "PhaseTopology",
    "SolverStrategy",
    "Goal",
    "UnitCapabilities",
    "PowerConfig",
    "Scenario",
    "Coefficient",
    "Constraint",
    "ConstraintHandle",
    "VariableKey",
    "PowerException",
    "ConstraintRejected",
    "Infeasible",
    "OutOfRange",
    "UnknownUnit",
    "UnknownVariable",
    "DataLoader",
    "DataWriter",
    "generate_template",
    "SolveResult",
    "validate_scenario",
    "generate_validation_report",
]
