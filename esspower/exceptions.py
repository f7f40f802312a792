"""
Exception types raised by the power allocation solver.
"""


class PowerException(Exception):
    """Base class for all power allocation errors."""
    pass


class Infeasible(PowerException):
    """No assignment satisfies the current constraint set."""
    pass


class ConstraintRejected(PowerException):
    """Adding a constraint would have made the whole system infeasible."""

    def __init__(self, constraint, message=None):
        self.constraint = constraint
        super().__init__(message or f"Constraint rejected: {constraint}")


class OutOfRange(PowerException):
    """An extremum lies outside the representable integer range."""

    def __init__(self, value: float):
        self.value = value
        super().__init__(f"Value {value} is out of range")


class UnknownUnit(PowerException):
    """The referenced unit is not registered."""

    def __init__(self, unit_id: str):
        self.unit_id = unit_id
        super().__init__(f"Unknown unit [{unit_id}]")


class UnknownVariable(PowerException):
    """The referenced (unit, phase, power type) has no variable."""

    def __init__(self, key):
        self.key = key
        super().__init__(f"Unknown variable {key}")
