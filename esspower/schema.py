# esspower/schema.py
from pydantic import BaseModel, Field, validator
from typing import Literal, Optional, List, NamedTuple, Tuple
from dataclasses import dataclass, field
from enum import Enum


class Phase(str, Enum):
    """AC phase of a variable. Declaration order is the index order."""
    L1 = "L1"
    L2 = "L2"
    L3 = "L3"
    ALL = "ALL"


class Pwr(str, Enum):
    """Power type. Declaration order is the index order."""
    ACTIVE = "ACTIVE"
    REACTIVE = "REACTIVE"


class Relationship(str, Enum):
    EQUALS = "="
    GREATER_OR_EQUALS = ">="
    LESS_OR_EQUALS = "<="


class PhaseTopology(str, Enum):
    SYMMETRIC = "symmetric"      # one aggregate ALL variable per power type
    ASYMMETRIC = "asymmetric"    # one variable per phase per power type


class SolverStrategy(str, Enum):
    MOVE_TOWARDS_TARGET = "move-towards-target"
    EQUAL_DISTRIBUTION = "equal-distribution"
    NEAR_EQUAL_DISTRIBUTION = "near-equal-distribution"
    MOVE_TOWARDS_TARGET_IN_ORDER = "move-towards-target-in-order"
    ALL_CONSTRAINTS = "all-constraints"
    NONE = "none"


class Goal(str, Enum):
    MAXIMIZE = "maximize"
    MINIMIZE = "minimize"


PHASES: Tuple[Phase, ...] = (Phase.L1, Phase.L2, Phase.L3)
FailurePolicy = Literal["keep-previous", "zero"]


class VariableKey(NamedTuple):
    """Stable identity of a solver variable, independent of its index."""
    unit_id: str
    phase: Phase
    pwr: Pwr

    def __str__(self):
        return f"{self.unit_id}/{self.phase.value}/{self.pwr.value}"


# ============================================================
# UNITS AND CONFIGURATION
# ============================================================

class UnitCapabilities(BaseModel):
    """Capability limits of one ESS in W (active) and var (reactive).

    A limit left as None is unbounded in that direction.
    """
    topology: PhaseTopology = PhaseTopology.SYMMETRIC
    min_active_power: Optional[float] = None
    max_active_power: Optional[float] = None
    min_reactive_power: Optional[float] = None
    max_reactive_power: Optional[float] = None

    @validator("max_active_power")
    def active_max_ge_min(cls, v, values):
        if v is not None and values.get("min_active_power") is not None:
            assert v >= values["min_active_power"], "max_active_power must be >= min_active_power"
        return v

    @validator("max_reactive_power")
    def reactive_max_ge_min(cls, v, values):
        if v is not None and values.get("min_reactive_power") is not None:
            assert v >= values["min_reactive_power"], "max_reactive_power must be >= min_reactive_power"
        return v

    def limits(self, pwr: Pwr) -> Tuple[Optional[float], Optional[float]]:
        """(min, max) for the given power type"""
        if pwr == Pwr.ACTIVE:
            return self.min_active_power, self.max_active_power
        return self.min_reactive_power, self.max_reactive_power


class PowerConfig(BaseModel):
    symmetric_mode: bool = False
    debug_mode: bool = False
    strategy: SolverStrategy = SolverStrategy.MOVE_TOWARDS_TARGET
    fallback: bool = True                         # try remaining strategies on failure
    failure_policy: FailurePolicy = "keep-previous"
    time_limit_s: float = Field(1.0, gt=0)        # per strategy attempt

    @validator("strategy")
    def solvable_strategy(cls, v):
        assert v != SolverStrategy.NONE, "strategy 'none' cannot be configured"
        return v


@dataclass
class Unit:
    unit_id: str
    capabilities: UnitCapabilities = field(default_factory=UnitCapabilities)

    @property
    def is_asymmetric(self) -> bool:
        return self.capabilities.topology == PhaseTopology.ASYMMETRIC


# ============================================================
# CONSTRAINTS
# ============================================================

@dataclass(frozen=True)
class Coefficient:
    """Weight of one (unit, phase, power type) on a constraint's left-hand side."""
    unit_id: str
    phase: Phase
    pwr: Pwr
    weight: float = 1.0

    @property
    def key(self) -> VariableKey:
        return VariableKey(self.unit_id, self.phase, self.pwr)

    def __str__(self):
        return f"{self.weight:+g}*{self.key}"


@dataclass(frozen=True)
class Constraint:
    description: str
    coefficients: Tuple[Coefficient, ...]
    relationship: Relationship
    value: float

    def __post_init__(self):
        object.__setattr__(self, "coefficients", tuple(self.coefficients))
        object.__setattr__(self, "relationship", Relationship(self.relationship))
        object.__setattr__(self, "value", float(self.value))

    def unit_ids(self) -> List[str]:
        seen = []
        for c in self.coefficients:
            if c.unit_id not in seen:
                seen.append(c.unit_id)
        return seen

    def __str__(self):
        lhs = " ".join(str(c) for c in self.coefficients)
        return f"[{self.description}] {lhs} {self.relationship.value} {self.value:g}"


@dataclass(frozen=True)
class ConstraintHandle:
    """Opaque reference to a transient constraint in the store."""
    id: int


# ============================================================
# SCENARIO FILES
# ============================================================

class UnitSpec(BaseModel):
    id: str
    capabilities: UnitCapabilities = UnitCapabilities()


class CoefficientSpec(BaseModel):
    unit: str
    phase: Phase = Phase.ALL
    pwr: Pwr = Pwr.ACTIVE
    weight: float = 1.0


class ConstraintSpec(BaseModel):
    description: str
    coefficients: List[CoefficientSpec]
    relationship: Relationship
    value: float
    validated: bool = False               # add through the transactional validator

    def to_constraint(self) -> Constraint:
        return Constraint(
            description=self.description,
            coefficients=[Coefficient(c.unit, c.phase, c.pwr, c.weight) for c in self.coefficients],
            relationship=self.relationship,
            value=self.value,
        )


class TargetSpec(BaseModel):
    unit: str
    phase: Phase = Phase.ALL
    pwr: Pwr = Pwr.ACTIVE
    value: float


class Scenario(BaseModel):
    """One cycle worth of input: configuration, units, constraints and targets."""
    config: PowerConfig = PowerConfig()
    units: List[UnitSpec] = []
    constraints: List[ConstraintSpec] = []
    targets: List[TargetSpec] = []

    def unit_ids(self) -> List[str]:
        return [u.id for u in self.units]
