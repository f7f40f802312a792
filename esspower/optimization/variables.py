# esspower/optimization/variables.py
"""
Variable space of the power allocation problem.

Maps every (unit, phase, power type) to a dense index into the solution
vector. The index space is rebuilt from scratch on every structural change
(unit added or removed, symmetric mode toggled), so indices are only valid
until the next rebuild; anything that outlives a call keeps the
VariableKey and resolves it again.

Index order: unit registration order, then phase L1 -> L2 -> L3 -> ALL,
then ACTIVE before REACTIVE.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..schema import (
    Phase, Pwr, PHASES, Unit, VariableKey,
    Coefficient, Constraint, Relationship
)
from ..exceptions import UnknownUnit, UnknownVariable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Variable:
    unit_id: str
    phase: Phase
    pwr: Pwr
    index: int

    @property
    def key(self) -> VariableKey:
        return VariableKey(self.unit_id, self.phase, self.pwr)


class VariableSpace:
    """Registered units and the variables they contribute."""

    def __init__(self, symmetric_mode: bool = False):
        self._units: Dict[str, Unit] = {}
        self._variables: List[Variable] = []
        self._by_key: Dict[VariableKey, Variable] = {}
        self._symmetric_mode = symmetric_mode

    @property
    def symmetric_mode(self) -> bool:
        return self._symmetric_mode

    @property
    def units(self) -> List[Unit]:
        return list(self._units.values())

    @property
    def variables(self) -> List[Variable]:
        return list(self._variables)

    def __len__(self):
        return len(self._variables)

    def has_unit(self, unit_id: str) -> bool:
        return unit_id in self._units

    def get_unit(self, unit_id: str) -> Unit:
        try:
            return self._units[unit_id]
        except KeyError:
            raise UnknownUnit(unit_id) from None

    # ========== Structural changes ==========

    def add_unit(self, unit: Unit):
        """Register or re-register a unit. Re-registration keeps the original position."""
        self._units[unit.unit_id] = unit
        self.rebuild()

    def remove_unit(self, unit_id: str) -> Unit:
        try:
            unit = self._units.pop(unit_id)
        except KeyError:
            raise UnknownUnit(unit_id) from None
        self.rebuild()
        return unit

    def set_symmetric_mode(self, symmetric_mode: bool) -> bool:
        """Toggle symmetric mode. Returns True if the index space was rebuilt."""
        if symmetric_mode == self._symmetric_mode:
            return False
        self._symmetric_mode = symmetric_mode
        self.rebuild()
        return True

    def is_asymmetric(self, unit_id: str) -> bool:
        """Whether the unit currently carries per-phase variables"""
        return self.get_unit(unit_id).is_asymmetric and not self._symmetric_mode

    def phases_for(self, unit_id: str) -> Tuple[Phase, ...]:
        return PHASES if self.is_asymmetric(unit_id) else (Phase.ALL,)

    def rebuild(self):
        variables = []
        for unit_id in self._units:
            for phase in self.phases_for(unit_id):
                for pwr in Pwr:
                    variables.append(Variable(unit_id, phase, pwr, len(variables)))

        self._variables = variables
        self._by_key = {v.key: v for v in variables}
        logger.debug(f"Rebuilt variable space: {len(self._units)} units, {len(variables)} variables")

    # ========== Lookups ==========

    def resolve(self, unit_id: str, phase: Phase, pwr: Pwr) -> Optional[Variable]:
        """The variable for exactly this key, or None if the current mode has none"""
        return self._by_key.get(VariableKey(unit_id, Phase(phase), Pwr(pwr)))

    def index_of(self, key: VariableKey) -> int:
        variable = self._by_key.get(key)
        if variable is None:
            raise UnknownVariable(key)
        return variable.index

    def expand(self, unit_id: str, phase: Phase, pwr: Pwr) -> List[Tuple[Variable, float]]:
        """
        Express a (unit, phase, power type) as weighted variables.

        ALL on a unit with per-phase variables is L1 + L2 + L3; a single
        phase on a unit with one aggregate variable is ALL / 3.
        """
        self.get_unit(unit_id)
        phase, pwr = Phase(phase), Pwr(pwr)

        variable = self.resolve(unit_id, phase, pwr)
        if variable is not None:
            return [(variable, 1.0)]

        if phase == Phase.ALL:
            return [(self._by_key[VariableKey(unit_id, p, pwr)], 1.0) for p in PHASES]
        return [(self._by_key[VariableKey(unit_id, Phase.ALL, pwr)], 1.0 / 3)]

    # ========== Persistent constraints ==========

    def capability_constraints(self) -> List[Constraint]:
        """Lower/upper capability limit for every variable; per-phase limits are a third"""
        constraints = []
        for v in self._variables:
            unit = self._units[v.unit_id]
            share = 1.0 if v.phase == Phase.ALL else 1.0 / 3
            min_power, max_power = unit.capabilities.limits(v.pwr)
            coefficients = [Coefficient(v.unit_id, v.phase, v.pwr)]

            if min_power is not None:
                constraints.append(Constraint(
                    f"{v.key}: min capability",
                    coefficients, Relationship.GREATER_OR_EQUALS, min_power * share
                ))
            if max_power is not None:
                constraints.append(Constraint(
                    f"{v.key}: max capability",
                    coefficients, Relationship.LESS_OR_EQUALS, max_power * share
                ))
        return constraints
