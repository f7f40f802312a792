# tests/test_solver.py
"""Solving, strategies, fallback and extrema queries"""

import sys
import threading
from pathlib import Path

import pytest

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from esspower import (
    PowerComponent, PowerConfig, UnitCapabilities, PhaseTopology, SolverStrategy,
    Phase, Pwr, Relationship, Coefficient, Constraint, ConstraintRejected
)
from esspower.power import TOPIC_CYCLE_BEFORE_WRITE, TOPIC_CYCLE_AFTER_WRITE
from esspower.optimization.solver import SolverState
from esspower.optimization.strategies import EqualDistribution


def create_component(units, **config):
    """Component with symmetric units given as {id: (min, max)}"""
    component = PowerComponent(PowerConfig(**config))
    for unit_id, (lo, hi) in units.items():
        component.add_unit(unit_id, UnitCapabilities(min_active_power=lo, max_active_power=hi))
    return component


def equals(component, unit_id, value, phase=Phase.ALL):
    return component.create_simple_constraint(
        f"{unit_id} = {value}", unit_id, phase, Pwr.ACTIVE, Relationship.EQUALS, value)


def total(unit_ids, relationship, value):
    return Constraint(
        "total", [Coefficient(u, Phase.ALL, Pwr.ACTIVE) for u in unit_ids], relationship, value)


def test_single_unit_setpoint():
    component = create_component({"A": (-5000, 5000)})
    component.add_constraint_and_validate(equals(component, "A", 3000))

    result = component.solve()

    assert result.solved
    assert result.strategy == SolverStrategy.MOVE_TOWARDS_TARGET
    assert result.get("A") == 3000
    assert result.get("A", Phase.ALL, Pwr.REACTIVE) == 0
    assert component.get_setpoint("A") == 3000


def test_conflicting_constraint_is_rejected():
    component = create_component({"A": (-5000, 5000)})
    component.add_constraint_and_validate(equals(component, "A", 3000))

    with pytest.raises(ConstraintRejected) as exc:
        component.add_constraint_and_validate(equals(component, "A", 4000))
    assert exc.value.constraint.value == 4000

    # The accepted set is unchanged and still solvable
    component.solver.is_solvable_or_error()
    assert len(component.problem.constraints.transient_constraints()) == 1
    assert component.solve().get("A") == 3000


def test_validator_returns_rejection():
    component = create_component({"A": (-5000, 5000)})
    outcome = component.validator.add(equals(component, "A", 6000))

    assert isinstance(outcome, ConstraintRejected)
    assert component.problem.constraints.transient_constraints() == []


def test_equal_distribution():
    component = create_component({"A": (0, 5000), "B": (0, 5000)},
                                 strategy=SolverStrategy.EQUAL_DISTRIBUTION)
    component.add_constraint_and_validate(total(["A", "B"], Relationship.EQUALS, 6000))

    result = component.solve()

    assert result.solved
    assert result.strategy == SolverStrategy.EQUAL_DISTRIBUTION
    assert result.get("A") == 3000
    assert result.get("B") == 3000


def test_near_equal_distribution():
    component = create_component({"A": (0, 5000), "B": (0, 5000)},
                                 strategy=SolverStrategy.NEAR_EQUAL_DISTRIBUTION)
    component.add_constraint(total(["A", "B"], Relationship.EQUALS, 6000))

    result = component.solve()

    assert result.strategy == SolverStrategy.NEAR_EQUAL_DISTRIBUTION
    assert result.get("A") == 3000
    assert result.get("B") == 3000


def test_equal_distribution_with_capped_unit():
    component = create_component({"A": (0, 5000), "B": (0, 1000)},
                                 strategy=SolverStrategy.EQUAL_DISTRIBUTION)
    component.add_constraint_and_validate(total(["A", "B"], Relationship.EQUALS, 4000))

    result = component.solve()

    assert result.solved
    assert result.strategy == SolverStrategy.EQUAL_DISTRIBUTION
    assert result.get("A") == 3000
    assert result.get("B") == 1000


def test_equal_distribution_shares_remainder_between_free_units():
    component = create_component({"A": (0, 5000), "B": (0, 5000), "C": (0, 5000)},
                                 strategy=SolverStrategy.EQUAL_DISTRIBUTION)
    component.add_constraint(total(["A", "B", "C"], Relationship.EQUALS, 9000))
    component.add_constraint(total(["A"], Relationship.LESS_OR_EQUALS, 1000))
    component.set_target("B", Phase.ALL, Pwr.ACTIVE, 5000)

    result = component.solve()

    assert result.strategy == SolverStrategy.EQUAL_DISTRIBUTION
    assert result.get("A") == 1000
    assert result.get("B") == 4000
    assert result.get("C") == 4000


def test_equal_distribution_follows_targets_on_common_level():
    component = create_component({"A": (0, 5000), "B": (0, 5000)},
                                 strategy=SolverStrategy.EQUAL_DISTRIBUTION)
    component.set_target("A", Phase.ALL, Pwr.ACTIVE, 3000)
    component.set_target("B", Phase.ALL, Pwr.ACTIVE, 1000)

    result = component.solve()

    assert result.get("A") == 2000
    assert result.get("B") == 2000


def test_fallback_when_configured_strategy_fails(monkeypatch):
    component = create_component({"A": (0, 5000), "B": (0, 5000)},
                                 strategy=SolverStrategy.EQUAL_DISTRIBUTION)
    component.add_constraint(total(["A", "B"], Relationship.EQUALS, 4000))
    component.set_target("A", Phase.ALL, Pwr.ACTIVE, 4000)
    monkeypatch.setattr(EqualDistribution, "_run", lambda self, dispatcher, params: None)

    result = component.solve()

    assert result.solved
    assert result.strategy == SolverStrategy.MOVE_TOWARDS_TARGET
    assert result.get("A") == 4000
    assert result.get("B") == 0


def test_no_fallback():
    component = create_component({"A": (-5000, 5000)},
                                 strategy=SolverStrategy.EQUAL_DISTRIBUTION, fallback=False)
    component.add_constraint(equals(component, "A", 3000))
    component.add_constraint(equals(component, "A", 4000))

    result = component.solve()

    assert not result.solved
    assert result.strategy == SolverStrategy.EQUAL_DISTRIBUTION
    assert result.setpoints == {}


def test_rounding_keeps_equality_sums():
    component = create_component({"A": (0, 5000), "B": (0, 5000), "C": (-2000, 2000)})
    component.add_constraint(total(["A", "B", "C"], Relationship.EQUALS, 7001))

    result = component.solve()

    assert result.get("C") == 2000
    assert sorted([result.get("A"), result.get("B")]) == [2500, 2501]
    assert result.get("A") + result.get("B") + result.get("C") == 7001


def test_rounding_keeps_phase_sum():
    component = PowerComponent()
    component.add_unit("C", UnitCapabilities(topology=PhaseTopology.ASYMMETRIC,
                                             min_active_power=-6000, max_active_power=6000))
    component.add_constraint(equals(component, "C", 1000))

    result = component.solve()

    phases = sorted(result.get("C", phase) for phase in (Phase.L1, Phase.L2, Phase.L3))
    assert phases == [333, 333, 334]
    assert component.get_setpoint("C") == 1000


def test_move_towards_target_in_order():
    component = create_component({"A": (0, 5000), "B": (0, 5000)},
                                 strategy=SolverStrategy.MOVE_TOWARDS_TARGET_IN_ORDER)
    component.add_constraint(total(["A", "B"], Relationship.EQUALS, 6000))
    component.set_target("A", Phase.ALL, Pwr.ACTIVE, 5000)
    component.set_target("B", Phase.ALL, Pwr.ACTIVE, 5000)

    result = component.solve()

    assert result.strategy == SolverStrategy.MOVE_TOWARDS_TARGET_IN_ORDER
    assert result.get("A") == 5000
    assert result.get("B") == 1000


def test_targets_fall_back_to_last_setpoints():
    component = create_component({"A": (-5000, 5000)})
    component.set_target("A", Phase.ALL, Pwr.ACTIVE, 2000)
    assert component.solve().get("A") == 2000

    component.begin_new_cycle()
    assert component.problem.targets() == {}
    assert component.solve().get("A") == 2000


def test_total_failure_keeps_previous_setpoints():
    component = create_component({"A": (-5000, 5000)})
    component.add_constraint(equals(component, "A", 3000))
    assert component.solve().solved
    component.begin_new_cycle()

    component.add_constraint(equals(component, "A", 3000))
    component.add_constraint(equals(component, "A", 4000))
    result = component.solve()

    assert not result.solved
    assert result.strategy == SolverStrategy.ALL_CONSTRAINTS
    assert component.get_setpoint("A") == 3000


def test_total_failure_zero_policy():
    component = create_component({"A": (-5000, 5000)}, failure_policy="zero", debug_mode=True)
    component.add_constraint(equals(component, "A", 3000))
    component.solve()
    component.begin_new_cycle()

    applied = []
    component.on_apply(lambda unit_id, values: applied.append((unit_id, values)))
    component.add_constraint(equals(component, "A", 3000))
    component.add_constraint(equals(component, "A", 4000))
    result = component.solve()

    assert not result.solved
    assert component.get_setpoint("A") == 0
    assert applied == [("A", {(Phase.ALL, Pwr.ACTIVE): 0, (Phase.ALL, Pwr.REACTIVE): 0})]


def test_solve_without_units():
    component = PowerComponent()
    result = component.solve()

    assert result.solved
    assert result.strategy == SolverStrategy.NONE
    assert result.setpoints == {}


def test_determinism():
    def run():
        component = create_component({"A": (0, 5000), "B": (0, 5000), "C": (-2000, 2000)})
        component.add_constraint(total(["A", "B", "C"], Relationship.EQUALS, 7000))
        component.add_constraint(total(["B"], Relationship.LESS_OR_EQUALS, 1500))
        return component.solve().setpoints

    assert run() == run()


def test_capability_limits_respected():
    component = create_component({"A": (-5000, 5000), "B": (-5000, 5000)})
    component.add_constraint(total(["A", "B"], Relationship.EQUALS, 9000))

    result = component.solve()

    for unit_id in ("A", "B"):
        assert -5000 <= result.get(unit_id) <= 5000
    assert result.get("A") + result.get("B") == 9000


def test_power_extrema():
    component = create_component({"A": (-5000, 5000)})

    assert component.get_max_power("A") == 5000
    assert component.get_min_power("A") == -5000


def test_extrema_equality_is_feasible():
    component = create_component({"A": (0, 5000), "B": (0, 5000)})
    component.add_constraint(total(["A", "B"], Relationship.EQUALS, 6000))
    component.add_constraint(total(["B"], Relationship.GREATER_OR_EQUALS, 2000))

    max_a = component.get_max_power("A")
    assert max_a == 4000
    assert component.get_min_power("A") == 1000

    handle = component.add_constraint_and_validate(equals(component, "A", max_a))
    assert component.remove_constraint(handle)

    with pytest.raises(ConstraintRejected):
        component.add_constraint_and_validate(equals(component, "A", max_a + 1))


def test_unbounded_extrema_maps_to_zero():
    component = PowerComponent()
    component.add_unit("A", UnitCapabilities())

    assert component.get_max_power("A") == 0
    assert component.get_min_power("A") == 0


def test_extrema_do_not_touch_setpoints():
    component = create_component({"A": (-5000, 5000)})
    component.add_constraint(equals(component, "A", 1000))
    component.solve()

    component.get_max_power("A")
    assert component.get_setpoint("A") == 1000


def test_asymmetric_unit_distribution():
    component = PowerComponent()
    component.add_unit("C", UnitCapabilities(topology=PhaseTopology.ASYMMETRIC,
                                             min_active_power=-6000, max_active_power=6000))
    assert component.get_max_power("C", Phase.ALL) == 6000
    assert component.get_max_power("C", Phase.L1) == 2000

    component.add_constraint(equals(component, "C", 3000))
    result = component.solve()

    for phase in (Phase.L1, Phase.L2, Phase.L3):
        assert result.get("C", phase) == 1000
    assert component.get_setpoint("C", Phase.ALL) == 3000
    assert component.get_max_power("C", Phase.ALL) == 3000


def test_symmetric_unit_phase_constraint():
    component = create_component({"A": (-5000, 5000)})
    component.add_constraint(equals(component, "A", 1000, phase=Phase.L1))

    assert component.solve().get("A") == 3000


def test_symmetric_mode_collapses_phases():
    component = PowerComponent(PowerConfig(symmetric_mode=True))
    component.add_unit("C", UnitCapabilities(topology=PhaseTopology.ASYMMETRIC,
                                             min_active_power=-6000, max_active_power=6000))
    component.add_constraint(equals(component, "C", 600, phase=Phase.L2))

    result = component.solve()

    assert set(k.phase for k in result.setpoints) == {Phase.ALL}
    assert result.get("C") == 1800


def test_remove_unit_then_solve():
    component = create_component({"A": (0, 5000), "B": (0, 5000)})
    component.add_constraint(total(["A", "B"], Relationship.EQUALS, 6000))

    component.remove_unit("B")
    result = component.solve()

    assert result.solved
    assert result.get("A") == 0
    assert all(k.unit_id == "A" for k in result.setpoints)


def test_events_drive_the_cycle():
    component = create_component({"A": (-5000, 5000)})
    component.add_constraint(equals(component, "A", 2500))

    component.handle_event(TOPIC_CYCLE_BEFORE_WRITE)
    assert component.last_result.get("A") == 2500
    assert component.channels["solved"] is True
    assert component.channels["solve_strategy"] == SolverStrategy.MOVE_TOWARDS_TARGET
    assert component.channels["solve_duration"] >= 0

    component.handle_event(TOPIC_CYCLE_AFTER_WRITE)
    assert component.problem.constraints.transient_constraints() == []

    component.handle_event("unrelated/topic")


def test_solver_returns_to_idle():
    component = create_component({"A": (-5000, 5000)})
    states = []
    component.on_solved(lambda solved, duration, strategy: states.append(component.solver.state))

    component.solve()
    component.solver.is_solvable_or_error()

    assert states == [SolverState.IDLE]
    assert component.solver.state == SolverState.IDLE


def test_solver_returns_to_idle_when_callback_raises():
    component = create_component({"A": (-5000, 5000)})

    def broken(unit_id, values):
        raise RuntimeError("writer offline")

    component.on_apply(broken)
    with pytest.raises(RuntimeError):
        component.solve()

    assert component.solver.state == SolverState.IDLE


def test_concurrent_constraint_adds():
    component = create_component({"A": (-5000, 5000), "B": (-5000, 5000)})
    errors = []

    def add(i):
        try:
            component.add_constraint_and_validate(
                total(["A", "B"], Relationship.LESS_OR_EQUALS, 4000 + i))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=add, args=(i,)) for i in range(4)]
    threads.append(threading.Thread(target=component.solve))
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(component.problem.constraints.transient_constraints()) == 4
    assert component.solve().solved
