# examples/basic_allocation.py
"""Example of using the ESS power allocation API over a few cycles"""

import sys
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from esspower import (
    PowerComponent, PowerConfig, UnitCapabilities, PhaseTopology, SolverStrategy,
    Phase, Pwr, Relationship, Coefficient, Constraint, ConstraintRejected
)
from esspower.power import TOPIC_CYCLE_BEFORE_WRITE, TOPIC_CYCLE_AFTER_WRITE


# Site setpoints requested by the controllers, one per cycle
SITE_SETPOINTS_W = [6000, 9000, 12000, -4000]


def create_fleet(strategy=SolverStrategy.EQUAL_DISTRIBUTION):
    """Two symmetric units and one three-phase unit"""
    power = PowerComponent(PowerConfig(strategy=strategy, debug_mode=False))

    power.add_unit("ess0", UnitCapabilities(min_active_power=-5000, max_active_power=5000,
                                            min_reactive_power=-3000, max_reactive_power=3000))
    power.add_unit("ess1", UnitCapabilities(min_active_power=-5000, max_active_power=5000,
                                            min_reactive_power=-3000, max_reactive_power=3000))
    power.add_unit("ess2", UnitCapabilities(topology=PhaseTopology.ASYMMETRIC,
                                            min_active_power=-3000, max_active_power=3000,
                                            min_reactive_power=-1500, max_reactive_power=1500))
    return power


def site_constraint(power, value):
    return Constraint(
        description="site active power",
        coefficients=[power.get_coefficient(u, Phase.ALL, Pwr.ACTIVE) for u in ("ess0", "ess1", "ess2")],
        relationship=Relationship.EQUALS,
        value=value,
    )


def main():
    """Run a few cycles with changing site setpoints"""

    print("=== ESS Power Allocation Example ===\n")

    power = create_fleet()
    power.on_apply(lambda unit_id, values: print(
        f"  apply {unit_id}: " + ", ".join(f"{p.value}/{w.value}={v}" for (p, w), v in values.items())
    ))

    for cycle, setpoint in enumerate(SITE_SETPOINTS_W):
        print(f"Cycle {cycle}: site setpoint {setpoint} W")
        print(f"  feasible ess0 range: [{power.get_min_power('ess0')}, {power.get_max_power('ess0')}]")

        # Keep ess1 from charging above 2 kW
        power.add_constraint(Constraint(
            "ess1 charge limit", [Coefficient("ess1", Phase.ALL, Pwr.ACTIVE)],
            Relationship.GREATER_OR_EQUALS, -2000
        ))

        try:
            power.add_constraint_and_validate(site_constraint(power, setpoint))
        except ConstraintRejected as e:
            print(f"  rejected: {e.constraint}")

        power.handle_event(TOPIC_CYCLE_BEFORE_WRITE)
        result = power.last_result
        print(f"  solved={result.solved} strategy={result.strategy.value} "
              f"duration={result.duration_ms} ms")

        power.handle_event(TOPIC_CYCLE_AFTER_WRITE)
        print()

    output = Path("setpoints.csv")
    power.save_results(output)
    print(f"Last setpoints saved to {output}")


if __name__ == "__main__":
    main()
