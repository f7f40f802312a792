# tests/test_io_cli.py
"""Scenario files, result output, static validation and the command line"""

import json
import sys
from pathlib import Path

import pandas as pd
import pytest
import yaml
from click.testing import CliRunner

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from esspower import (
    DataLoader, DataWriter, PowerComponent, Scenario, SolverStrategy, ConstraintRejected,
    generate_template, validate_scenario, generate_validation_report, quick_solve
)
from esspower.cli import cli
from esspower.utils.validators import ValidationError


def create_test_scenario(path, value=6000):
    """Write a two-unit scenario file and return its path"""
    data = {
        "config": {"strategy": "equal-distribution"},
        "units": [
            {"id": "ess0", "capabilities": {"min_active_power": 0, "max_active_power": 5000}},
            {"id": "ess1", "capabilities": {"min_active_power": 0, "max_active_power": 5000}},
        ],
        "constraints": [
            {
                "description": "site",
                "coefficients": [{"unit": "ess0"}, {"unit": "ess1"}],
                "relationship": "=",
                "value": value,
                "validated": True,
            }
        ],
    }
    with open(path, "w") as f:
        yaml.safe_dump(data, f)
    return path


def test_template_round_trip(tmp_path):
    path = tmp_path / "scenario.yaml"
    generate_template(path, asymmetric=True)

    scenario = DataLoader.load_scenario(path)
    assert scenario.unit_ids() == ["ess0", "ess1"]
    assert scenario.units[1].capabilities.topology.value == "asymmetric"
    assert scenario.constraints[0].validated

    result = PowerComponent.from_scenario(scenario).solve()
    assert result.solved
    assert result.get("ess0") + sum(result.get("ess1", p) for p in ("L1", "L2", "L3")) == 6000


def test_load_config_from_scenario_file(tmp_path):
    path = create_test_scenario(tmp_path / "scenario.yaml")
    config = DataLoader.load_config(path)
    assert config.strategy == SolverStrategy.EQUAL_DISTRIBUTION

    component = PowerComponent.from_config(path)
    assert component.solver.strategy == SolverStrategy.EQUAL_DISTRIBUTION


def test_load_json_and_reject_unknown_format(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"failure_policy": "zero", "time_limit_s": 0.5}))
    config = DataLoader.load_config(path)
    assert config.failure_policy == "zero"

    with pytest.raises(ValueError):
        DataLoader.load_config(tmp_path / "config.toml")


def test_invalid_config():
    with pytest.raises(ValueError):
        Scenario(config={"strategy": "none"})
    with pytest.raises(ValueError):
        Scenario(config={"time_limit_s": 0})


def test_rejected_scenario_constraint_is_skipped(tmp_path):
    scenario = DataLoader.load_scenario(create_test_scenario(tmp_path / "s.yaml", value=20000))

    component = PowerComponent.from_scenario(scenario)
    assert component.problem.constraints.transient_constraints() == []

    with pytest.raises(ConstraintRejected):
        PowerComponent.from_scenario(scenario, skip_rejected=False)


def test_save_results(tmp_path):
    scenario = DataLoader.load_scenario(create_test_scenario(tmp_path / "s.yaml"))
    component = PowerComponent.from_scenario(scenario)

    with pytest.raises(ValueError):
        component.save_results(tmp_path / "early.csv")

    component.solve()
    component.save_results(tmp_path / "out.csv")

    df = pd.read_csv(tmp_path / "out.csv")
    assert list(df.columns) == ["unit_id", "phase", "pwr", "setpoint"]
    active = df[df.pwr == "ACTIVE"].set_index("unit_id")["setpoint"]
    assert active.to_dict() == {"ess0": 3000, "ess1": 3000}

    meta = json.loads((tmp_path / "out.meta.json").read_text())
    assert meta == {"solved": True, "duration_ms": meta["duration_ms"],
                    "strategy": "equal-distribution"}

    component.save_results(tmp_path / "out.json", format="json")
    data = json.loads((tmp_path / "out.json").read_text())
    assert len(data["data"]) == 4
    assert data["metadata"]["solved"]

    with pytest.raises(ValueError):
        DataWriter.save_results(component.last_result, tmp_path / "out.xml", format="xml")


def test_quick_solve(tmp_path):
    path = create_test_scenario(tmp_path / "s.yaml")
    result = quick_solve(path, tmp_path / "quick.csv")

    assert result.solved
    assert (tmp_path / "quick.csv").exists()


def test_validate_scenario():
    scenario = Scenario(
        units=[{"id": "a", "capabilities": {"min_active_power": 0, "max_active_power": 0}},
               {"id": "a"}],
        constraints=[{"description": "bad", "coefficients": [{"unit": "x", "weight": 0}],
                      "relationship": "<=", "value": 1}],
        targets=[{"unit": "y", "value": 5}],
    )

    is_valid, errors, warnings = validate_scenario(scenario, strict=False)

    assert not is_valid
    assert "Duplicate unit id: a" in errors
    assert "Constraint 'bad': unknown unit x" in errors
    assert "Target on unknown unit y" in errors
    assert "Unit a: active power fixed at 0" in warnings
    assert "Constraint 'bad': zero weight on x" in warnings

    with pytest.raises(ValidationError):
        validate_scenario(scenario, strict=True)

    report = generate_validation_report(scenario)
    assert "Status: INVALID" in report


def test_cli_generate_and_solve(tmp_path):
    runner = CliRunner()
    template = tmp_path / "scenario.yaml"

    result = runner.invoke(cli, ["generate-template", "-o", str(template)])
    assert result.exit_code == 0
    assert template.exists()

    output = tmp_path / "setpoints.json"
    result = runner.invoke(cli, ["solve", str(template), "-o", str(output), "--format", "json",
                                 "--strategy", "equal-distribution"])
    assert result.exit_code == 0
    assert "Strategy: equal-distribution" in result.output
    assert output.exists()


def test_cli_validate_and_extrema(tmp_path):
    runner = CliRunner()
    path = create_test_scenario(tmp_path / "s.yaml")

    report = tmp_path / "report.txt"
    result = runner.invoke(cli, ["validate", str(path), "--report", str(report)])
    assert result.exit_code == 0
    assert "validation passed" in result.output
    assert report.exists()

    result = runner.invoke(cli, ["extrema", str(path), "ess0"])
    assert result.exit_code == 0
    assert "min=1000 max=5000" in result.output


def test_cli_validate_fails_on_errors(tmp_path):
    path = create_test_scenario(tmp_path / "s.yaml")
    data = yaml.safe_load(path.read_text())
    data["targets"] = [{"unit": "ghost", "value": 1}]
    path.write_text(yaml.safe_dump(data))

    result = CliRunner().invoke(cli, ["validate", str(path)])
    assert result.exit_code == 1


def test_cli_strategies():
    result = CliRunner().invoke(cli, ["strategies"])
    assert result.exit_code == 0
    assert "move-towards-target" in result.output
    assert "all-constraints" in result.output
