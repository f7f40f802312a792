"""
Scenario validation utilities for the power allocation solver.
Static checks that need no solver, plus constraint listings for debug logs.
"""

import math
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from ..schema import Scenario

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Custom exception for validation errors."""
    pass


def debug_log_constraints(log: logging.Logger, title: str, constraints: Iterable):
    """
    Print all constraints to the given log.

    Args:
        log: Logger instance
        title: Log title
        constraints: Constraints to list
    """
    log.info(title)
    for c in constraints:
        log.info(f"- {c}")


class ScenarioValidator:
    """Static validation of a scenario before it is loaded into the solver."""

    def __init__(self, strict: bool = True):
        """
        Initialize validator.

        Args:
            strict: If True, raise exceptions on errors. If False, log warnings.
        """
        self.strict = strict
        self.errors = []
        self.warnings = []

    def validate_scenario(self, scenario: Scenario) -> Tuple[bool, List[str], List[str]]:
        """
        Validate a complete Scenario.

        Args:
            scenario: Scenario to validate

        Returns:
            Tuple of (is_valid, errors, warnings)
        """
        self.errors = []
        self.warnings = []

        self._validate_units(scenario)
        self._validate_constraints(scenario)
        self._validate_targets(scenario)

        is_valid = len(self.errors) == 0

        if not is_valid and self.strict:
            raise ValidationError(f"Validation failed with {len(self.errors)} errors:\n" +
                                  "\n".join(self.errors))

        return is_valid, self.errors, self.warnings

    def _validate_units(self, scenario: Scenario):
        """Check unit ids and capability limits."""
        seen = set()
        for unit in scenario.units:
            if unit.id in seen:
                self.errors.append(f"Duplicate unit id: {unit.id}")
            seen.add(unit.id)

            caps = unit.capabilities
            for label, lo, hi in [
                ("active", caps.min_active_power, caps.max_active_power),
                ("reactive", caps.min_reactive_power, caps.max_reactive_power),
            ]:
                for value in (lo, hi):
                    if value is not None and not math.isfinite(value):
                        self.errors.append(f"Unit {unit.id}: non-finite {label} power limit")
                if lo is None or hi is None:
                    self.warnings.append(f"Unit {unit.id}: {label} power is unbounded")
                elif lo == hi:
                    self.warnings.append(f"Unit {unit.id}: {label} power fixed at {lo:g}")

        if not scenario.units:
            self.warnings.append("Scenario has no units")

    def _validate_constraints(self, scenario: Scenario):
        """Check constraint references and values."""
        unit_ids = set(scenario.unit_ids())

        for spec in scenario.constraints:
            if not spec.coefficients:
                self.errors.append(f"Constraint '{spec.description}': no coefficients")
            if not math.isfinite(spec.value):
                self.errors.append(f"Constraint '{spec.description}': non-finite value")

            for c in spec.coefficients:
                if c.unit not in unit_ids:
                    self.errors.append(f"Constraint '{spec.description}': unknown unit {c.unit}")
                if not math.isfinite(c.weight):
                    self.errors.append(f"Constraint '{spec.description}': non-finite weight")
                elif c.weight == 0:
                    self.warnings.append(f"Constraint '{spec.description}': zero weight on {c.unit}")

    def _validate_targets(self, scenario: Scenario):
        unit_ids = set(scenario.unit_ids())
        for target in scenario.targets:
            if target.unit not in unit_ids:
                self.errors.append(f"Target on unknown unit {target.unit}")
            if not math.isfinite(target.value):
                self.errors.append(f"Target on {target.unit}: non-finite value")


def validate_scenario(scenario: Scenario, strict: bool = True) -> Tuple[bool, List[str], List[str]]:
    """
    Convenience function to validate a Scenario.

    Args:
        scenario: Scenario to validate
        strict: If True, raise exception on errors

    Returns:
        Tuple of (is_valid, errors, warnings)
    """
    validator = ScenarioValidator(strict=strict)
    is_valid, errors, warnings = validator.validate_scenario(scenario)

    # Log results
    for warning in warnings:
        logger.warning(warning)
    for error in errors:
        logger.error(error)

    return is_valid, errors, warnings


def generate_validation_report(scenario: Scenario,
                               output_path: Optional[Union[str, Path]] = None) -> str:
    """
    Generate a text validation report.

    Args:
        scenario: Scenario to validate
        output_path: Optional path to save the report

    Returns:
        Report text
    """
    is_valid, errors, warnings = ScenarioValidator(strict=False).validate_scenario(scenario)

    lines = ["Scenario Validation Report", "=" * 40]
    lines.append(f"Units: {len(scenario.units)}")
    lines.append(f"Constraints: {len(scenario.constraints)}")
    lines.append(f"Targets: {len(scenario.targets)}")
    lines.append(f"Strategy: {scenario.config.strategy.value}")
    lines.append(f"Symmetric mode: {scenario.config.symmetric_mode}")
    lines.append("")
    lines.append(f"Status: {'VALID' if is_valid else 'INVALID'}")

    if errors:
        lines.append(f"\nErrors ({len(errors)}):")
        lines.extend(f"  - {e}" for e in errors)
    if warnings:
        lines.append(f"\nWarnings ({len(warnings)}):")
        lines.extend(f"  - {w}" for w in warnings)

    report = "\n".join(lines)

    if output_path:
        Path(output_path).write_text(report, encoding="utf-8")
        logger.info(f"Validation report saved to {output_path}")

    return report
