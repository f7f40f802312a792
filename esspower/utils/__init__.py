"""
Utility functions for validation and debug logging.
"""

from .validators import (
    validate_scenario, generate_validation_report, debug_log_constraints,
    ScenarioValidator, ValidationError
)

__all__ = [
    "validate_scenario",
    "generate_validation_report",
    "debug_log_constraints",
    "ScenarioValidator",
    "ValidationError",
]
