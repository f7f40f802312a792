# esspower/io.py
"""
I/O utilities for loading configurations and scenarios and saving solve results.
Supports YAML and JSON input, CSV, Parquet and JSON output.
"""

import json
import yaml
import pandas as pd
from pathlib import Path
from typing import Dict, Any, Union
import logging

from .schema import PowerConfig, Scenario

logger = logging.getLogger(__name__)


class DataLoader:
    """Loader for configuration and scenario files."""

    @staticmethod
    def load_config(config_path: Union[str, Path]) -> PowerConfig:
        """
        Load solver configuration.

        The file may hold the configuration at top level or under a
        'config' section (as in scenario files).

        Args:
            config_path: Path to configuration file (YAML/JSON)

        Returns:
            Validated PowerConfig
        """
        raw = DataLoader._load_file(config_path)
        if 'config' in raw:
            raw = raw['config'] or {}
        config = PowerConfig(**raw)
        logger.info(f"Loaded configuration from {Path(config_path).name}: strategy={config.strategy.value}")
        return config

    @staticmethod
    def load_scenario(scenario_path: Union[str, Path]) -> Scenario:
        """
        Load a scenario: configuration, units, constraints and targets.

        Args:
            scenario_path: Path to scenario file (YAML/JSON)

        Returns:
            Validated Scenario
        """
        raw = DataLoader._load_file(scenario_path)
        scenario = Scenario(**raw)
        logger.info(f"Loaded scenario {Path(scenario_path).name}: "
                    f"{len(scenario.units)} units, {len(scenario.constraints)} constraints")
        return scenario

    @staticmethod
    def _load_file(path: Union[str, Path]) -> Dict[str, Any]:
        path = Path(path)

        if path.suffix in ['.yaml', '.yml']:
            with open(path, 'r') as f:
                data = yaml.safe_load(f)
        elif path.suffix == '.json':
            with open(path, 'r') as f:
                data = json.load(f)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")

        return data or {}


class DataWriter:
    """Write solve results to various formats."""

    @staticmethod
    def save_results(result, output_path: Union[str, Path],
                     format: str = 'csv', include_metadata: bool = True):
        """
        Save a solve result to file.

        Args:
            result: SolveResult object
            output_path: Output file path
            format: Output format ('csv', 'parquet', 'json')
            include_metadata: Whether to include metadata
        """
        output_path = Path(output_path)

        df = DataWriter.results_to_dataframe(result)

        if format == 'csv':
            df.to_csv(output_path, index=False)

            if include_metadata:
                meta_path = output_path.with_suffix('.meta.json')
                DataWriter._save_metadata(result, meta_path)

        elif format == 'parquet':
            if include_metadata:
                df.attrs = DataWriter._get_metadata_dict(result)
            df.to_parquet(output_path)

        elif format == 'json':
            output = {
                'data': df.to_dict('records'),
                'metadata': DataWriter._get_metadata_dict(result) if include_metadata else {}
            }
            with open(output_path, 'w') as f:
                json.dump(output, f, indent=2, default=str)
        else:
            raise ValueError(f"Unsupported format: {format}")

        logger.info(f"Results saved to {output_path}")

    @staticmethod
    def results_to_dataframe(result) -> pd.DataFrame:
        """Convert a SolveResult to one row per variable."""
        rows = [
            {
                'unit_id': key.unit_id,
                'phase': key.phase.value,
                'pwr': key.pwr.value,
                'setpoint': value,
            }
            for key, value in result.setpoints.items()
        ]
        return pd.DataFrame(rows, columns=['unit_id', 'phase', 'pwr', 'setpoint'])

    @staticmethod
    def _get_metadata_dict(result) -> Dict:
        return {
            'solved': result.solved,
            'duration_ms': result.duration_ms,
            'strategy': result.strategy.value,
        }

    @staticmethod
    def _save_metadata(result, path: Path):
        metadata = DataWriter._get_metadata_dict(result)
        with open(path, 'w') as f:
            json.dump(metadata, f, indent=2, default=str)


def generate_template(output_path: Union[str, Path], asymmetric: bool = False):
    """
    Generate a template scenario file.

    Args:
        output_path: Where to save the template
        asymmetric: Whether the second unit uses per-phase variables
    """
    template = {
        'config': {
            'symmetric_mode': False,
            'debug_mode': False,
            'strategy': 'move-towards-target',
            'fallback': True,
            'failure_policy': 'keep-previous',
            'time_limit_s': 1.0,
        },
        'units': [
            {
                'id': 'ess0',
                'capabilities': {
                    'topology': 'symmetric',
                    'min_active_power': -5000,
                    'max_active_power': 5000,
                    'min_reactive_power': -3000,
                    'max_reactive_power': 3000,
                },
            },
            {
                'id': 'ess1',
                'capabilities': {
                    'topology': 'asymmetric' if asymmetric else 'symmetric',
                    'min_active_power': -5000,
                    'max_active_power': 5000,
                    'min_reactive_power': -3000,
                    'max_reactive_power': 3000,
                },
            },
        ],
        'constraints': [
            {
                'description': 'site active power setpoint',
                'coefficients': [
                    {'unit': 'ess0', 'phase': 'ALL', 'pwr': 'ACTIVE', 'weight': 1.0},
                    {'unit': 'ess1', 'phase': 'ALL', 'pwr': 'ACTIVE', 'weight': 1.0},
                ],
                'relationship': '=',
                'value': 6000,
                'validated': True,
            },
        ],
        'targets': [
            {'unit': 'ess0', 'phase': 'ALL', 'pwr': 'ACTIVE', 'value': 2000},
        ],
    }

    output_path = Path(output_path)
    with open(output_path, 'w') as f:
        yaml.dump(template, f, default_flow_style=False, sort_keys=False)

    logger.info(f"Template saved to {output_path}")
