#!/usr/bin/env python3
"""
Command-line interface for ESS power allocation.
Provides convenient commands for common operations.
"""

import click
import logging
import sys
from pathlib import Path

from esspower import PowerComponent, __version__
from esspower.io import DataLoader, generate_template
from esspower.schema import Phase, Pwr, SolverStrategy
from esspower.utils.validators import validate_scenario, generate_validation_report
from esspower.optimization.registry import describe_strategies

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

STRATEGY_CHOICES = [s.value for s in SolverStrategy if s != SolverStrategy.NONE]


@click.group()
@click.version_option(version=__version__, prog_name="esspower")
def cli():
    """ESS power allocation - constraint-based setpoint solver."""
    pass


@cli.command()
@click.argument('scenario_file', type=click.Path(exists=True))
@click.option('--strategy', type=click.Choice(STRATEGY_CHOICES),
              help='Override the configured strategy')
@click.option('--output', '-o', type=click.Path(),
              help='Output file for setpoints')
@click.option('--format', 'output_format', type=click.Choice(['csv', 'json', 'parquet']),
              default='csv', help='Output format')
@click.option('--verbose', '-v', is_flag=True,
              help='Show detailed output')
def solve(scenario_file, strategy, output, output_format, verbose):
    """
    Solve one cycle of a scenario file.

    Example:
        esspower solve scenario.yaml -o setpoints.csv
    """
    try:
        if verbose:
            logging.getLogger().setLevel(logging.DEBUG)

        click.echo(f"Loading scenario from {scenario_file}...")
        scenario = DataLoader.load_scenario(scenario_file)
        if strategy:
            scenario.config.strategy = SolverStrategy(strategy)

        component = PowerComponent.from_scenario(scenario)

        click.echo(f"Solving with strategy {scenario.config.strategy.value}...")
        result = component.solve()

        click.echo("\n" + "=" * 50)
        click.echo("SOLVE RESULT")
        click.echo("=" * 50)
        click.echo(f"Solved: {result.solved}")
        click.echo(f"Strategy: {result.strategy.value}")
        click.echo(f"Duration: {result.duration_ms} ms")

        if result.setpoints:
            click.echo("\nSetpoints:")
            for key, value in result.setpoints.items():
                click.echo(f"  {str(key):30s} {value:>10d}")

        if output:
            component.save_results(output, output_format)
            click.echo(f"\n✓ Results saved to {output}")

        if not result.solved:
            sys.exit(2)

    except Exception as e:
        click.echo(f"✗ Solve failed: {e}", err=True)
        if verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


@cli.command()
@click.argument('scenario_file', type=click.Path(exists=True))
@click.argument('unit_id')
@click.option('--phase', type=click.Choice([p.value for p in Phase]), default='ALL',
              help='Phase to query')
@click.option('--pwr', type=click.Choice([p.value for p in Pwr]), default='ACTIVE',
              help='Power type to query')
def extrema(scenario_file, unit_id, phase, pwr):
    """
    Show the feasible min/max power of one unit.

    Example:
        esspower extrema scenario.yaml ess0 --phase ALL --pwr ACTIVE
    """
    try:
        component = PowerComponent.from_scenario(DataLoader.load_scenario(scenario_file))
        min_power = component.get_min_power(unit_id, Phase(phase), Pwr(pwr))
        max_power = component.get_max_power(unit_id, Phase(phase), Pwr(pwr))
        click.echo(f"{unit_id}/{phase}/{pwr}: min={min_power} max={max_power}")

    except Exception as e:
        click.echo(f"✗ Extrema query failed: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument('scenario_file', type=click.Path(exists=True))
@click.option('--report', '-r', type=click.Path(),
              help='Save validation report to file')
@click.option('--strict/--no-strict', default=True,
              help='Fail on validation errors')
def validate(scenario_file, report, strict):
    """
    Validate a scenario file without solving it.

    Example:
        esspower validate scenario.yaml --report validation.txt
    """
    try:
        click.echo(f"Loading scenario from {scenario_file}...")
        scenario = DataLoader.load_scenario(scenario_file)

        click.echo("Running validation...")
        is_valid, errors, warnings = validate_scenario(scenario, strict=False)

        if errors:
            click.echo(f"\n✗ Found {len(errors)} errors:", err=True)
            for error in errors:
                click.echo(f"  - {error}", err=True)

        if warnings:
            click.echo(f"\n⚠ Found {len(warnings)} warnings:")
            for warning in warnings:
                click.echo(f"  - {warning}")

        if is_valid:
            click.echo("\n✓ Scenario validation passed")
        else:
            click.echo("\n✗ Scenario validation failed", err=True)

        if report:
            generate_validation_report(scenario, report)
            click.echo(f"Report saved to {report}")

        if strict and not is_valid:
            sys.exit(1)

    except Exception as e:
        click.echo(f"✗ Validation failed: {e}", err=True)
        sys.exit(1)


@cli.command('generate-template')
@click.option('--output', '-o', type=click.Path(),
              default='scenario_template.yaml', help='Output file')
@click.option('--asymmetric', is_flag=True,
              help='Make the second unit asymmetric')
def generate_template_cmd(output, asymmetric):
    """
    Generate a template scenario file.

    Example:
        esspower generate-template -o scenario.yaml
    """
    try:
        output_path = Path(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        generate_template(output_path, asymmetric=asymmetric)
        click.echo(f"✓ Scenario template saved to {output_path}")
        click.echo(f"Edit the template and run:\n  esspower solve {output_path}")

    except Exception as e:
        click.echo(f"✗ Template generation failed: {e}", err=True)
        sys.exit(1)


@cli.command()
def strategies():
    """List solver strategies in fallback order."""
    click.echo(describe_strategies())


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == '__main__':
    main()
