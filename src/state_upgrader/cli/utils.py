"""CLI utilities for output formatting and common functionality."""

import importlib
import json
import sys
from collections.abc import Callable
from functools import wraps
from typing import Any

import click

from ..migrations.plan import MigrationPlan
from ..utils.logging import ConfigurationError, UpgraderException


class CliError(Exception):
    """Exception for CLI errors."""

    def __init__(self, message: str, exit_code: int = 1):
        """Initialize CLI error.

        Args:
            message: Error message
            exit_code: Exit code for the CLI
        """
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


def error_handler(func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator mapping errors to messages and exit codes.

    Configuration problems exit with 2, everything else with 1.
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except CliError as e:
            click.echo(click.style(f"Error: {e.message}", fg="red"), err=True)
            sys.exit(e.exit_code)
        except ConfigurationError as e:
            click.echo(click.style(f"Configuration error: {e.message}", fg="red"), err=True)
            sys.exit(2)
        except UpgraderException as e:
            click.echo(click.style(f"Error: {e.message}", fg="red"), err=True)
            sys.exit(1)

    return wrapper


def load_plan(reference: str) -> MigrationPlan:
    """Load a plan from a ``module:attribute`` reference.

    The attribute may be a MigrationPlan or a callable returning one.
    """
    module_name, sep, attribute = reference.partition(":")
    if not sep or not module_name or not attribute:
        raise CliError(
            f"Plan reference '{reference}' must look like 'package.module:attribute'",
            exit_code=2,
        )

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise CliError(f"Cannot import '{module_name}': {e}", exit_code=2) from e

    try:
        target = getattr(module, attribute)
    except AttributeError as e:
        raise CliError(
            f"Module '{module_name}' has no attribute '{attribute}'", exit_code=2
        ) from e

    plan = target() if callable(target) and not isinstance(target, MigrationPlan) else target
    if not isinstance(plan, MigrationPlan):
        raise CliError(f"'{reference}' is not a MigrationPlan", exit_code=2)
    return plan


def success_message(message: str) -> None:
    """Display a success message."""
    click.echo(click.style(f"✓ {message}", fg="green"))


def output_json(data: dict[str, Any]) -> None:
    """Output data as JSON."""
    click.echo(json.dumps(data, indent=2))


def output_table(headers: list[str], rows: list[list[str]]) -> None:
    """Output data as a formatted table."""
    if not rows:
        click.echo("No data to display")
        return

    col_widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            if i < len(col_widths):
                col_widths[i] = max(col_widths[i], len(str(cell)))

    header_row = " | ".join(
        h.ljust(w) for h, w in zip(headers, col_widths, strict=False)
    )
    click.echo(header_row)
    click.echo("-" * len(header_row))

    for row in rows:
        formatted_row = " | ".join(
            str(cell).ljust(w) for cell, w in zip(row, col_widths, strict=False)
        )
        click.echo(formatted_row)
