"""Rendering of command results, as plain text or as a JSON envelope.

JSON mode wraps results as {"success": true, "data": ...} and failures as
{"success": false, "error": {"type", "message", "help"}}, so scripts can
branch on a single field.
"""

import json
import sys
from typing import Any

import click


def format_json(data: Any) -> str:
    """Serialize a result in the success envelope."""
    return json.dumps({"success": True, "data": data}, indent=2, default=str)


def format_error_json(
    error: Exception,
    error_type: str | None = None,
    help_text: str | None = None,
) -> str:
    """Serialize an error envelope."""
    detail = {
        "type": error_type or type(error).__name__,
        "message": str(error),
        "help": help_text or "",
    }
    return json.dumps({"success": False, "error": detail}, indent=2)


def _align(lines: list[list[str]]) -> list[str]:
    widths = [max(len(str(line[i])) for line in lines) for i in range(len(lines[0]))]

    def render(cells: list[str]) -> str:
        return "  ".join(str(cell).ljust(width) for cell, width in zip(cells, widths)).rstrip()

    return [render(line) for line in lines]


class OutputHandler:
    """Writes command results in the mode selected by --json."""

    def __init__(self, json_mode: bool = False):
        self.json_mode = json_mode

    def success(self, data: Any, human_message: str | None = None) -> None:
        if self.json_mode:
            click.echo(format_json(data))
            return
        click.echo(human_message if human_message else json.dumps(data, indent=2, default=str))

    def error(
        self,
        error: Exception,
        error_type: str | None = None,
        help_text: str | None = None,
    ) -> None:
        """Report a failure and exit with status 1."""
        if self.json_mode:
            click.echo(format_error_json(error, error_type, help_text))
        else:
            click.secho(f"Error: {error}", fg="red", err=True)
            if help_text:
                click.echo(help_text, err=True)
        sys.exit(1)

    def table(self, headers: list[str], rows: list[list[str]]) -> None:
        """Print aligned columns, or a list of header-keyed objects in JSON mode."""
        if self.json_mode:
            click.echo(format_json([dict(zip(headers, row)) for row in rows]))
            return

        header, *body = _align([headers, *rows])
        click.secho(header, bold=True)
        click.echo("=" * len(header))
        for line in body:
            click.echo(line)
