"""Output formatting for CLI commands."""

import json
from typing import Any

from pydantic import BaseModel
from rich.console import Console
from rich.panel import Panel
from rich.pretty import pprint
from rich.table import Table

from spacetimedb_mcp.exceptions import SpacetimeMCPError

console = Console()


def to_jsonable(data: Any) -> Any:
    """Convert pydantic models (or lists of them) to plain JSON-ready values."""
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, list):
        return [to_jsonable(item) for item in data]
    return data


class OutputFormatter:
    """Formats output for terminal or JSON mode."""

    def __init__(self, json_mode: bool = False) -> None:
        """Initialize formatter.

        Args:
            json_mode: If True, output JSON instead of Rich formatting
        """
        self.json_mode = json_mode

    def print_table(
        self,
        title: str,
        data: list[dict[str, Any]],
        columns: list[str] | None = None,
    ) -> None:
        """Print rows as a Rich table or a JSON array.

        Args:
            title: Table title
            data: List of row dictionaries
            columns: Column names to display (default: keys of the first row)
        """
        if self.json_mode:
            print(json.dumps(data, default=str, indent=2))
            return

        if columns is None:
            columns = list(data[0].keys()) if data and isinstance(data[0], dict) else []
        table = Table(title=title, show_header=True, header_style="bold magenta")
        for col in columns:
            table.add_column(col)
        for row in data:
            if isinstance(row, dict):
                table.add_row(*[_cell(row.get(col)) for col in columns])
            else:
                table.add_row(_cell(row))
        console.print(table)

    def print_success(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Print success message.

        Args:
            message: Success message
            details: Optional details to display
        """
        if self.json_mode:
            output = {"success": True, "message": message}
            if details:
                output.update(details)
            print(json.dumps(output, default=str, indent=2))
        else:
            console.print(f"✓ {message}", style="green")
            if details:
                for key, value in details.items():
                    console.print(f"  {key}: {value}", style="dim")

    def print_error(self, error: Exception) -> None:
        """Print error message.

        Args:
            error: Exception to display
        """
        if self.json_mode:
            if isinstance(error, SpacetimeMCPError):
                print(json.dumps(error.to_dict(), default=str, indent=2))
            else:
                print(json.dumps({"error": str(error)}, indent=2))
            return

        error_text = str(error)
        if isinstance(error, SpacetimeMCPError) and error.context:
            context_str = "\n".join(
                f"{k}: {v}" for k, v in error.context.items() if v not in (None, "")
            )
            if context_str:
                error_text = f"{error_text}\n\n{context_str}"
        console.print(Panel(error_text, title="[red]Error[/red]", border_style="red"))

    def print_data(self, data: Any) -> None:
        """Print generic data (models, dicts, lists).

        Args:
            data: Data to print
        """
        data = to_jsonable(data)
        if self.json_mode:
            print(json.dumps(data, default=str, indent=2))
        else:
            pprint(data, console=console, expand_all=True)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)
