"""Schema discovery commands."""

from typing import Annotated

import typer

from spacetimedb_mcp.cli.context import CLIContext
from spacetimedb_mcp.cli.output import OutputFormatter, to_jsonable


def tables_command(
    ctx: typer.Context,
    include_schema: Annotated[
        bool,
        typer.Option("--schema", "-s", help="Include column names and types"),
    ] = False,
) -> None:
    """List tables in the module.

    Examples:

        spacetimedb-bridge -m quickstart-chat tables
        spacetimedb-bridge -m quickstart-chat --json tables --schema
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        tables = cli_ctx.run(lambda m: m.list_tables(include_schema=include_schema))
        if cli_ctx.json_output:
            formatter.print_data(tables)
            return
        rows = []
        for t in tables:
            row = {"name": t.name, "visibility": t.visibility, "columns": t.column_count}
            if t.columns is not None:
                row["schema"] = ", ".join(f"{c.name}: {c.type}" for c in t.columns)
            rows.append(row)
        formatter.print_table(f"Tables ({len(rows)})", rows)
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)


def schema_command(
    ctx: typer.Context,
    table_name: Annotated[
        str | None,
        typer.Argument(help="Table to describe (default: whole module)"),
    ] = None,
) -> None:
    """Show schema for one table or the whole module."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        schema = cli_ctx.run(lambda m: m.get_schema(table_name))
        if cli_ctx.json_output:
            formatter.print_data(schema)
            return
        if table_name and not schema["tables"]:
            typer.echo(f"Table '{table_name}' not found.")
            available = schema.get("available_tables") or []
            if available:
                typer.echo(f"Available tables: {', '.join(available)}")
            raise typer.Exit(code=1)
        for table in schema["tables"]:
            formatter.print_table(
                f"{table['name']} ({table['visibility']})",
                table["columns"],
                ["name", "type"],
            )
    except typer.Exit:
        raise
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)


def functions_command(
    ctx: typer.Context,
    signatures: Annotated[
        bool,
        typer.Option("--signatures/--no-signatures", help="Show parameter signatures"),
    ] = True,
) -> None:
    """List reducers in the module."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        functions = cli_ctx.run(lambda m: m.list_functions(include_signatures=signatures))
        rows = to_jsonable(functions)
        if cli_ctx.json_output:
            formatter.print_data(rows)
            return
        columns = ["name", "lifecycle", "signature"] if signatures else ["name", "lifecycle"]
        formatter.print_table(f"Reducers ({len(rows)})", rows, columns)
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
