"""Data commands: query tables, run SQL, call reducers."""

from typing import Annotated

import typer

from spacetimedb_mcp.cli.context import CLIContext
from spacetimedb_mcp.cli.output import OutputFormatter
from spacetimedb_mcp.cli.parsing import parse_arguments, parse_filter


def query_command(
    ctx: typer.Context,
    table_name: Annotated[str, typer.Argument(help="Table to query")],
    where: Annotated[
        list[str] | None,
        typer.Option("--where", "-w", help="Equality filter column=value (repeatable)"),
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-l", help="Maximum rows")] = 100,
    offset: Annotated[int, typer.Option("--offset", "-o", help="Rows to skip")] = 0,
) -> None:
    """Query a table; rows are decoded using the module schema.

    Examples:

        spacetimedb-bridge -m quickstart-chat query user --where online=true --limit 10
        spacetimedb-bridge -m quickstart-chat query message -w 'text="hi"'
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        filters = parse_filter(where)
        result = cli_ctx.run(lambda m: m.query_table(table_name, filters, limit, offset))
        if cli_ctx.json_output:
            formatter.print_data(result)
            return
        typer.echo(result.query)
        formatter.print_table(f"{table_name} ({result.total_count} rows)", result.rows)
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)


def sql_command(
    ctx: typer.Context,
    query: Annotated[str, typer.Argument(help="SQL query to execute")],
) -> None:
    """Execute raw SQL against the module."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        result = cli_ctx.run(lambda m: m.execute_raw(query))
        if cli_ctx.json_output:
            formatter.print_data(result)
        elif result.rows:
            formatter.print_table(f"{result.row_count} rows", result.rows)
        else:
            typer.echo("Query executed successfully (no results)")
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)


def call_command(
    ctx: typer.Context,
    reducer_name: Annotated[str, typer.Argument(help="Reducer to call")],
    args: Annotated[
        list[str] | None,
        typer.Argument(help="Arguments: one JSON array, or values parsed as JSON"),
    ] = None,
) -> None:
    """Call a reducer.

    Examples:

        spacetimedb-bridge -m quickstart-chat call set_name Alice
        spacetimedb-bridge -m quickstart-chat call send_message '["hello"]'
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        parsed = parse_arguments(args)
        result = cli_ctx.run(lambda m: m.call_function(reducer_name, parsed))
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)

    if cli_ctx.json_output:
        formatter.print_data(result)
    elif result.status == "success":
        formatter.print_success(f"Reducer '{reducer_name}' called", {"message": result.message})
    else:
        formatter.print_error(RuntimeError(result.message))
    if result.status != "success":
        raise typer.Exit(code=1)


def identity_command(ctx: typer.Context) -> None:
    """Show the identity used for the connection."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        formatter.print_data(cli_ctx.run(lambda m: m.get_identity()))
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
