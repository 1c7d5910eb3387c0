"""SpacetimeDB bridge CLI - Main entry point."""

import logging
import sys
from typing import Annotated

import typer

import spacetimedb_mcp
from spacetimedb_mcp.cli.context import CLIContext, get_module_name
from spacetimedb_mcp.core.config import get_server_uri

# Create main Typer app
app = typer.Typer(
    name="spacetimedb-bridge",
    help="SpacetimeDB bridge CLI - schema, queries and reducers from the terminal",
    no_args_is_help=True,
)

# Store CLI context globally (will be set in callback)
state: dict[str, CLIContext] = {}


@app.callback()
def main_callback(
    ctx: typer.Context,
    uri: Annotated[
        str | None,
        typer.Option(
            "--uri",
            "-u",
            envvar="SPACETIMEDB_URI",
            help="Server URI (ws://, wss://, http:// or https://)",
        ),
    ] = None,
    module: Annotated[
        str | None,
        typer.Option(
            "--module",
            "-m",
            envvar="SPACETIMEDB_MODULE",
            help="Database/module name",
        ),
    ] = None,
    token: Annotated[
        str | None,
        typer.Option(
            "--token",
            "-t",
            envvar="SPACETIMEDB_TOKEN",
            help="Bearer token for authenticated access",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            "-j",
            help="Output as JSON (machine-readable)",
        ),
    ] = False,
) -> None:
    """Initialize CLI context with global options."""
    cli_ctx = CLIContext(
        uri=get_server_uri(uri),
        module_name=get_module_name(module),
        token=token,
        json_output=json_output,
    )

    # Store in Typer context for command access
    ctx.obj = cli_ctx
    state["cli_ctx"] = cli_ctx


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"spacetimedb-mcp v{spacetimedb_mcp.__version__}")


@app.command()
def serve(ctx: typer.Context) -> None:
    """Run the MCP server over stdio, using the global options as connection defaults."""
    from spacetimedb_mcp.integrations.mcp.server import create_server

    cli_ctx: CLIContext = ctx.obj
    # stdout carries the stdio transport
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    server = create_server(cli_ctx.uri, cli_ctx.module_name, cli_ctx.token)
    server.run(transport="stdio")


# Register commands
from spacetimedb_mcp.cli.commands import data, schema

app.command(name="tables")(schema.tables_command)
app.command(name="schema")(schema.schema_command)
app.command(name="functions")(schema.functions_command)
app.command(name="query")(data.query_command)
app.command(name="sql")(data.sql_command)
app.command(name="call")(data.call_command)
app.command(name="identity")(data.identity_command)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
