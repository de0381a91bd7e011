import asyncio
import copy
import json
from pathlib import Path
from typing import Any

import click

from .daemon.mcp_server import run_mcp_server, setup_logging
from .daemon.rpc import ToolResult
from .daemon.server import TOOLS, ToolServer
from .servers.registry import ServerRegistry, is_server_installed
from .utils.config import DEFAULT_CONFIG, get_config_path, get_log_dir, load_config, save_config


class OrderedGroup(click.Group):
    commands_order: list[str]

    def __init__(self, *args: Any, commands_order: list[str] | None = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.commands_order = commands_order or []

    def list_commands(self, ctx: click.Context) -> list[str]:
        commands = super().list_commands(ctx)
        if self.commands_order:
            ordered = [c for c in self.commands_order if c in commands]
            remaining = [c for c in commands if c not in self.commands_order]
            return ordered + remaining
        return commands


CLI_HELP = """\
lspmux runs language servers on behalf of agents and exposes them as a
catalog of tools: definitions, references, renames, diagnostics, hierarchies,
formatting and file operations, all addressed by file and symbol name or by
position.

`lspmux serve` starts the MCP server (stdio by default). `lspmux call TOOL
JSON` runs a single tool against the current directory, which is handy for
scripts and for checking that a language server works.

See `lspmux COMMAND --help` for more documentation and command-specific options.
"""


@click.group(
    cls=OrderedGroup,
    commands_order=["serve", "call", "tools", "servers", "config"],
    help=CLI_HELP,
    context_settings={"help_option_names": ["-h", "--help"], "max_content_width": 120},
)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def cli(ctx: click.Context, json_output: bool) -> None:
    ctx.ensure_object(dict)
    ctx.obj["json"] = json_output


@cli.command()
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Workspace root directory (default: current directory)",
)
@click.option(
    "--transport",
    type=click.Choice(["stdio", "http"]),
    default="stdio",
    help="MCP transport (default: stdio)",
)
@click.option("--host", default="127.0.0.1", help="Host for the http transport")
@click.option("--port", default=8765, help="Port for the http transport")
@click.pass_context
def serve(ctx: click.Context, root: Path, transport: str, host: str, port: int) -> None:
    """Run the MCP server for a workspace."""
    _ = ctx
    asyncio.run(run_mcp_server(root.resolve(), transport=transport, host=host, port=port))


async def _call_tool(root: Path, name: str, arguments: dict[str, Any]) -> ToolResult:
    tools = ToolServer(root)
    try:
        return await tools.call_tool(name, arguments)
    finally:
        await tools.shutdown()


@cli.command()
@click.argument("tool")
@click.argument("arguments", required=False, default="{}")
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Workspace root directory (default: current directory)",
)
@click.pass_context
def call(ctx: click.Context, tool: str, arguments: str, root: Path) -> None:
    """Run one tool with ARGUMENTS given as a JSON object.

    \b
    Examples:
      lspmux call find_definition '{"file_path": "src/app.ts", "symbol_name": "main"}'
      lspmux call get_diagnostics '{"file_path": "lib/util.py", "severity": "warning"}'
      lspmux call rename_symbol '{"file_path": "a.go", "symbol_name": "Run",
        "new_name": "Start", "dry_run": true}'
    """
    try:
        args = json.loads(arguments)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"ARGUMENTS is not valid JSON: {e}")
    if not isinstance(args, dict):
        raise click.ClickException("ARGUMENTS must be a JSON object")

    root = root.resolve()
    config = load_config(root)
    setup_logging(config)

    result = asyncio.run(_call_tool(root, tool, args))

    if ctx.obj["json"]:
        click.echo(json.dumps(result.model_dump(exclude_none=True), indent=2))
    else:
        click.echo(result.text, err=result.is_error)

    if result.is_error:
        if "InternalError" in result.text:
            click.echo(f"\nFull logs: {get_log_dir() / 'daemon.log'}", err=True)
        ctx.exit(1)


@cli.command()
@click.pass_context
def tools(ctx: click.Context) -> None:
    """List the available tools and their arguments."""
    if ctx.obj["json"]:
        schemas = {name: params.model_json_schema() for name, (params, _) in TOOLS.items()}
        click.echo(json.dumps(schemas, indent=2))
        return

    for name, (params, _) in TOOLS.items():
        args = []
        for field_name, field in params.model_fields.items():
            args.append(field_name if field.is_required() else f"{field_name}?")
        click.echo(f"{name}({', '.join(args)})")


@cli.command()
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Workspace root whose .lspmux.toml to include",
)
@click.pass_context
def servers(ctx: click.Context, root: Path) -> None:
    """List configured language servers and whether they are installed."""
    registry = ServerRegistry(load_config(root.resolve()))
    rows = []
    for group, server in registry.all_servers():
        rows.append(
            {
                "group": group,
                "server": server.name,
                "command": server.command,
                "extensions": server.extensions,
                "installed": is_server_installed(server),
                "install_cmd": server.install_cmd,
            }
        )

    if ctx.obj["json"]:
        click.echo(json.dumps(rows, indent=2))
        return

    for row in rows:
        mark = "installed" if row["installed"] else "missing"
        exts = ", ".join(f".{e}" for e in row["extensions"])
        click.echo(f"{row['group']}: {row['server']} ({mark}) [{exts}]")
        if not row["installed"] and row["install_cmd"]:
            click.echo(f"  install with: {row['install_cmd']}")


@cli.group(invoke_without_command=True)
@click.pass_context
def config(ctx: click.Context) -> None:
    """Print config file location and contents."""
    if ctx.invoked_subcommand is not None:
        return

    config_path = get_config_path()
    click.echo(f"Config file: {config_path}")
    click.echo()

    if config_path.exists():
        click.echo(config_path.read_text())
    else:
        click.echo("(file does not exist, using defaults)")


@config.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
@click.pass_context
def config_init(ctx: click.Context, force: bool) -> None:
    """Write a config file with the default settings."""
    _ = ctx
    config_path = get_config_path()
    if config_path.exists() and not force:
        raise click.ClickException(f"{config_path} already exists (use --force to overwrite)")

    defaults = copy.deepcopy(dict(DEFAULT_CONFIG))
    defaults.pop("servers", None)
    save_config(defaults, config_path)
    click.echo(f"Wrote {config_path}")


if __name__ == "__main__":
    cli()
