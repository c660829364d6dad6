"""stagechain CLI for running configured stages outside a build host - Tyro implementation."""

import asyncio
import json
import logging
import sys
from builtins import print as builtin_print
from pathlib import Path
from typing import Annotated

import attrs
import tyro
from pydantic import ValidationError
from rich import print
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from stagechain.config import CONFIG_FILENAME, StageChainConfig, get_config
from stagechain.errors import StageChainError
from stagechain.plugin import OutputOptions, StageTransformPlugin

logger = logging.getLogger(__name__)


# Subcommand definitions using attrs
@attrs.define
class Transform:
    """Run the configured stages on one file."""

    file: Annotated[Path, tyro.conf.Positional]
    """File to transform."""

    chunk: bool = False
    """Treat the file as a rendered output chunk instead of an input file."""

    sourcemap: bool = False
    """Request source maps for output chunks (input files always get them)."""

    out: Annotated[Path | None, tyro.conf.arg(aliases=["-o"])] = None
    """Write code here instead of stdout."""

    map_out: Annotated[Path | None, tyro.conf.arg(aliases=["-m"])] = None
    """Write the source map here."""


@attrs.define
class Resolve:
    """Resolve an import specifier the way the plugin does."""

    specifier: Annotated[str, tyro.conf.Positional]
    """Specifier as written in the import statement."""

    importer: Annotated[Path, tyro.conf.arg(aliases=["-i"])]
    """File containing the import."""


@attrs.define
class Stages:
    """Show the configured stages."""

    id: str | None = None
    """Also show which stages match this id and the merged options."""

    chunk: bool = False
    """Match --id against output stages."""


# Type alias for all subcommands
Command = (
    Annotated[Transform, tyro.conf.subcommand(name="transform")]
    | Annotated[Resolve, tyro.conf.subcommand(name="resolve")]
    | Annotated[Stages, tyro.conf.subcommand(name="stages")]
)


def setup_logging(debug: bool = False) -> None:
    """Configure logging with 100-character text width."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)-20s - %(levelname)-8s - %(message).100s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    if debug:
        logging.getLogger("stagechain").setLevel(logging.DEBUG)


class ConsoleHost:
    """HostContext printing warnings to stderr."""

    def __init__(self, console: Console) -> None:
        self.console = console
        self.warnings: list[str] = []

    def warn(self, message: str) -> None:
        self.warnings.append(message)
        self.console.print(f"[yellow]{escape(message)}[/yellow]", highlight=False)


def load_config(config_path: Path | None) -> StageChainConfig:
    """Load configuration from an explicit file or by discovery."""
    if config_path is not None:
        if not config_path.exists():
            print(f"[red]Configuration not found: {config_path}[/red]", file=sys.stderr)
            sys.exit(1)
        return StageChainConfig.from_yaml(config_path)
    return get_config()


def run_transform(plugin: StageTransformPlugin, cmd: Transform) -> None:
    """Transform one file and emit the code and map."""
    if not cmd.file.is_file():
        print(f"[red]File not found: {cmd.file}[/red]", file=sys.stderr)
        sys.exit(1)

    code = cmd.file.read_text(encoding="utf-8")
    identity = str(cmd.file.resolve())
    host = ConsoleHost(Console(stderr=True))

    if cmd.chunk:
        result = asyncio.run(plugin.render_chunk(code, identity, OutputOptions(sourcemap=cmd.sourcemap), host))
    else:
        result = asyncio.run(plugin.transform(code, identity, host))

    if result is None:
        print(f"[dim]No stage matches {cmd.file}; left untransformed[/dim]", file=sys.stderr)
        output_code, output_map = code, None
    else:
        output_code, output_map = result.code, result.map

    if cmd.out is not None:
        cmd.out.write_text(output_code, encoding="utf-8")
    else:
        sys.stdout.write(output_code)

    if cmd.map_out is not None:
        if output_map is None:
            print("[yellow]No source map was produced[/yellow]", file=sys.stderr)
        else:
            cmd.map_out.write_text(json.dumps(output_map, indent=2), encoding="utf-8")


def run_resolve(plugin: StageTransformPlugin, cmd: Resolve) -> None:
    """Print the resolved path, exiting 1 when resolution is deferred."""
    resolved = asyncio.run(plugin.resolve_id(cmd.specifier, str(cmd.importer.resolve())))
    if resolved is None:
        print(f"[yellow]'{cmd.specifier}' is left to the host's default resolution[/yellow]", file=sys.stderr)
        sys.exit(1)
    builtin_print(resolved)


def show_stages(plugin: StageTransformPlugin, cmd: Stages, console: Console | None = None) -> None:
    """Print a table of stages and, optionally, the selection for one id."""
    console = console or Console()
    console.print(Panel("[bold cyan]Transform Stages[/bold cyan]", expand=False))

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Kind", style="cyan")
    table.add_column("Phase", style="magenta")
    table.add_column("Include", style="green")
    table.add_column("Exclude", style="red")
    table.add_column("Options", style="yellow")

    for index, stage in enumerate(plugin.stages, start=1):
        table.add_row(
            str(index),
            stage.kind.value if stage.kind else "-",
            "output" if stage.output else "input",
            escape(str(stage.include)) if stage.include is not None else "(default)",
            escape(str(stage.exclude)) if stage.exclude is not None else "(default)",
            escape(", ".join(f"{k}={v!r}" for k, v in stage.options.items() if k != "tsconfigRaw")) or "-",
        )
    console.print(table)

    if cmd.id is None:
        return

    selection = plugin.pipeline.selector.select(cmd.id, output=cmd.chunk)
    console.print(f"\n[bold]Selection for[/bold] {escape(cmd.id)}:")
    if selection is None:
        console.print("  [dim]no stage matches; left untransformed[/dim]")
        return

    console.print(f"  kind: {selection.kind.value if selection.kind else '-'}")
    console.print(f"  stages: {' → '.join(stage.describe() for stage in selection.stages)}")
    console.print(f"  merged options: {escape(repr(selection.options))}")
    for invocation in plugin.pipeline.plan(cmd.id, output=cmd.chunk):
        console.print(f"  invoke {invocation.label}: kind={invocation.kind} options={escape(repr(invocation.options))}")


def main(
    cmd: Annotated[Command, tyro.conf.arg(name="")],
    *,
    config: Annotated[Path | None, tyro.conf.arg(help=f"Path to {CONFIG_FILENAME}")] = None,
) -> None:
    """stagechain - apply ordered transform stages with composed source maps.

    Args:
        cmd: The command to run
        config: Path to the configuration file (discovered if omitted)
    """
    try:
        settings = load_config(config)
        setup_logging(settings.debug)
        plugin = StageTransformPlugin.from_config(settings)
    except (ValidationError, StageChainError) as e:
        print(f"[red]Invalid configuration:[/red] {escape(str(e))}", file=sys.stderr)
        sys.exit(1)

    try:
        if isinstance(cmd, Transform):
            run_transform(plugin, cmd)
        elif isinstance(cmd, Resolve):
            run_resolve(plugin, cmd)
        elif isinstance(cmd, Stages):
            show_stages(plugin, cmd)
    except StageChainError as e:
        print(f"[red]Error:[/red] {escape(str(e))}", file=sys.stderr)
        sys.exit(1)


def entry_point() -> None:
    """Entry point for the stagechain command."""
    tyro.cli(main)


if __name__ == "__main__":
    entry_point()
