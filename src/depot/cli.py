"""
Depot CLI - Command-line interface.

Plan and run publications from the terminal.
"""

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from depot import __version__
from depot.config import DepotConfig, config_path_from_env, load_config, load_descriptor
from depot.core.exceptions import DepotError, format_exception
from depot.publish import (
    AggregateStatus,
    OutcomeStatus,
    PublicationPlan,
    PublishEngine,
    PublishResult,
    build_plan,
)
from depot.resolvers import Resolver, create_resolver

app = typer.Typer(
    name="depot",
    help="Depot - publish module artifacts to repository resolvers",
    no_args_is_help=True,
)
console = Console()

STATUS_STYLES = {
    OutcomeStatus.SUCCEEDED: "green",
    OutcomeStatus.FAILED: "red",
    OutcomeStatus.SKIPPED: "yellow",
}

AGGREGATE_STYLES = {
    AggregateStatus.SUCCEEDED: "bold green",
    AggregateStatus.PARTIAL_FAILURE: "bold yellow",
    AggregateStatus.FAILED: "bold red",
}


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load(config_path: Optional[Path]) -> DepotConfig:
    try:
        return load_config(config_path or config_path_from_env())
    except DepotError as e:
        console.print(f"[red]{format_exception(e)}[/red]")
        raise typer.Exit(1)


def _select_resolvers(config: DepotConfig, names: Optional[list[str]]) -> list[Resolver]:
    selected = config.resolvers
    if names:
        selected = [config.get_resolver(name) for name in names]
    return [create_resolver(resolver) for resolver in selected]


def _build(
    descriptor_path: Path,
    config: DepotConfig,
    confs: list[str],
    resolver_names: Optional[list[str]],
    upload_descriptor: bool,
    descriptor_file: Optional[Path],
) -> PublicationPlan:
    try:
        descriptor = load_descriptor(descriptor_path)
        resolvers = _select_resolvers(config, resolver_names)
        return build_plan(
            descriptor,
            confs or descriptor.configuration_names(),
            resolvers,
            upload_descriptor=upload_descriptor,
            descriptor_file=descriptor_file,
        )
    except DepotError as e:
        console.print(f"[red]{format_exception(e)}[/red]")
        raise typer.Exit(1)


def _plan_table(plan: PublicationPlan) -> Table:
    table = Table(title=f"Publication Plan ({len(plan)} items)")
    table.add_column("#", justify="right")
    table.add_column("Resolver", style="cyan")
    table.add_column("Kind", style="magenta")
    table.add_column("Configuration")
    table.add_column("Location")

    for index, item in enumerate(plan, start=1):
        table.add_row(
            str(index),
            item.resolver_name,
            item.kind.value,
            item.configuration or "-",
            item.location,
        )
    return table


def _result_table(result: PublishResult) -> Table:
    table = Table(title="Publication Result")
    table.add_column("Resolver", style="cyan")
    table.add_column("Kind", style="magenta")
    table.add_column("Location")
    table.add_column("Status")
    table.add_column("Detail")

    for outcome in result.outcomes:
        style = STATUS_STYLES[outcome.status]
        table.add_row(
            outcome.item.resolver_name,
            outcome.item.kind.value,
            outcome.item.location,
            f"[{style}]{outcome.status.value}[/{style}]",
            outcome.message,
        )
    return table


@app.command()
def resolvers(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file"),
):
    """List configured resolvers."""
    config = _load(config_path)

    table = Table(title=f"Resolvers ({len(config.resolvers)})")
    table.add_column("Name", style="cyan")
    table.add_column("Kind", style="magenta")
    table.add_column("Destination")
    table.add_column("Configurations")
    table.add_column("Checksums", style="green")

    for resolver_config in config.resolvers:
        resolver = create_resolver(resolver_config)
        table.add_row(
            resolver.name,
            resolver.kind.value,
            resolver.describe(),
            ", ".join(resolver_config.configurations) or "*",
            ", ".join(resolver.checksums) or "-",
        )

    console.print(table)


@app.command()
def plan(
    descriptor_path: Path = typer.Argument(..., help="Module descriptor (YAML or JSON)"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file"),
    confs: Optional[list[str]] = typer.Option(None, "--conf", help="Configuration to publish"),
    resolver_names: Optional[list[str]] = typer.Option(
        None, "--resolver", "-r", help="Only publish to these resolvers"
    ),
    upload_descriptor: bool = typer.Option(
        True, "--descriptor/--no-descriptor", help="Publish the module descriptor"
    ),
    descriptor_file: Optional[Path] = typer.Option(
        None, "--descriptor-file", help="Pre-serialized descriptor to publish verbatim"
    ),
):
    """Show what would be published, without transferring anything."""
    config = _load(config_path)
    publication = _build(
        descriptor_path, config, confs or [], resolver_names, upload_descriptor, descriptor_file
    )
    console.print(_plan_table(publication))


@app.command()
def publish(
    descriptor_path: Path = typer.Argument(..., help="Module descriptor (YAML or JSON)"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file"),
    confs: Optional[list[str]] = typer.Option(None, "--conf", help="Configuration to publish"),
    resolver_names: Optional[list[str]] = typer.Option(
        None, "--resolver", "-r", help="Only publish to these resolvers"
    ),
    upload_descriptor: bool = typer.Option(
        True, "--descriptor/--no-descriptor", help="Publish the module descriptor"
    ),
    descriptor_file: Optional[Path] = typer.Option(
        None, "--descriptor-file", help="Pre-serialized descriptor to publish verbatim"
    ),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Cancel after N seconds"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write result JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Publish module artifacts to the configured resolvers."""
    _setup_logging(verbose)
    config = _load(config_path)
    publication = _build(
        descriptor_path, config, confs or [], resolver_names, upload_descriptor, descriptor_file
    )

    module = publication.descriptor.module_id
    console.print(
        Panel.fit(
            f"[bold blue]Depot[/bold blue]\n"
            f"Module: {module}\n"
            f"Configurations: {', '.join(publication.configurations)}\n"
            f"Resolvers: {', '.join(r.name for r in publication.targets)}",
        )
    )

    engine = PublishEngine(settings=config.settings)
    try:
        result = engine.execute(publication, timeout=timeout)
    finally:
        for resolver in publication.targets:
            resolver.close()

    console.print(_result_table(result))
    style = AGGREGATE_STYLES[result.status]
    console.print(f"[{style}]{result.summary()}[/{style}]")
    if result.cancelled:
        console.print("[yellow]Publication was cancelled before completion[/yellow]")

    if output:
        output.write_text(json.dumps(result.to_dict(), indent=2))
        console.print(f"[dim]Result written to {output}[/dim]")

    if result.status != AggregateStatus.SUCCEEDED:
        raise typer.Exit(1)


@app.command()
def version():
    """Show version information."""
    console.print(f"Depot v{__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
