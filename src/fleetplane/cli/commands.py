# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""fleetplane command line interface.

Long-running commands (``api``, ``sentinel``, ``adapter``, ``dev``) run
under asyncio.run and shut down gracefully on SIGINT/SIGTERM. Offline
commands (``rules evaluate``, ``config validate``) never touch the
network.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, NoReturn

import click
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from fleetplane import __version__
from fleetplane.errors import FleetError

console = Console()

EXIT_TRUE = 0
EXIT_FALSE = 1
EXIT_ERROR = 2


@click.group()
@click.version_option(__version__, prog_name="fleetplane")
@click.option(
    "--log-level",
    default=None,
    help="Log level (default: FLEET_LOG_LEVEL or INFO)",
)
def cli(log_level: str | None) -> None:
    """Fleet reconciliation control plane."""
    from fleetplane.runtime import configure_logging

    configure_logging(log_level)


def _fail(message: str) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise SystemExit(1)


@cli.command("api")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None)
def api_cmd(config_path: str | None) -> None:
    """Run the Resource Store API."""
    from fleetplane.runtime import load_api_server_config, run_api

    try:
        config = load_api_server_config(config_path)
    except FleetError as e:
        _fail(e.message)
    console.print(
        f"[bold blue]Starting Resource Store API on {config.host}:{config.port} "
        f"({config.store} store)[/bold blue]"
    )
    raise SystemExit(asyncio.run(run_api(config)))


@cli.command("sentinel")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None)
@click.option("--bus-config", "bus_config_path", type=click.Path(dir_okay=False), default=None)
def sentinel_cmd(config_path: str | None, bus_config_path: str | None) -> None:
    """Run a Sentinel shard."""
    from fleetplane.runtime import load_sentinel_config, run_sentinel

    try:
        config = load_sentinel_config(config_path, bus_config_path)
    except FleetError as e:
        _fail(e.message)
    console.print(
        f"[bold blue]Starting Sentinel for {', '.join(config.resource_types)} "
        f"(selector: {config.label_selector or '<all>'})[/bold blue]"
    )
    raise SystemExit(asyncio.run(run_sentinel(config)))


@cli.command("adapter")
@click.option(
    "--config",
    "config_paths",
    type=click.Path(dir_okay=False),
    multiple=True,
    required=True,
    help="Adapter definition YAML (repeatable)",
)
@click.option("--runtime-config", "runtime_config_path", type=click.Path(dir_okay=False), default=None)
def adapter_cmd(config_paths: tuple[str, ...], runtime_config_path: str | None) -> None:
    """Run one or more adapters."""
    from fleetplane.adapter import load_adapter_config
    from fleetplane.runtime import load_adapter_runtime_config, run_adapters

    try:
        configs = [load_adapter_config(path) for path in config_paths]
        runtime_config = load_adapter_runtime_config(runtime_config_path)
    except FleetError as e:
        _fail(e.message)
    console.print(
        f"[bold blue]Starting adapters: {', '.join(c.name for c in configs)}[/bold blue]"
    )
    raise SystemExit(asyncio.run(run_adapters(configs, runtime_config)))


@cli.command("dev")
@click.option(
    "--adapter",
    "adapter_paths",
    type=click.Path(dir_okay=False),
    multiple=True,
    help="Adapter definition YAML (repeatable)",
)
@click.option("--port", default=8080, show_default=True, help="API port")
@click.option("--poll-interval", default=5.0, show_default=True, help="Sentinel tick seconds")
def dev_cmd(adapter_paths: tuple[str, ...], port: int, poll_interval: float) -> None:
    """Run store, Sentinel and adapters in one process (in-memory)."""
    from fleetplane.adapter import load_adapter_config
    from fleetplane.runtime import run_dev

    try:
        configs = [load_adapter_config(path) for path in adapter_paths]
    except FleetError as e:
        _fail(e.message)
    console.print(f"[bold blue]Dev stack: API on :{port}, {len(configs)} adapter(s)[/bold blue]")
    raise SystemExit(asyncio.run(run_dev(configs, port, poll_interval)))


@cli.group()
def rules() -> None:
    """Offline rule tooling."""


def _read_document(path: str) -> Any:
    text = Path(path).read_text(encoding="utf-8")
    if path.endswith(".json"):
        return json.loads(text)
    return yaml.safe_load(text)


@rules.command("evaluate")
@click.option("--rules", "rules_path", type=click.Path(exists=True, dir_okay=False), required=True)
@click.option("--context", "context_path", type=click.Path(exists=True, dir_okay=False), required=True)
def rules_evaluate_cmd(rules_path: str, context_path: str) -> None:
    """Evaluate a rule list against a context document.

    Exit codes: 0 when the rules hold, 1 when they do not, 2 on error.
    """
    from fleetplane.rules import evaluate_rules, explain_rules, parse_rules

    try:
        raw_rules = _read_document(rules_path)
        if isinstance(raw_rules, dict) and "rules" in raw_rules:
            raw_rules = raw_rules["rules"]
        if not isinstance(raw_rules, list):
            raise ValueError("rules file must contain a list of rules")
        parsed = parse_rules(raw_rules)
        context = _read_document(context_path)
        if not isinstance(context, dict):
            raise ValueError("context document must be a mapping")
    except (OSError, ValueError, yaml.YAMLError, ValidationError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise SystemExit(EXIT_ERROR) from e

    table = Table(title="Rule evaluation")
    table.add_column("Rule")
    table.add_column("Result")
    for explanation in explain_rules(parsed, context):
        if explanation.error is not None:
            outcome = f"[yellow]error: {explanation.error}[/yellow]"
        elif explanation.passed:
            outcome = "[green]true[/green]"
        else:
            outcome = "[red]false[/red]"
        table.add_row(explanation.rule, outcome)
    console.print(table)

    try:
        result = evaluate_rules(parsed, context)
    except FleetError as e:
        console.print(f"[bold red]Evaluation error:[/bold red] {e.message}")
        raise SystemExit(EXIT_ERROR) from e
    console.print(f"[bold]Result:[/bold] {'[green]true' if result else '[red]false'}")
    raise SystemExit(EXIT_TRUE if result else EXIT_FALSE)


@cli.group()
def config() -> None:
    """Configuration tooling."""


@config.command("validate")
@click.argument("paths", nargs=-1, required=True, type=click.Path(dir_okay=False))
def config_validate_cmd(paths: tuple[str, ...]) -> None:
    """Validate adapter definition files."""
    from fleetplane.adapter import load_adapter_config

    failed = False
    for path in paths:
        try:
            adapter = load_adapter_config(path)
        except FleetError as e:
            failed = True
            console.print(f"[bold red]{path}: FAIL[/bold red]")
            console.print(f"  [red]{e.message}[/red]")
            continue
        console.print(
            f"[bold green]{path}: PASS[/bold green] "
            f"(adapter '{adapter.name}' for {adapter.resource_type}, "
            f"{adapter.action.backend} backend)"
        )
    raise SystemExit(1 if failed else 0)


@cli.command("trigger")
@click.argument("resource_type")
@click.argument("resource_id")
@click.option("--store-url", envvar="FLEET_STORE_URL", default="http://localhost:8080", show_default=True)
@click.option("--bus-config", "bus_config_path", type=click.Path(dir_okay=False), default=None)
def trigger_cmd(
    resource_type: str, resource_id: str, store_url: str, bus_config_path: str | None
) -> None:
    """Publish a Manual reconcile event for one resource."""
    from fleetplane.runtime import load_event_bus_config, trigger_reconcile

    try:
        bus_config = load_event_bus_config(bus_config_path)
        if bus_config.type == "inmemory":
            console.print(
                "[yellow]Warning: in-memory bus selected; no other process will "
                "see this event. Set FLEET_KAFKA_BOOTSTRAP_SERVERS or --bus-config.[/yellow]"
            )
        event = asyncio.run(
            trigger_reconcile(store_url, bus_config, resource_type, resource_id)
        )
    except FleetError as e:
        _fail(e.message)
    console.print(
        f"[bold green]Published reconcile for {resource_type}/{resource_id} "
        f"at generation {event.generation}[/bold green] (correlation id {event.correlation_id})"
    )


if __name__ == "__main__":
    cli()
