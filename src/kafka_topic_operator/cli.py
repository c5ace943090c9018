"""Typer CLI for the KafkaTopic operator."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from kafka_topic_operator.config.loader import load_manifests, load_operator_config
from kafka_topic_operator.config.models import OperatorConfig
from kafka_topic_operator.observability.health import Status, check_operator_health
from kafka_topic_operator.observability.logging import configure_logging
from kafka_topic_operator.reconcile.errors import UserInputError
from kafka_topic_operator.resources.crd import render_crd
from kafka_topic_operator.resources.kafka_topic import (
    API_VERSION,
    KIND,
    parse_kafka_topic,
)

console = Console()
app = typer.Typer(name="kafka-topic-operator", help="KafkaTopic operator CLI")


def _load_config(config_path: str | None) -> OperatorConfig:
    if config_path is not None and not Path(config_path).exists():
        console.print(f"[red]Config file not found: {config_path}[/red]")
        raise typer.Exit(1)
    try:
        return load_operator_config(Path(config_path) if config_path else None)
    except (ValueError, TypeError) as exc:
        console.print(f"[red]Invalid config:[/red] {exc}")
        raise typer.Exit(1) from exc


@app.command()
def run(
    config_path: str | None = typer.Option(
        None, "--config", "-c", help="Operator config YAML"
    ),
) -> None:
    """Run the operator: watch KafkaTopic resources and reconcile topics."""
    config = _load_config(config_path)
    configure_logging(config.logging.level, json_output=config.logging.json_output)

    from kafka_topic_operator.controller.runner import Operator

    Operator(config).start()


@app.command()
def validate(
    manifest_path: str = typer.Argument(..., help="Path to KafkaTopic manifest YAML"),
) -> None:
    """Validate KafkaTopic manifests without touching the cluster."""
    try:
        docs = load_manifests(manifest_path)
    except (FileNotFoundError, ValueError, TypeError) as exc:
        console.print(f"[red]Cannot read manifest:[/red] {exc}")
        raise typer.Exit(1) from exc

    table = Table(title="KafkaTopics")
    table.add_column("Name", style="cyan")
    table.add_column("Namespace")
    table.add_column("Topic")
    table.add_column("Partitions", justify="right")
    table.add_column("Replication", justify="right")
    table.add_column("Broker")

    topics = [d for d in docs if d.get("kind") == KIND]
    if not topics:
        console.print(f"[yellow]No {KIND} documents in {manifest_path}[/yellow]")
        raise typer.Exit(1)

    for doc in topics:
        if doc.get("apiVersion") != API_VERSION:
            console.print(
                f"[red]Validation error:[/red] apiVersion must be {API_VERSION}, "
                f"got {doc.get('apiVersion')!r}"
            )
            raise typer.Exit(1)
        try:
            handle, spec = parse_kafka_topic(doc)
        except UserInputError as exc:
            console.print(f"[red]Validation error:[/red] {exc}")
            raise typer.Exit(1) from exc
        table.add_row(
            handle.name,
            handle.namespace or "(default)",
            spec.topic_name,
            str(spec.partitions),
            str(spec.replication_factor),
            spec.bootstrap_server or "(operator default)",
        )

    console.print(table)
    console.print(f"[green]Valid[/green]: {len(topics)} {KIND}(s)")


@app.command()
def crd() -> None:
    """Print the KafkaTopic CustomResourceDefinition manifest."""
    typer.echo(render_crd(), nl=False)


@app.command()
def health(
    config_path: str | None = typer.Option(
        None, "--config", "-c", help="Operator config YAML"
    ),
) -> None:
    """Check connectivity to Kafka and the Kubernetes API."""
    config = _load_config(config_path)
    result = asyncio.run(check_operator_health(config))

    table = Table(title="Operator Health")
    table.add_column("Component", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")

    for c in result.components:
        style = "green" if c.status == Status.HEALTHY else "red"
        table.add_row(c.name, f"[{style}]{c.status}[/{style}]", c.detail)

    console.print(table)
    if not result.healthy:
        raise typer.Exit(1)
