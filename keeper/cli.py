#!/usr/bin/env python3
"""Admin commands for the keeper and its audit log."""

import click

from keeper.audit.feed import KeeperFeed
from keeper.audit.schema import SchemaDefinition, compute_schema_id
from keeper.bootstrap import (
    KEEPER_SCHEMAS,
    build_ledger,
    build_publisher,
    publisher_identity,
)
from keeper.core.config import ConfigurationError, Settings
from keeper.core.logging import configure_logging


def _load_settings() -> Settings:
    settings = Settings()
    configure_logging(testing=True, level=settings.LOG_LEVEL)
    return settings


@click.group()
def cli():
    """Keeper management commands."""
    pass


@cli.command("register-schemas")
def register_schemas():
    """Register the keeper log and stream update schemas (run once)."""
    settings = _load_settings()
    try:
        publisher = build_publisher(settings, publisher_identity(settings))
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    click.echo("Registering data stream schemas...")
    for schema in KEEPER_SCHEMAS:
        handle = publisher.register_schema(schema)
        click.echo(f"\nSchema Name: {schema.name}")
        click.echo(f"  Definition: {schema.canonical}")
        click.echo(f"  Schema ID: {publisher.schema_id(schema)}")
        if handle is None:
            click.echo("  Already registered - skipping")
        else:
            click.echo(f"  Write handle: {handle}")


@cli.command("schema-id")
@click.argument("definition")
def schema_id(definition):
    """Print the schema id of a definition string."""
    try:
        schema = SchemaDefinition.parse("adhoc", definition)
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Canonical: {schema.canonical}")
    click.echo(f"Schema ID: {compute_schema_id(schema.canonical)}")


@cli.command()
@click.option("--publisher", "publisher_key", default=None, help="Keeper address")
@click.option(
    "--limit", default=None, type=int, help="Maximum number of records [FEED_LIMIT]"
)
def recent(publisher_key, limit):
    """Show the newest keeper decisions."""
    settings = _load_settings()
    try:
        key = publisher_key or publisher_identity(settings)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    feed = KeeperFeed(build_publisher(settings, key), key, limit or settings.FEED_LIMIT)
    snapshot = feed.poll()
    if snapshot.error:
        raise click.ClickException(f"Feed unavailable: {snapshot.error}")

    click.echo(f"Connected: {snapshot.is_connected}")
    if not snapshot.logs:
        click.echo("No logs found yet")
        return

    for record in snapshot.logs:
        click.echo(
            f"{record.timestamp} {record.decision.value:<7} "
            f"fee={record.fee_price} profit={record.expected_profit} "
            f"batches={record.batch_size} {record.reason}"
        )


@cli.command()
def status():
    """Show audit store statistics."""
    settings = _load_settings()
    try:
        publisher = build_publisher(settings, publisher_identity(settings))
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    stats = publisher.store.get_statistics()
    click.echo("Audit Store Status:")
    click.echo(f"  Schemas: {stats['total_schemas']}")
    click.echo(f"  Entries: {stats['total_entries']}")
    click.echo(f"  Store size: {stats['store_size_bytes'] / 1024:.1f} KB")


@cli.command()
def tick():
    """Run a single keeper tick and print its outcome."""
    from keeper.bootstrap import register_keeper_schemas
    from keeper.service.service import KeeperService

    settings = _load_settings()
    try:
        ledger = build_ledger(settings)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    publisher = build_publisher(settings, ledger.address)
    register_keeper_schemas(publisher)
    outcome = KeeperService.from_settings(settings, ledger, publisher).tick()

    click.echo(f"Status: {outcome.status.value}")
    if outcome.decision is not None:
        click.echo(f"Decision: {outcome.decision.value}")
    for batch in outcome.batches:
        result = "confirmed" if batch.ok else f"failed ({batch.error})"
        click.echo(f"  Batch of {len(batch.stream_ids)}: {result}")
    for failure in outcome.failures:
        click.echo(f"  {failure.category.value}: {failure.message}")


if __name__ == "__main__":
    cli()
