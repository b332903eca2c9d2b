#!/usr/bin/env python3
"""
CLI for Zone Aggregates

Commands:
    seed-fixtures    - Load fixture geo values + zone weights
    import-rent      - Import a rent CSV for one period year
    get-aggregate    - Compute/read one zone aggregate and print it
    list-aggregates  - Show registered aggregate plugins

Usage:
    zonestats seed-fixtures
    zonestats import-rent data/rent_2024.csv --year 2024 --dry-run
    zonestats get-aggregate paris rent.v1 -p year=latest
    zonestats list-aggregates
"""

import json
import sys
from pathlib import Path

import click

from zonestats import __version__
from zonestats.constants import DEFAULT_GEO_LEVEL

DEFAULT_FIXTURES_DIR = Path(__file__).parent / 'fixtures'


def get_app(ctx):
    """Flask app from the click context, created on first use."""
    ctx.ensure_object(dict)
    if 'app' not in ctx.obj:
        from zonestats.app import create_app
        ctx.obj['app'] = create_app()
    return ctx.obj['app']


def get_service(app):
    from zonestats.routes.zone_aggregates import SERVICE_EXTENSION_KEY
    return app.extensions[SERVICE_EXTENSION_KEY]


def parse_param_pairs(pairs):
    params = {}
    for pair in pairs:
        key, sep, value = pair.partition('=')
        if not sep or not key.strip():
            raise click.BadParameter(f"Expected key=value, got {pair!r}", param_hint='-p/--param')
        params[key.strip()] = value.strip()
    return params


@click.group()
@click.version_option(version=__version__, prog_name="zonestats")
@click.pass_context
def cli(ctx):
    """Zone Aggregates CLI - import inputs and query zone aggregates."""
    ctx.ensure_object(dict)


@cli.command("seed-fixtures")
@click.argument("fixtures_dir", type=click.Path(exists=True, file_okay=False), required=False)
@click.pass_context
def seed_fixtures_command(ctx, fixtures_dir):
    """
    Load rent_geo_values.json and zone_geo_map.json.

    FIXTURES_DIR: directory holding both files (defaults to bundled fixtures)
    """
    from zonestats.services.zone_aggregates.importers import seed_fixtures

    fixtures_dir = Path(fixtures_dir) if fixtures_dir else DEFAULT_FIXTURES_DIR
    app = get_app(ctx)

    with app.app_context():
        service = get_service(app)
        try:
            geo_count, weight_count = seed_fixtures(
                fixtures_dir,
                service.registry,
                service.geo_aggregate_store,
                service.zone_geo_map_store,
            )
        except FileNotFoundError as e:
            click.secho(f"Error: {e}", fg="red")
            sys.exit(1)

    click.secho(f"Loaded {geo_count} geo values and {weight_count} zone weights", fg="green")


@cli.command("import-rent")
@click.argument("csv_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--year", required=True, type=click.IntRange(1900, 2100), help="Period year of the dataset")
@click.option("--geo-level", default=DEFAULT_GEO_LEVEL, show_default=True)
@click.option("--segment-key", default="ALL_ALL", show_default=True)
@click.option("--source", default="public.rent", show_default=True)
@click.option("--source-version", default=None, help="Defaults to the year")
@click.option("--attribution", default=None)
@click.option("--dry-run", is_flag=True, help="Parse and validate only")
@click.pass_context
def import_rent_command(ctx, csv_path, year, geo_level, segment_key, source, source_version,
                        attribution, dry_run):
    """
    Import geo-level rent values from a CSV file.

    CSV_PATH: comma, semicolon or tab separated rent dataset
    """
    from zonestats.services.zone_aggregates.importers import import_rent_csv

    app = get_app(ctx)

    with app.app_context():
        try:
            stats = import_rent_csv(
                csv_path,
                get_service(app).geo_aggregate_store,
                year=year,
                geo_level=geo_level,
                segment_key=segment_key,
                source=source,
                source_version=source_version,
                attribution=attribution,
                dry_run=dry_run,
            )
        except ValueError as e:
            click.secho(f"Error: {e}", fg="red")
            sys.exit(1)

    if dry_run:
        click.secho("DRY RUN - nothing written", fg="yellow")
    click.echo(stats.summary())
    for sample in stats.invalid_samples:
        click.echo(f"  - {sample}")


@cli.command("get-aggregate")
@click.argument("zone_id")
@click.argument("aggregate_id")
@click.option("--param", "-p", "param_pairs", multiple=True, help="Aggregate param as key=value")
@click.pass_context
def get_aggregate_command(ctx, zone_id, aggregate_id, param_pairs):
    """Compute (or read from cache) one aggregate and print it as JSON."""
    from pydantic import ValidationError
    from zonestats.services.zone_aggregates.errors import ZoneAggregateError

    params = parse_param_pairs(param_pairs)
    app = get_app(ctx)

    with app.app_context():
        try:
            result = get_service(app).get_aggregate(zone_id, aggregate_id, params)
        except ZoneAggregateError as e:
            click.secho(f"{e.code}: {e.message}", fg="red")
            sys.exit(1)
        except ValidationError as e:
            click.secho(f"INVALID_PARAMS: {e.error_count()} issue(s)", fg="red")
            click.echo(str(e))
            sys.exit(1)

    click.echo(json.dumps(result.to_dict(), indent=2))


@cli.command("list-aggregates")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def list_aggregates_command(ctx, output_json):
    """List registered aggregate plugins."""
    app = get_app(ctx)
    aggregates = get_service(app).list_aggregates()

    if output_json:
        click.echo(json.dumps(aggregates, indent=2))
        return

    for item in aggregates:
        display = item["display"]
        unit = f" ({display['unit']})" if display.get("unit") else ""
        click.echo(f"{item['id']} v{item['version']}  {display['label']}{unit}")


if __name__ == "__main__":
    cli()
