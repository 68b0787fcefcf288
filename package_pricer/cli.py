from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional, Tuple

import click

from .batch_runner import run_package
from .config import FlightHotelConfig, get_settings
from .db import DB_FILE, migrate
from .errors import PricerError
from .flight_sources import get_flight_source
from .normalizer import cheapest_internal_by_date
from .rate_limiter import RateLimiter
from .serp_fetcher import SerpFlightClient

logger = logging.getLogger(__name__)


def setup_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        handlers=[logging.FileHandler("pricer.log"), logging.StreamHandler()],
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _parse_date(value: str) -> date:
    """Accept ``YYYY-MM-DD`` or ``DD/MM/YYYY``."""
    fmt = "%d/%m/%Y" if "/" in value else "%Y-%m-%d"
    try:
        return datetime.strptime(value, fmt).date()
    except ValueError as exc:
        raise click.BadParameter(f"invalid date: {value}") from exc


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
def cli(verbose: bool) -> None:
    """Flight + hotel package pricer."""
    setup_logging(logging.DEBUG if verbose else logging.INFO)


@cli.command()
@click.option(
    "--config", "config_path", required=True, type=click.Path(exists=True),
    help="Package config JSON",
)
@click.option("--db", "db_path", default=None, help="SQLite database path")
def run(config_path: str, db_path: Optional[str]) -> None:
    """Price every date of a package and store the results."""
    config = FlightHotelConfig.from_json(config_path)
    result = run_package(config, db_path=db_path)
    click.echo(
        f"Package {config.package_id}: {result.prices_calculated} prices, "
        f"{len(result.errors)} errors"
    )
    for err in result.errors:
        click.echo(f"  {err}")
    if not result.success:
        raise SystemExit(1)


@cli.command()
@click.option(
    "--config", "config_path", required=True, type=click.Path(exists=True),
    help="Package config JSON",
)
@click.option("--date", "travel_date", required=True, help="Travel date")
def fetch(config_path: str, travel_date: str) -> None:
    """Print the cheapest flight per UK airport for one date."""
    config = FlightHotelConfig.from_json(config_path)
    settings = get_settings()
    source = get_flight_source(
        config.flight_api_source,
        settings,
        RateLimiter(settings.min_request_interval_s),
    )
    prices = source.fetch_prices(_parse_date(travel_date), config)
    if not prices:
        click.echo("No flights found")
    for airport, price in sorted(prices.items()):
        click.echo(f"{airport}: £{price.price_per_person}")


@cli.command()
@click.option("--package-id", required=True, type=int)
@click.option("--db", "db_path", default=DB_FILE, help="SQLite database path")
@click.option("--csv", "as_csv", is_flag=True, help="Write the matrix to CSV")
def matrix(package_id: int, db_path: str, as_csv: bool) -> None:
    """Show the stored price matrix of a package."""
    from . import matrix as price_matrix

    migrate(db_path=db_path)
    if as_csv:
        click.echo(price_matrix.load_price_matrix(package_id, db_path, output="csv"))
        return
    df = price_matrix.load_price_matrix(package_id, db_path)
    if df.empty:
        click.echo(f"No prices stored for package {package_id}")
        return
    click.echo(df.to_string())


@cli.command("internal-flights")
@click.option("--from", "from_airport", required=True)
@click.option("--to", "to_airport", required=True)
@click.option("--date", "dates", multiple=True, required=True, help="Repeatable")
def internal_flights(
    from_airport: str, to_airport: str, dates: Tuple[str, ...]
) -> None:
    """Cheapest one-way domestic flight per date."""
    client = SerpFlightClient.from_settings(get_settings())
    offers = client.search_internal_flights(
        from_airport.upper(), to_airport.upper(), [_parse_date(d) for d in dates]
    )
    cheapest = cheapest_internal_by_date(offers)
    if not cheapest:
        click.echo("No flights found")
    for day, offer in sorted(cheapest.items()):
        click.echo(
            f"{day} {offer.from_airport} ➔ {offer.to_airport} "
            f"{offer.departure_time}-{offer.arrival_time} "
            f"{offer.airline}: £{offer.price_per_person}"
        )


@cli.command()
@click.option("--config-dir", default=None, help="Directory of package configs")
@click.option("--db", "db_path", default=None, help="SQLite database path")
@click.option("--once", is_flag=True, help="Refresh now instead of scheduling")
def schedule(config_dir: Optional[str], db_path: Optional[str], once: bool) -> None:
    """Re-price auto-refresh packages daily at 03:00 UTC."""
    from . import tasks

    config_dir = config_dir or tasks.CONFIG_DIR
    if once:
        for package_id, result in tasks.refresh_all(config_dir, db_path=db_path).items():
            click.echo(
                f"Package {package_id}: {result.prices_calculated} prices, "
                f"{len(result.errors)} errors"
            )
        return
    tasks.build_scheduler(config_dir, db_path).start()


def main() -> None:
    try:
        cli()
    except PricerError as exc:
        logger.error("%s", exc)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
