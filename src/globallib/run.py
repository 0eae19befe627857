"""
CLI runner for globallib.

Usage:
    python -m globallib.run [OPTIONS] QUERY

    # Search for a book
    python -m globallib.run "Dune"

    # Search, then find holdings of the first result near a location
    python -m globallib.run "Dune" --select 0 --location "40.75,-73.98"

    # Also render the shelf guide of the first holding
    python -m globallib.run "Dune" --select 0 --shelf 0 --out shelf.png
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .config import NavigatorConfig
from .pipeline import HoldingsStatus, PipelineController

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("globallib")


def parse_location(value: str) -> tuple[float, float]:
    """Parse a "lat,lon" pair."""
    try:
        lat, lon = (float(part) for part in value.split(","))
    except ValueError as e:
        raise argparse.ArgumentTypeError(
            f"Expected 'latitude,longitude', got {value!r}"
        ) from e
    return lat, lon


def print_results(controller: PipelineController) -> None:
    state = controller.state
    if state.error_message:
        print(state.error_message)
    if state.notice:
        print(state.notice)
    for position, book in enumerate(state.books):
        year = book.first_publish_year or "?"
        print(f"[{position}] {book.title} - {book.author_line} ({year})")


def print_holdings(controller: PipelineController) -> None:
    state = controller.state
    if state.error_message:
        print(state.error_message)
        return
    if state.holdings_status == HoldingsStatus.EMPTY:
        print("No physical copies found nearby.")
        if state.selected_book:
            print(
                "Try the digital archive: "
                f"{controller.searcher.client.get_work_url(state.selected_book)}"
            )

    for position, holding in enumerate(state.holdings):
        print(f"[{position}] {holding.library} ({holding.availability or 'unknown'})")
        print(f"    {holding.address}")
        print(f"    Call number: {holding.call_number or 'N/A'}")
        print(f"    Directions: {holding.directions}")
        if holding.website:
            print(f"    Catalog: {holding.website}")

    if state.citations:
        print("Information sourced from:")
        for citation in state.citations:
            print(f"  - {citation.title}: {citation.uri}")


async def run(controller: PipelineController, args: argparse.Namespace) -> int:
    """Run one search, and optionally a selection and a shelf view."""
    await controller.search(args.query)
    print_results(controller)

    state = controller.state
    if args.select is None:
        return 0 if state.condition is None else 1

    if not 0 <= args.select < len(state.books):
        logger.error(f"No result at position {args.select}")
        return 1

    await controller.select_book(state.books[args.select])
    print_holdings(controller)
    if state.holdings_status == HoldingsStatus.ERROR:
        return 1

    if args.shelf is None:
        return 0

    try:
        image = await controller.request_shelf_view(args.shelf)
    except IndexError:
        logger.error(f"No holding at position {args.shelf}")
        return 1
    if image is None:
        logger.error("Shelf guide could not be generated")
        return 1

    args.out.write_bytes(image.data)
    logger.info(f"Shelf guide written to {args.out}")
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="globallib: find a book and the library shelf that holds it",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m globallib.run "The Left Hand of Darkness"
    python -m globallib.run "1984" --select 0
    python -m globallib.run "1984" --select 0 --shelf 1 --out shelf.png
    python -m globallib.run --config datasette.yaml "Dune"
        """,
    )

    parser.add_argument("query", help="Title, author, or ISBN to search for")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("datasette.yaml"),
        help="Path to config file (default: datasette.yaml)",
    )
    parser.add_argument(
        "--db",
        type=Path,
        help="Override cache database path from config",
    )
    parser.add_argument(
        "--select",
        type=int,
        help="Fetch holdings for the result at this position",
    )
    parser.add_argument(
        "--location",
        type=parse_location,
        help="Location hint as 'latitude,longitude' (default: config default)",
    )
    parser.add_argument(
        "--shelf",
        type=int,
        help="Generate the shelf guide for the holding at this position",
    )
    parser.add_argument(
        "--out",
        type=Path,
        default=Path("shelf.png"),
        help="Where to write the shelf guide image (default: shelf.png)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = NavigatorConfig.from_yaml(args.config)
    if args.db:
        config.cache.db_path = args.db

    logger.info(f"Config loaded from {args.config}")
    logger.info(f"Cache database: {config.cache.db_path}")

    controller = PipelineController(config)
    if args.location:
        controller.set_location(*args.location)

    return asyncio.run(run(controller, args))


if __name__ == "__main__":
    sys.exit(main())
