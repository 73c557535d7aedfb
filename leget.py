#!/usr/bin/env python3
"""
leget - LEGO set discount finder for BrickEconomy
==================================================
Scrapes BrickEconomy set pages over a range of set numbers, compares each
set's cheapest listing against its value, and ranks sets by discount per
piece. Also maintains set_list.csv, the list of set numbers known to exist.

Usage:
  python leget.py -S 75000 75400        # build/extend set_list.csv
  python leget.py -s 75000 75400        # scrape sets in the list -> legot.csv
  python leget.py -s 75000 75010 --skip-set-list
  python leget.py -y 2019 2020          # list sets released in those years
"""

import argparse
import logging
import sys
from decimal import Decimal, InvalidOperation

from errors import ConfigError, LegetError
from query import MAX_YEAR, MIN_YEAR, Query
from scraper_engine import ScrapeManager
from site_profiles import get_site_profile, list_sites

logger = logging.getLogger(__name__)


def configure_logging(verbose=False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    # keep per-request chatter out of the progress output
    logging.getLogger("httpx").setLevel(logging.WARNING)


def decimal_arg(text):
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {text!r}")
    if value.is_nan():
        raise argparse.ArgumentTypeError(f"not a number: {text!r}")
    return value


def year_arg(text):
    try:
        year = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a year: {text!r}")
    if not MIN_YEAR <= year < MAX_YEAR:
        raise argparse.ArgumentTypeError(f"{year} is not in {MIN_YEAR}..{MAX_YEAR - 1}")
    return year


def build_parser():
    parser = argparse.ArgumentParser(
        prog="leget",
        description="Find discounted LEGO sets on BrickEconomy, ranked by discount per piece.",
    )

    year_group = parser.add_mutually_exclusive_group()
    year_group.add_argument(
        "-y", "--years",
        type=year_arg,
        nargs="+",
        help="Release years of sets to scan for, e.g. 2020 2021 2022.",
    )
    year_group.add_argument(
        "--all-years",
        action="store_true",
        help=f"Scan every year from {MIN_YEAR} (oldest on brickeconomy) to now.",
    )

    range_group = parser.add_mutually_exclusive_group()
    range_group.add_argument(
        "-s", "--set-number-range",
        type=int,
        nargs=2,
        metavar=("LOW", "HIGH"),
        help="Scrape sets by number. You must give a range.",
    )
    range_group.add_argument(
        "-S", "--update-set-list",
        type=int,
        nargs=2,
        metavar=("LOW", "HIGH"),
        help="Scan a range of set numbers and add the ones that exist to the set list.",
    )

    parser.add_argument(
        "--skip-set-list",
        action="store_true",
        help="Don't filter the range against the stored set list.",
    )
    parser.add_argument(
        "--min-pieces",
        type=decimal_arg,
        default=None,
        help="Only rank sets with more pieces than this (default: 1).",
    )
    parser.add_argument(
        "--max-pieces",
        type=decimal_arg,
        default=None,
        help="Only rank sets with fewer pieces than this (default: no limit).",
    )
    parser.add_argument(
        "--site",
        type=str.lower,
        choices=list_sites(),
        default="brickeconomy",
        help="Site profile to scrape (default: brickeconomy).",
    )
    parser.add_argument(
        "-o", "--output",
        help="Where to write the ranked table (default: legot.csv).",
    )
    parser.add_argument(
        "--set-list",
        help="Path of the stored set list (default: set_list.csv).",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log debug output.",
    )
    return parser


def query_from_args(args):
    return Query.from_options(
        years=args.years,
        all_years=args.all_years,
        set_number_range=args.set_number_range,
        update_set_list_range=args.update_set_list,
        skip_reference_filter=args.skip_set_list,
        min_pieces=args.min_pieces,
        max_pieces=args.max_pieces,
    )


def main(argv=None):
    """Main entry point for the scraper."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        site_profile = get_site_profile(args.site)
        query = query_from_args(args)
    except ConfigError as e:
        parser.error(str(e))

    if query.set_number_range is None and not query.years:
        parser.error("Nothing to do: give --set-number-range, --update-set-list or --years")

    try:
        with ScrapeManager(site_profile, query,
                           output_file=args.output,
                           set_list_file=args.set_list) as manager:
            manager.run()
    except LegetError as e:
        logger.error(f"\n✗ {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
