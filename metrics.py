"""
Metrics - Turn the scraped dataset into the ranked output table
================================================================
Drops sets without the numbers needed to rank them, then ranks by how far
the listed price sits below value, per piece. Most negative comes first.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List

from query import Query
from set_data import COLUMNS, ColumnAlignedDataset
from set_list_cache import ReferenceListEntry

logger = logging.getLogger(__name__)

OUTPUT_FIELDNAMES = list(COLUMNS) + [
    "percent_discount_from_value",
    "percent_discount_from_value_per_piece",
]

# sets with a single piece are usually polybags or mislabeled minifigs
MIN_REFERENCE_PIECES = Decimal(1)


def has_prices(row: Dict[str, Any]) -> bool:
    return row["listed_price"] is not None and row["value"] is not None


def add_discounts(row: Dict[str, Any]) -> Dict[str, Any]:
    """Attach both discount ratios to a copy of the row."""
    discount = row["listed_price"] - row["value"]
    row = dict(row)
    row["percent_discount_from_value"] = discount / row["value"]
    row["percent_discount_from_value_per_piece"] = discount / (row["value"] * row["pieces"])
    return row


def consolidate(dataset: ColumnAlignedDataset, query: Query) -> List[Dict[str, Any]]:
    """Filter, compute discount columns and sort. Returns rows for legot.csv."""
    years = query.year_strings
    rows = []
    for row in dataset.rows():
        if not has_prices(row):
            continue
        # greater/less than also drops unknown piece counts
        if not query.pieces_in_bounds(row["pieces"]):
            continue
        if years is not None and row["year"] not in years:
            continue
        if row["value"] * row["pieces"] == 0:
            logger.debug(f"  {row['set_number']}: zero value, no discount to rank")
            continue
        rows.append(add_discounts(row))

    rows.sort(key=lambda r: r["percent_discount_from_value_per_piece"])
    logger.info(f"{len(rows)} of {len(dataset)} scraped sets ranked")
    return rows


def project_reference_entries(dataset: ColumnAlignedDataset) -> List[ReferenceListEntry]:
    """The set list only keeps number, year and pieces of real sets."""
    return [
        ReferenceListEntry(row["set_number"], row["year"], row["pieces"])
        for row in dataset.rows()
        if row["pieces"] is not None and row["pieces"] > MIN_REFERENCE_PIECES
    ]
