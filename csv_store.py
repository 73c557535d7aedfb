"""CSV reading and writing for the set list and the output table."""

import csv
import logging
import os
from decimal import Decimal
from typing import Any, Dict, List, Sequence

logger = logging.getLogger(__name__)


def read_rows(filename: str) -> List[Dict[str, str]]:
    """Load every row of a CSV with a header. A missing file has no rows."""
    if not os.path.exists(filename):
        logger.debug(f"{filename} does not exist yet")
        return []

    with open(filename, 'r', newline='', encoding='utf-8') as f:
        return list(csv.DictReader(f))


def format_cell(value: Any) -> str:
    """None becomes an empty cell; Decimals are written in plain notation."""
    if value is None:
        return ""
    if isinstance(value, Decimal) and value.is_finite():
        return format(value, "f")
    return str(value)


def save_to_csv(records: Sequence[Dict[str, Any]], filename: str,
                fieldnames: Sequence[str]) -> None:
    """Write records under the given header, replacing the file."""
    with open(filename, 'w', newline='', encoding='utf-8') as f:
        writer = csv.DictWriter(f, fieldnames=list(fieldnames), extrasaction='ignore')
        writer.writeheader()
        for record in records:
            writer.writerow({name: format_cell(record.get(name)) for name in fieldnames})

    logger.info(f"✓ Saved {len(records)} records to {filename}")
