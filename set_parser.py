"""
Set Parser - Field extraction for BrickEconomy set pages
=========================================================
Turns one set detail page into a PartialRecord. Each field has its own rule:

- Set number / Name: the value cell next to the label, verbatim.
- Year: a 4-digit token in the value cell's markup.
- Pieces: the leading digit run (thousands separators allowed, "1,234 & up").
- Prices: a "$" amount, from selectors outside the details section.

A missing field is None. A price or piece count that can't be parsed is also
None. Only a Year label whose cell holds no 4-digit token is fatal, since
that means the page template changed underneath us.
"""

import copy
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from bs4 import BeautifulSoup

from errors import MalformedPageError

logger = logging.getLogger(__name__)

# Labels in the details section
SET_NUMBER_LABEL = "Set number"
NAME_LABEL = "Name"
YEAR_LABEL = "Year"
PIECES_LABEL = "Pieces"

# Labels in the pricing section
RETAIL_PRICE_LABEL = "Retail price"
# market price or brickeconomy estimate, depending if the set is still at retail
VALUE_LABELS = ("Value", "Market price")

RE_YEAR = re.compile(r"[\s>](\d{4})[<\s]")
RE_NUMBER_THEN_AMPERSAND = re.compile(r"(\d+(?:,\d+)*)\s*&?")
RE_DOLLARS = re.compile(r"\$\s*(\d[\d,]*(?:\.\d+)?)")


@dataclass
class PartialRecord:
    """Whatever one page yielded. Absent fields stay None."""

    set_number: Optional[str] = None
    name: Optional[str] = None
    year: Optional[str] = None
    pieces: Optional[Decimal] = None
    retail_price: Optional[Decimal] = None
    value: Optional[Decimal] = None
    listed_price: Optional[Decimal] = None


# =============================================================================
# PARSING RULES
# =============================================================================

def to_decimal(digits: str) -> Optional[Decimal]:
    """Parse a digit string after stripping thousands separators."""
    try:
        return Decimal(digits.replace(",", ""))
    except InvalidOperation:
        return None


def parse_year(cell_html: str) -> str:
    """
    Find the 4-digit year in a value cell's markup.
    The token must sit between whitespace or tag boundaries, e.g. '>2017<'.
    """
    match = RE_YEAR.search(cell_html)
    if not match:
        raise MalformedPageError(
            "Year label present but no 4-digit year found",
            {"cell": cell_html[:80]},
        )
    return match.group(1)


def parse_pieces(text: str) -> Optional[Decimal]:
    """'1,234 & up' -> 1234. None when there is no leading number."""
    if not text:
        return None
    match = RE_NUMBER_THEN_AMPERSAND.search(text)
    if not match:
        return None
    return to_decimal(match.group(1))


def parse_price(text: str) -> Optional[Decimal]:
    """'$1,234.56' -> 1234.56. None when there is no dollar amount."""
    if not text:
        return None
    match = RE_DOLLARS.search(text)
    if not match:
        return None
    return to_decimal(match.group(1))


def markup_without_attributes(cell) -> str:
    """Cell markup with every tag's attributes dropped, e.g. '<div><a>2017</a></div>'."""
    cell = copy.copy(cell)
    for tag in [cell] + cell.find_all(True):
        tag.attrs = {}
    return str(cell)


def cell_text(cell) -> str:
    return cell.get_text(strip=True) if cell is not None else ""


# =============================================================================
# EXTRACTORS
# =============================================================================

class PageExtractor(ABC):
    """Maps a raw set page to a PartialRecord."""

    @abstractmethod
    def extract(self, html: str) -> PartialRecord:
        pass

    @abstractmethod
    def extract_year_listing(self, html: str) -> List[str]:
        pass


class BrickEconomyExtractor(PageExtractor):
    """Extracts set fields using a site profile's selectors."""

    def __init__(self, selectors: Dict[str, str]):
        self.selectors = selectors

    def parse(self, html: str) -> BeautifulSoup:
        return BeautifulSoup(html, "lxml")

    def extract(self, html: str) -> PartialRecord:
        soup = self.parse(html)
        record = PartialRecord()
        seen = set()

        for row in soup.select(self.selectors["set_details"]):
            label = row.select_one(self.selectors["detail_label"])
            if label is None:
                continue
            label = label.get_text(strip=True)
            if label in seen:
                continue
            cell = row.select_one(self.selectors["detail_value"])

            if label == SET_NUMBER_LABEL:
                seen.add(label)
                record.set_number = cell_text(cell) or None
                # push other items only once per valid set number
                if record.set_number:
                    self._extract_prices(soup, record)
            elif label == NAME_LABEL:
                seen.add(label)
                record.name = cell_text(cell)
            elif label == YEAR_LABEL:
                seen.add(label)
                record.year = parse_year(markup_without_attributes(cell)) if cell is not None else None
            elif label == PIECES_LABEL:
                seen.add(label)
                record.pieces = parse_pieces(cell_text(cell))
                if record.pieces is None:
                    logger.debug(f"  Unparseable piece count: {cell_text(cell)!r}")

        if record.set_number and record.year is None and YEAR_LABEL not in seen:
            logger.debug(f"  No year listed for {record.set_number}")
        return record

    def _extract_prices(self, soup: BeautifulSoup, record: PartialRecord) -> None:
        """Listed price, retail price and value all live outside the details section."""
        listed = soup.select_one(self.selectors["listed_price"])
        record.listed_price = parse_price(cell_text(listed))

        # sometimes there are both new and used values; new comes first
        value_count = 0
        retail_found = False
        for row in soup.select(self.selectors["price_rows"]):
            labels = row.select(self.selectors["detail_label"])
            cells = row.select(self.selectors["detail_value"])

            for index, label in enumerate(labels):
                cell = cells[index] if index < len(cells) else None

                # some labels are further nested under a hover
                nested = label.select(self.selectors["price_label_nested"])
                text = nested[-1].get_text(strip=True) if nested else label.get_text(strip=True)

                if text == RETAIL_PRICE_LABEL and not retail_found:
                    retail_found = True
                    record.retail_price = parse_price(cell_text(cell))
                elif text in VALUE_LABELS:
                    value_count += 1
                    if value_count == 1:
                        record.value = parse_price(cell_text(cell))

    def extract_year_listing(self, html: str) -> List[str]:
        """Names of the sets listed on a year page."""
        soup = self.parse(html)
        return [a.get_text(strip=True) for a in soup.select(self.selectors["year_listing"])]
