"""
Set List Cache - The stored list of sets known to exist
========================================================
set_list.csv records every set number an update pass found, with its year
and piece count. Normal scrapes use it to skip numbers that don't exist.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from csv_store import read_rows, save_to_csv

logger = logging.getLogger(__name__)

SET_LIST_FIELDNAMES = ["set_number", "year", "pieces"]


@dataclass(frozen=True)
class ReferenceListEntry:
    set_number: str
    year: Optional[str] = None
    pieces: Optional[Decimal] = None

    def to_row(self) -> dict:
        return {"set_number": self.set_number, "year": self.year, "pieces": self.pieces}


def set_number_key(set_number: str) -> Tuple:
    """Sort '75192-1' by its number, then its variant."""
    number, _, variant = set_number.partition("-")
    if number.isdigit() and (not variant or variant.isdigit()):
        return (0, int(number), int(variant or 0), set_number)
    return (1, 0, 0, set_number)


def _optional_decimal(text: Optional[str]) -> Optional[Decimal]:
    if not text:
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        logger.warning(f"Ignoring unreadable piece count {text!r} in set list")
        return None


class SetListCache:
    """Loads, filters and updates set_list.csv."""

    def __init__(self, path: str = "set_list.csv"):
        self.path = path

    def _read_entries(self) -> List[ReferenceListEntry]:
        """Entries in file order, which is what keep-first merging relies on."""
        entries = []
        for row in read_rows(self.path):
            set_number = (row.get("set_number") or "").strip()
            if not set_number:
                continue
            entries.append(ReferenceListEntry(
                set_number=set_number,
                year=(row.get("year") or "").strip() or None,
                pieces=_optional_decimal((row.get("pieces") or "").strip()),
            ))
        return entries

    def load(self) -> Set[ReferenceListEntry]:
        """Load the stored set list. A missing file is an empty list."""
        entries = set(self._read_entries())
        logger.info(f"Loaded {len(entries)} known sets from {self.path}")
        return entries

    def filter(self, requested: Iterable[str], query,
               entries: Optional[Set[ReferenceListEntry]] = None) -> List[str]:
        """
        Narrow the requested set numbers down to ones the list knows about
        and whose piece count (and year, when asked for) fit the query.
        Pass already loaded entries to avoid reading the file again.
        """
        if entries is None:
            entries = self.load()
        wanted = set(requested)
        years = query.year_strings
        valid = set()
        for entry in entries:
            if entry.set_number not in wanted:
                continue
            if not query.pieces_in_bounds(entry.pieces):
                continue
            if years is not None and entry.year not in years:
                continue
            valid.add(entry.set_number)
        logger.info(f"{len(valid)} of {len(wanted)} requested sets are in the set list")
        return sorted(valid, key=set_number_key)

    def merge(self, new_entries: Sequence[ReferenceListEntry]) -> List[ReferenceListEntry]:
        """
        Add newly scraped sets to the stored list and persist it.

        Duplicates are dropped by set number, keeping whichever entry was
        seen first (stored entries come before new ones), so merging the same
        entries twice leaves the list unchanged.
        """
        existing = self._read_entries()
        merged = {}
        for entry in existing + list(new_entries):
            if entry.set_number not in merged:
                merged[entry.set_number] = entry

        entries = sorted(merged.values(), key=lambda e: set_number_key(e.set_number))
        added = len(entries) - len({entry.set_number for entry in existing})
        self.save(entries)
        logger.info(f"Set list now has {len(entries)} sets ({added} new)")
        return entries

    def save(self, entries: Sequence[ReferenceListEntry]) -> None:
        save_to_csv([entry.to_row() for entry in entries], self.path, SET_LIST_FIELDNAMES)
