"""
Query - The filters a run applies
==================================
Built from command line options, validated before any request is made.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from errors import ConfigError

logger = logging.getLogger(__name__)

# oldest year listed on brickeconomy
MIN_YEAR = 1949
MAX_YEAR = 2200

DEFAULT_MIN_PIECES = Decimal(1)
DEFAULT_MAX_PIECES = Decimal("Infinity")

# range scrapes only ever ask for the first variant of a set
DEFAULT_VARIANT = 1


def current_year() -> int:
    return datetime.now(timezone.utc).year


def set_identifier(number: int, variant: int = DEFAULT_VARIANT) -> str:
    return f"{number}-{variant}"


@dataclass
class Query:
    years: Optional[List[int]] = None
    set_number_range: Optional[Tuple[int, int]] = None
    min_pieces: Decimal = DEFAULT_MIN_PIECES
    max_pieces: Decimal = DEFAULT_MAX_PIECES
    skip_reference_filter: bool = False
    update_mode: bool = False

    def __post_init__(self):
        if self.set_number_range is not None:
            low, high = self.set_number_range
            if low > high:
                raise ConfigError(
                    f"Set number range must be ascending, got {low} > {high}"
                )
        if self.min_pieces >= self.max_pieces:
            raise ConfigError(
                f"--min-pieces ({self.min_pieces}) must be below --max-pieces ({self.max_pieces})"
            )
        if self.years is not None:
            for year in self.years:
                if not MIN_YEAR <= year < MAX_YEAR:
                    raise ConfigError(f"Year {year} is outside {MIN_YEAR}..{MAX_YEAR - 1}")
        # you shouldn't use the set list to update itself
        if self.update_mode and not self.skip_reference_filter:
            logger.warning("Overriding --skip-set-list=false. "
                           "You should not use the set list to update itself.")
            self.skip_reference_filter = True

    @classmethod
    def from_options(cls, years: Optional[Sequence[int]] = None, all_years: bool = False,
                     set_number_range: Optional[Sequence[int]] = None,
                     update_set_list_range: Optional[Sequence[int]] = None,
                     skip_reference_filter: bool = False,
                     min_pieces: Optional[Decimal] = None,
                     max_pieces: Optional[Decimal] = None) -> "Query":
        """Resolve the mutually exclusive option groups into one Query."""
        if years and all_years:
            raise ConfigError("--years and --all-years can't be used together")
        if set_number_range and update_set_list_range:
            raise ConfigError("--set-number-range and --update-set-list can't be used together")

        if all_years:
            resolved_years = list(range(MIN_YEAR, current_year() + 1))
        elif years:
            resolved_years = sorted(set(years))
        else:
            resolved_years = None

        update_mode = update_set_list_range is not None
        chosen_range = update_set_list_range if update_mode else set_number_range

        return cls(
            years=resolved_years,
            set_number_range=_as_range(chosen_range),
            min_pieces=DEFAULT_MIN_PIECES if min_pieces is None else min_pieces,
            max_pieces=DEFAULT_MAX_PIECES if max_pieces is None else max_pieces,
            skip_reference_filter=skip_reference_filter,
            update_mode=update_mode,
        )

    @property
    def year_strings(self) -> Optional[set]:
        """Years as they appear in scraped records."""
        if self.years is None:
            return None
        return {str(year) for year in self.years}

    def requested_identifiers(self) -> List[str]:
        """Every identifier in the set number range, lowest first."""
        if self.set_number_range is None:
            return []
        low, high = self.set_number_range
        return [set_identifier(number) for number in range(low, high + 1)]

    def pieces_in_bounds(self, pieces: Optional[Decimal]) -> bool:
        """Strictly between the bounds; an unknown piece count never is."""
        if pieces is None:
            return False
        return self.min_pieces < pieces < self.max_pieces


def _as_range(values: Optional[Sequence[int]]) -> Optional[Tuple[int, int]]:
    if values is None:
        return None
    if len(values) != 2:
        raise ConfigError(f"A set number range needs exactly two numbers, got {len(values)}")
    return (int(values[0]), int(values[1]))
