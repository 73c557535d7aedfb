"""
Set Data - Column-aligned accumulation of scraped set records
==============================================================
The dataset is stored column by column. After every page, every column has
the same length, and row i of every column comes from the same page: a page
adds exactly one full row (None for missing fields) or nothing at all.

accumulate() is a pure reducer: it returns a new dataset and never touches
the one it was given. The checks return an AlignmentFailure instead of
raising, so they can be called on any dataset; accumulate() raises
ColumnAlignmentError only when a check reports one.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from errors import ColumnAlignmentError
from set_parser import PartialRecord

# can't be numbers: set numbers carry a '-' variant suffix
COLUMNS = (
    "set_number",
    "name",
    "year",
    "retail_price",
    "value",
    "listed_price",
    "pieces",
)


@dataclass(frozen=True)
class AlignmentFailure:
    """A column whose length disagrees with the set_number column."""

    column: str
    expected: int
    actual: int
    last_set_number: Optional[str] = None

    def describe(self) -> str:
        return (
            f"Set number and {self.column} columns aren't the same length "
            f"({self.expected} != {self.actual}) after set #{self.last_set_number}"
        )


@dataclass(frozen=True)
class ColumnAlignedDataset:
    """Field name -> tuple of values, one entry per scraped page."""

    columns: Dict[str, Tuple[Any, ...]] = field(
        default_factory=lambda: {name: () for name in COLUMNS}
    )

    @classmethod
    def from_columns(cls, columns: Dict[str, List[Any]]) -> "ColumnAlignedDataset":
        data = {name: tuple(columns.get(name, ())) for name in COLUMNS}
        return cls(columns=data)

    def __len__(self) -> int:
        return len(self.columns["set_number"])

    def column(self, name: str) -> Tuple[Any, ...]:
        return self.columns[name]

    @property
    def last_set_number(self) -> Optional[str]:
        """The last successfully recorded set number, for diagnostics."""
        numbers = self.columns["set_number"]
        return numbers[-1] if numbers else None

    def rows(self) -> Iterator[Dict[str, Any]]:
        for i in range(len(self)):
            yield {name: self.columns[name][i] for name in COLUMNS}


# =============================================================================
# CHECKS
# =============================================================================

def check_alignment(dataset: ColumnAlignedDataset) -> Optional[AlignmentFailure]:
    """Return the first column whose length differs from set_number, if any."""
    expected = len(dataset.columns["set_number"])
    for name in COLUMNS:
        actual = len(dataset.columns[name])
        if actual != expected:
            return AlignmentFailure(name, expected, actual, dataset.last_set_number)
    return None


def check_row_start(dataset: ColumnAlignedDataset) -> Optional[AlignmentFailure]:
    """A new row may only begin when no previous row is half written."""
    expected = len(dataset.columns["set_number"])
    actual = len(dataset.columns["name"])
    if actual != expected:
        return AlignmentFailure("name", expected, actual, dataset.last_set_number)
    return None


def _raise_on(failure: Optional[AlignmentFailure]) -> None:
    if failure is not None:
        raise ColumnAlignmentError(failure)


# =============================================================================
# REDUCER
# =============================================================================

def reconcile(dataset: ColumnAlignedDataset) -> ColumnAlignedDataset:
    """Pad every column shorter than the longest one with a single None."""
    longest = max(len(values) for values in dataset.columns.values())
    columns = {
        name: values + (None,) if len(values) < longest else values
        for name, values in dataset.columns.items()
    }
    return ColumnAlignedDataset(columns=columns)


def finalize(dataset: ColumnAlignedDataset) -> ColumnAlignedDataset:
    """Pad a value column left short by the price extraction."""
    columns = dict(dataset.columns)
    missing = len(columns["set_number"]) - len(columns["value"])
    if missing > 0:
        columns["value"] = columns["value"] + (None,) * missing
    return ColumnAlignedDataset(columns=columns)


def accumulate(dataset: ColumnAlignedDataset, record: PartialRecord) -> ColumnAlignedDataset:
    """
    Fold one page into the dataset.

    Pages without a set number contribute nothing. Everything else becomes a
    single row with None for whatever the page did not have.
    """
    # sometimes the previous page didn't have a field; catch it up first
    dataset = reconcile(dataset)
    _raise_on(check_alignment(dataset))
    _raise_on(check_row_start(dataset))

    if not record.set_number:
        return dataset

    row = {
        "set_number": record.set_number,
        "name": record.name or "",
        "year": record.year,
        "pieces": record.pieces,
        "listed_price": record.listed_price,
        "retail_price": record.retail_price,
        "value": record.value,
    }
    columns = {name: values + (row[name],) for name, values in dataset.columns.items()}

    dataset = finalize(ColumnAlignedDataset(columns=columns))
    _raise_on(check_alignment(dataset))
    return dataset
