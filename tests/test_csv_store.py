from decimal import Decimal

from csv_store import format_cell, read_rows, save_to_csv


def test_small_ratios_are_written_in_plain_notation():
    ratio = (Decimal("99.99") - Decimal(100)) / (Decimal(100) * Decimal(7541))

    text = format_cell(ratio)

    assert "E" not in text
    assert text.startswith("-0.0000000132608")
    assert Decimal(text) == ratio


def test_cells():
    assert format_cell(None) == ""
    assert format_cell(Decimal("1000")) == "1000"
    assert format_cell("75192-1") == "75192-1"


def test_save_then_read(tmp_path):
    path = str(tmp_path / "out.csv")
    save_to_csv([{"a": Decimal("1E-6"), "b": None}], path, ["a", "b"])

    assert read_rows(path) == [{"a": "0.000001", "b": ""}]
