import pytest

from import_engine.csv_parser import EnvelopeError, parse_rows
from tests.factories import goodreads_csv, goodreads_row


def test_rows_are_numbered_from_two():
    raw = goodreads_csv(goodreads_row("A"), goodreads_row("B"))
    rows = parse_rows(raw)
    assert [r.row_number for r in rows] == [2, 3]
    assert rows[0].row["Title"] == "A"


def test_bom_and_whitespace_are_stripped():
    raw = b"\xef\xbb\xbf" + goodreads_csv(goodreads_row("  Dune  "))
    rows = parse_rows(raw)
    assert rows[0].row["Title"] == "Dune"
    assert "Title" in rows[0].row


def test_blank_lines_are_skipped():
    raw = goodreads_csv(goodreads_row("A"), {}, goodreads_row("B"))
    rows = parse_rows(raw)
    assert [r.row["Title"] for r in rows] == ["A", "B"]
    assert [r.row_number for r in rows] == [2, 3]


def test_empty_file_has_no_rows():
    assert parse_rows(b"") == []


def test_missing_header_is_envelope_error():
    with pytest.raises(EnvelopeError, match="Exclusive Shelf"):
        parse_rows(b"Title,Author,ISBN,ISBN13,My Rating,Date Read,Date Added\nDune,Herbert,,,,,\n")


def test_invalid_utf8_is_envelope_error():
    with pytest.raises(EnvelopeError):
        parse_rows(b"Title,Author\n\xff\xfe\xfa,x\n")
