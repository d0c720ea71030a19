from datetime import datetime, timezone

import pytest

from import_engine.options import ImportOptions, DEFAULT_RATINGS, UNJUDGED
from import_engine.row_planner import (
    plan, normalize_isbn, parse_date, parse_rating,
    TARGET_READING, TARGET_TO_READ, TARGET_SKIP,
)


def _codes(row_plan):
    return [w.code for w in row_plan.warnings]


def _utc(y, m, d):
    return datetime(y, m, d, tzinfo=timezone.utc)


@pytest.mark.parametrize("raw", [
    "978-0-316-48976-8",
    '="9780316489768"',
    "9780316489768",
    " 978 0316489768 ",
])
def test_isbn13_forms_normalize_identically(raw):
    """Hyphenated, spreadsheet-quoted and bare forms give the same 13 digits."""
    assert normalize_isbn(raw) == "9780316489768"


@pytest.mark.parametrize("raw", ['=""', '=""""', "", None, "   "])
def test_isbn_empty_sentinels_normalize_to_none(raw):
    assert normalize_isbn(raw) is None


def test_isbn10_keeps_check_character():
    assert normalize_isbn('="031648976x"') == "031648976X"


@pytest.mark.parametrize("raw", ["12345", "97803164897681", "ABCDEFGHIJ"])
def test_implausible_isbn_rejected(raw):
    assert normalize_isbn(raw) is None


def test_parse_date_is_utc_midnight():
    assert parse_date("2026/02/07") == _utc(2026, 2, 7)
    assert parse_date("") is None
    with pytest.raises(ValueError):
        parse_date("07-02-2026")


def test_parse_rating():
    assert parse_rating("0") is None
    assert parse_rating("") is None
    assert parse_rating("4") == 4
    assert parse_rating("9") == 5
    assert parse_rating("4.0") == 4
    assert parse_rating(" 3.7 ") == 3
    with pytest.raises(ValueError):
        parse_rating("four")
    with pytest.raises(ValueError):
        parse_rating("inf")


def test_read_row_without_date_added_infers_start():
    """Finished book with only a read date: start == finish, rating mapped."""
    options = ImportOptions(ratings={**DEFAULT_RATINGS, 4: "Accepted"})
    row = {"Title": "Dune", "Author": "Frank Herbert", "Exclusive Shelf": "read",
           "Date Added": "", "Date Read": "2026/02/07", "My Rating": "4"}

    p = plan(row, options)

    assert p.target == TARGET_READING
    assert p.started_at == p.finished_at == _utc(2026, 2, 7)
    assert p.judgment == "Accepted"
    assert p.progress_percent == 100
    assert "INFERRED_START_DATE" in _codes(p)


def test_currently_reading_unjudged_star():
    options = ImportOptions(ratings={**DEFAULT_RATINGS, 2: UNJUDGED})
    row = {"Title": "Piranesi", "Author": "Susanna Clarke",
           "Exclusive Shelf": "currently-reading", "Date Added": "2026/01/10",
           "My Rating": "2"}

    p = plan(row, options)

    assert p.target == TARGET_READING
    assert p.judgment is None
    assert p.finished_at is None
    assert p.started_at == _utc(2026, 1, 10)
    assert p.progress_percent is None


def test_rating_mapping_disabled_ignores_stars():
    options = ImportOptions(map_ratings=False)
    row = {"Title": "Dune", "Author": "Frank Herbert", "Exclusive Shelf": "read",
           "Date Read": "2026/02/07", "Date Added": "2026/01/01", "My Rating": "5"}
    assert plan(row, options).judgment is None


def test_to_read_row_has_no_dates_beyond_added():
    row = {"Title": "Dune", "Author": "Frank Herbert", "Exclusive Shelf": "to-read",
           "Date Added": "2025/12/24", "Date Read": "2026/01/01"}

    p = plan(row, ImportOptions())

    assert p.target == TARGET_TO_READ
    assert p.added_at == _utc(2025, 12, 24)
    assert p.started_at is None and p.finished_at is None


def test_bad_date_is_a_warning_not_an_error():
    row = {"Title": "Dune", "Author": "Frank Herbert", "Exclusive Shelf": "currently-reading",
           "Date Added": "12/24/2025"}

    p = plan(row, ImportOptions())

    assert p.target == TARGET_READING
    assert p.started_at is None
    assert _codes(p) == ["INVALID_DATE", "MISSING_START_DATE"]


def test_read_row_without_read_date_infers_end():
    row = {"Title": "Dune", "Author": "Frank Herbert", "Exclusive Shelf": "read",
           "Date Added": "2025/03/01"}

    p = plan(row, ImportOptions())

    assert p.finished_at == p.started_at == _utc(2025, 3, 1)
    assert "INFERRED_END_DATE" in _codes(p)


def test_unknown_shelf_with_read_date_is_finished():
    row = {"Title": "Dune", "Author": "Frank Herbert", "Exclusive Shelf": "favourites",
           "Date Read": "2024/05/05", "Date Added": "2024/04/01"}

    p = plan(row, ImportOptions())

    assert p.target == TARGET_READING
    assert p.is_finished
    assert "INFERRED_STATUS" in _codes(p)


def test_unknown_shelf_without_read_date_is_to_read():
    row = {"Title": "Dune", "Author": "Frank Herbert", "Exclusive Shelf": ""}

    p = plan(row, ImportOptions())

    assert p.target == TARGET_TO_READ
    assert _codes(p) == ["INFERRED_STATUS"]


def test_empty_row_is_skipped():
    p = plan({"Exclusive Shelf": "read", "ISBN13": '=""'}, ImportOptions())
    assert p.target == TARGET_SKIP
    assert _codes(p) == ["EMPTY_ROW"]


def test_invalid_isbn_warns_and_keeps_row():
    row = {"Title": "Dune", "Author": "Frank Herbert", "Exclusive Shelf": "to-read",
           "ISBN13": '="97800"'}

    p = plan(row, ImportOptions())

    assert p.isbn13 is None
    assert "INVALID_ISBN" in _codes(p)


def test_plan_is_deterministic():
    row = {"Title": "Dune", "Author": "Frank Herbert", "Exclusive Shelf": "read",
           "Date Read": "2026/02/07", "My Rating": "3", "ISBN13": '="9780441013593"'}
    assert plan(row, ImportOptions()) == plan(row, ImportOptions())
