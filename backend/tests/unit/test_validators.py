# backend/tests/unit/test_validators.py
import pytest

from agrichat.conversation import pagination
from agrichat.conversation.validators import (
    compact,
    is_skip,
    optional_text,
    parse_iso_date,
    parse_positive,
    parse_stock,
)


@pytest.mark.parametrize("text, expected", [
    ("1500", 1500.0),
    ("$5.99", 5.99),
    ("EC$ 12.50 per kg", 12.5),
    ("0", None),
    ("abc", None),
    ("", None),
    ("1.2.3", None),
])
def test_parse_positive(text, expected):
    assert parse_positive(text) == expected


@pytest.mark.parametrize("text, expected", [
    ("0", 0),
    ("250", 250),
    ("about 40 crates", 40),
    ("none", None),
])
def test_parse_stock(text, expected):
    assert parse_stock(text) == expected


def test_parse_iso_date():
    assert parse_iso_date("2026-03-01") == "2026-03-01"
    assert parse_iso_date(" 2026-03-01 ") == "2026-03-01"
    assert parse_iso_date("2026-02-30") is None
    assert parse_iso_date("01/03/2026") is None
    assert parse_iso_date(None) is None


def test_skip_and_optional_text():
    assert is_skip(" SKIP ")
    assert optional_text("skip") is None
    assert optional_text("   ") is None
    assert optional_text(" by boat ") == "by boat"


def test_compact_drops_none_only():
    assert compact({"a": None, "b": 0, "c": ""}) == {"b": 0, "c": ""}


def test_full_page_rule_for_next():
    assert pagination.nav_buttons("req", 1, [1, 2, 3, 4, 5]) == [("req_next", "Next")]
    assert pagination.nav_buttons("req", 2, [1]) == [("req_prev", "Prev")]
    assert pagination.nav_rows("mp", 1, []) == []
    assert pagination.turned(1, "prev") == 1
    assert pagination.page_of({"inv_page": "x"}, "inv_page") == 1
