"""Test A1 range helpers."""

import pytest

from app.ranges import a1, column_index, column_letter, parse_a1, quote_sheet


class TestColumns:
    def test_letters_round_trip_boundaries(self):
        assert column_letter(0) == "A"
        assert column_letter(25) == "Z"
        assert column_letter(26) == "AA"
        assert column_index("AA") == 26
        assert column_index("n") == 13

    def test_negative_index_rejected(self):
        with pytest.raises(ValueError):
            column_letter(-1)

    def test_invalid_letters_rejected(self):
        with pytest.raises(ValueError):
            column_index("A1")


class TestBuild:
    def test_plain_sheet_not_quoted(self):
        assert quote_sheet("Sheet1") == "Sheet1"
        assert a1("Sheet1", "A", "N") == "Sheet1!A:N"

    def test_sheet_with_space_quoted(self):
        assert a1("Daily Stats", "I", "K", 5) == "'Daily Stats'!I5:K5"

    def test_apostrophe_escaped(self):
        assert quote_sheet("Bob's") == "'Bob''s'"

    def test_single_cell(self):
        assert a1("Not Home", "B", row=3) == "'Not Home'!B3"


class TestParse:
    def test_whole_columns(self):
        assert parse_a1("Sheet1!A:N") == ("Sheet1", 0, None, 13, None)

    def test_quoted_row_range(self):
        assert parse_a1("'Daily Stats'!I5:K5") == ("Daily Stats", 8, 5, 10, 5)

    def test_single_cell(self):
        assert parse_a1("'Not Home'!B3") == ("Not Home", 1, 3, 1, 3)

    def test_missing_sheet(self):
        with pytest.raises(ValueError):
            parse_a1("A1:B2")
