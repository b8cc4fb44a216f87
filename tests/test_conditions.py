"""Tests for column conditions and identifier quoting."""

import pytest

from ffc_migrations.conditions import (
    Empty,
    LogicCondition,
    LogicOperator,
    Populated,
    all_empty,
    all_of,
    any_of,
    any_populated,
    is_populated,
    quote_identifier,
)
from ffc_migrations.exceptions import InvalidIdentifierError
from ffc_migrations.storage import SQLiteStorage


@pytest.fixture
def sample():
    """Table with one row per combination used below."""
    with SQLiteStorage() as db:
        db.executescript(
            "CREATE TABLE sample (id INTEGER PRIMARY KEY, a TEXT, b TEXT, c TEXT);"
            "INSERT INTO sample (a, b, c) VALUES ('x', '', NULL);"
            "INSERT INTO sample (a, b, c) VALUES ('1', '2', NULL);"
            "INSERT INTO sample (a, b, c) VALUES ('1', '2', '3');"
            "INSERT INTO sample (a, b, c) VALUES (NULL, NULL, NULL);"
        )
        yield db


class TestQuoteIdentifier:
    """Test identifier validation."""

    def test_valid_identifiers_are_quoted(self):
        assert quote_identifier("wp_ffc_submissions") == '"wp_ffc_submissions"'
        assert quote_identifier("_col1") == '"_col1"'

    @pytest.mark.parametrize("name", ["", "1col", "a-b", "a b", 'x"; DROP TABLE t; --', None])
    def test_invalid_identifiers_are_rejected(self, name):
        with pytest.raises(InvalidIdentifierError):
            quote_identifier(name)


class TestConditions:
    """Test SQL rendering and row counting."""

    def test_populated_sql(self):
        assert Populated("email").to_sql() == '("email" IS NOT NULL AND "email" != \'\')'

    def test_empty_sql(self):
        assert Empty("email").to_sql() == '("email" IS NULL OR "email" = \'\')'

    def test_populated_and_empty_count_rows(self, sample):
        assert sample.count("sample", Populated("a")) == 3
        assert sample.count("sample", Populated("b")) == 2
        assert sample.count("sample", Empty("b")) == 2
        assert sample.count("sample", Empty("c")) == 3

    def test_logic_combination(self, sample):
        condition = Populated("a") & (Empty("b") | Populated("c"))
        assert " AND " in condition.to_sql()
        assert " OR " in condition.to_sql()
        assert sample.count("sample", condition) == 2

    def test_not(self, sample):
        condition = ~Populated("a")
        assert condition.to_sql().startswith("(NOT ")
        assert sample.count("sample", condition) == 1

    def test_logic_condition_requires_children(self):
        with pytest.raises(ValueError):
            LogicCondition(LogicOperator.AND, ())
        with pytest.raises(ValueError):
            LogicCondition(LogicOperator.NOT, (Populated("a"), Populated("b")))

    def test_single_item_is_returned_as_is(self):
        condition = Populated("a")
        assert all_of([condition]) is condition
        assert any_of([condition]) is condition

    def test_helpers_return_none_without_columns(self, sample):
        assert any_populated([]) is None
        assert all_empty([]) is None
        assert sample.count("sample", any_populated(["b", "c"])) == 2
        assert sample.count("sample", all_empty(["b", "c"])) == 2

    def test_is_populated(self):
        assert is_populated("x")
        assert is_populated(0)
        assert not is_populated("")
        assert not is_populated(None)
