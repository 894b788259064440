"""Tests for phone validation and template serialization."""

from __future__ import annotations

import json

import pytest

from src.client.validation import (
    INVALID_PHONE_MESSAGE,
    MessageValidationError,
    serialize_buttons,
    serialize_list,
    validate_phone_number,
)
from src.models import Button, ButtonMenu, ListMenu, ListRow, ListSection


class TestValidatePhoneNumber:
    def test_strips_separators(self) -> None:
        assert validate_phone_number("+62 812-3456-789") == "628123456789"

    def test_plain_digits_pass_through(self) -> None:
        assert validate_phone_number("628123456789") == "628123456789"

    def test_parentheses_and_dots(self) -> None:
        assert validate_phone_number("(1) 555.123.4567") == "15551234567"

    @pytest.mark.parametrize("digits", ["1" * 10, "1" * 15])
    def test_length_bounds_accepted(self, digits: str) -> None:
        assert validate_phone_number(digits) == digits

    @pytest.mark.parametrize("raw", ["123", "1" * 9, "1" * 16, "", "phone"])
    def test_rejects_out_of_range(self, raw: str) -> None:
        with pytest.raises(MessageValidationError) as exc_info:
            validate_phone_number(raw)
        assert str(exc_info.value) == INVALID_PHONE_MESSAGE

    @pytest.mark.parametrize(
        "raw",
        ["٦٢٨١٢٣٤٥٦٧٨٩",
         "６２８１２３４５６７８９"],
    )
    def test_non_ascii_digits_rejected(self, raw: str) -> None:
        with pytest.raises(MessageValidationError):
            validate_phone_number(raw)

    def test_non_ascii_digits_stripped_as_separators(self) -> None:
        assert validate_phone_number("62812345678٩９") == "62812345678"

    def test_validation_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            validate_phone_number("12")


class TestSerializeButtons:
    def test_single_button_exact_encoding(self) -> None:
        menu = ButtonMenu(buttons=[Button(display="Option 1", id="opt1")])
        assert serialize_buttons(menu) == '[{"display":"Option 1","id":"opt1"}]'

    def test_preserves_order(self) -> None:
        menu = ButtonMenu(buttons=[
            Button(display="B", id="b"),
            Button(display="A", id="a"),
            Button(display="C", id="c"),
        ])
        ids = [b["id"] for b in json.loads(serialize_buttons(menu))]
        assert ids == ["b", "a", "c"]

    def test_ids_are_passed_verbatim(self) -> None:
        menu = ButtonMenu(buttons=[Button(display="x", id=" 007 ")])
        assert json.loads(serialize_buttons(menu))[0]["id"] == " 007 "

    def test_non_ascii_kept_readable(self) -> None:
        menu = ButtonMenu(buttons=[Button(display="Pesan 🍔", id="burger")])
        assert "🍔" in serialize_buttons(menu)


class TestSerializeList:
    def _menu(self) -> ListMenu:
        return ListMenu(
            title="Menu",
            sections=[
                ListSection(
                    title="Food",
                    rows=[
                        ListRow(title="Burger", description="Beef", id="r1"),
                        ListRow(title="Fries", id="r2"),
                    ],
                ),
                ListSection(title="Drinks", rows=[ListRow(title="Tea", id="r3")]),
            ],
        )

    def test_structure(self) -> None:
        data = json.loads(serialize_list(self._menu()))
        assert data["title"] == "Menu"
        assert [s["title"] for s in data["sections"]] == ["Food", "Drinks"]
        assert data["sections"][0]["rows"][0] == {
            "title": "Burger", "description": "Beef", "id": "r1",
        }

    def test_missing_description_becomes_empty_string(self) -> None:
        data = json.loads(serialize_list(self._menu()))
        assert data["sections"][0]["rows"][1]["description"] == ""

    def test_row_key_order(self) -> None:
        encoded = serialize_list(self._menu())
        assert '{"title":"Fries","description":"","id":"r2"}' in encoded
