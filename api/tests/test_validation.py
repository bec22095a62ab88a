from datetime import date

import pytest

from archive.validation import (
    clean_martyr_fields,
    clean_tribute_fields,
    validate_martyr,
    validate_tribute,
)
from archive.utils import parse_date
from conftest import VALID_MARTYR


def test_valid_payload_has_no_errors():
    assert validate_martyr(VALID_MARTYR) == []


@pytest.mark.parametrize(
    "field, message",
    [
        ("name_ar", "Arabic name must be between 2 and 255 characters"),
        ("name_en", "English name must be between 2 and 255 characters"),
        ("date_of_martyrdom", "Date of martyrdom must be a valid date (YYYY-MM-DD)"),
        ("place_of_martyrdom", "Place of martyrdom is required and must be at least 2 characters"),
        ("education_level", "Education level must be one of: primary, secondary, university, postgraduate, other"),
        ("occupation", "Occupation must be between 2 and 255 characters"),
    ],
)
def test_missing_required_field_is_named(field, message):
    payload = {k: v for k, v in VALID_MARTYR.items() if k != field}
    assert validate_martyr(payload) == [message]


def test_messages_keep_field_order():
    errors = validate_martyr({})
    assert errors[0].startswith("Arabic name")
    assert errors[1].startswith("English name")
    assert errors[-1].startswith("Occupation")
    assert len(errors) == 6


def test_blank_strings_count_as_missing():
    payload = dict(VALID_MARTYR, name_en="   ", occupation=" x ")
    assert validate_martyr(payload) == [
        "English name must be between 2 and 255 characters",
        "Occupation must be between 2 and 255 characters",
    ]


def test_optional_fields_are_bounded():
    payload = dict(
        VALID_MARTYR,
        bio="x" * 2001,
        spouse="y" * 256,
        children="-1",
        age="151",
        latitude="91",
        longitude="abc",
    )
    assert validate_martyr(payload) == [
        "Spouse name must not exceed 255 characters",
        "Bio must not exceed 2000 characters",
        "Children must be a non-negative whole number",
        "Age must be a whole number between 0 and 150",
        "Latitude must be a valid number between -90 and 90",
        "Longitude must be a valid number between -180 and 180",
    ]


def test_structured_place_is_accepted_and_serialized():
    payload = dict(VALID_MARTYR, place_of_martyrdom={"state": "Khartoum", "area": "Bahri"})
    assert validate_martyr(payload) == []
    place = clean_martyr_fields(payload)["place_of_martyrdom"]
    assert '"state": "Khartoum"' in place
    assert '"area": "Bahri"' in place


def test_partial_mode_checks_only_present_keys():
    assert validate_martyr({"occupation": "Teacher"}, partial=True) == []
    assert validate_martyr({"name_ar": "x"}, partial=True) == [
        "Arabic name must be between 2 and 255 characters"
    ]


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2024-01-01", date(2024, 1, 1)),
        ("2024-01-01T10:30:00Z", date(2024, 1, 1)),
        ("15/03/2023", date(2023, 3, 15)),
    ],
)
def test_parse_date_formats(raw, expected):
    assert parse_date(raw) == expected


def test_parse_date_rejects_garbage():
    with pytest.raises(ValueError):
        parse_date("yesterday")


def test_clean_martyr_fields_types_values():
    payload = dict(VALID_MARTYR, children="3", latitude="15.5", bio="  ", extra="dropped")
    cleaned = clean_martyr_fields(payload)
    assert cleaned["date_of_martyrdom"] == date(2024, 1, 1)
    assert cleaned["children"] == 3
    assert cleaned["latitude"] == 15.5
    assert cleaned["bio"] is None
    assert "extra" not in cleaned


def test_tribute_rules():
    assert validate_tribute({"martyr_id": "0", "visitor_name": "A", "message": "short"}) == [
        "Valid martyr ID is required",
        "Name must be between 2 and 255 characters",
        "Message must be between 10 and 1000 characters",
    ]
    ok = {"martyr_id": "4", "visitor_name": " Sara ", "message": "Forever in our hearts."}
    assert validate_tribute(ok) == []
    assert clean_tribute_fields(ok) == {
        "martyr_id": 4,
        "visitor_name": "Sara",
        "message": "Forever in our hearts.",
    }


def test_values_outside_the_column_range_are_messages():
    payload = dict(VALID_MARTYR, children=str(2**31), age=True)
    assert validate_martyr(payload) == [
        "Children must be a non-negative whole number",
        "Age must be a whole number between 0 and 150",
    ]
    assert validate_tribute({"martyr_id": True, "visitor_name": "Sara", "message": "Forever in our hearts."}) == [
        "Valid martyr ID is required"
    ]


def test_partial_clean_keeps_only_sent_keys():
    cleaned = clean_martyr_fields({"age": "30", "place_of_martyrdom": " Bahri "}, partial=True)
    assert cleaned == {"age": 30, "place_of_martyrdom": "Bahri"}
    assert validate_martyr({"name_en": None}, partial=True) == [
        "English name must be between 2 and 255 characters"
    ]
