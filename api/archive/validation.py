"""Validation of submitted martyr and tribute payloads.

The rules live on the pydantic input models in ``schemas``; this module turns
their ``ValidationError`` into the ordered, human readable messages the API
returns. Routers call ``validate_*`` first, reject the request when the list
is not empty, and only then take the typed values from ``clean_*``.
"""
from typing import Any, List, Mapping, Type, get_args

from pydantic import BaseModel, ValidationError

from .schemas import EducationLevel, MartyrIn, MartyrUpdateIn, TributeIn

MARTYR_MESSAGES = {
    "name_ar": "Arabic name must be between 2 and 255 characters",
    "name_en": "English name must be between 2 and 255 characters",
    "date_of_martyrdom": "Date of martyrdom must be a valid date (YYYY-MM-DD)",
    "place_of_martyrdom": "Place of martyrdom is required and must be at least 2 characters",
    "education_level": "Education level must be one of: " + ", ".join(get_args(EducationLevel)),
    "occupation": "Occupation must be between 2 and 255 characters",
    "university_name": "University name must not exceed 255 characters",
    "faculty": "Faculty must not exceed 255 characters",
    "department": "Department must not exceed 255 characters",
    "school_state": "School state must not exceed 255 characters",
    "school_locality": "School locality must not exceed 255 characters",
    "spouse": "Spouse name must not exceed 255 characters",
    "bio": "Bio must not exceed 2000 characters",
    "children": "Children must be a non-negative whole number",
    "age": "Age must be a whole number between 0 and 150",
    "latitude": "Latitude must be a valid number between -90 and 90",
    "longitude": "Longitude must be a valid number between -180 and 180",
}

TRIBUTE_MESSAGES = {
    "martyr_id": "Valid martyr ID is required",
    "visitor_name": "Name must be between 2 and 255 characters",
    "message": "Message must be between 10 and 1000 characters",
}


def _messages(model: Type[BaseModel], data: Mapping[str, Any], messages: dict) -> List[str]:
    try:
        model.model_validate(dict(data))
    except ValidationError as e:
        failed = {err["loc"][0] for err in e.errors() if err["loc"]}
        # one message per field, in declaration order
        return [messages[name] for name in model.model_fields if name in failed]
    return []


def validate_martyr(data: Mapping[str, Any], partial: bool = False) -> List[str]:
    """
    Check a martyr payload and return the list of error messages.

    With ``partial=True`` (updates) only the keys present in ``data`` are
    checked, so a client can send a single field.
    """
    model = MartyrUpdateIn if partial else MartyrIn
    return _messages(model, data, MARTYR_MESSAGES)


def clean_martyr_fields(data: Mapping[str, Any], partial: bool = False) -> dict:
    """
    Typed values for a payload that already passed ``validate_martyr``.
    Unknown keys are dropped. Blank optional fields become None.
    """
    model = MartyrUpdateIn if partial else MartyrIn
    return model.model_validate(dict(data)).model_dump(exclude_unset=partial)


def validate_tribute(data: Mapping[str, Any]) -> List[str]:
    return _messages(TributeIn, data, TRIBUTE_MESSAGES)


def clean_tribute_fields(data: Mapping[str, Any]) -> dict:
    return TributeIn.model_validate(dict(data)).model_dump()
