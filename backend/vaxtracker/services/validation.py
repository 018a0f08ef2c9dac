"""Field-level validation for record writes.

Runs before any store call; the first failing rule is reported together with
the field it concerns.
"""

from datetime import date
from typing import Mapping, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from vaxtracker.exceptions import ValidationError
from vaxtracker.schemas.record import OTHER_VACCINE, RecordFields

FIELD_LABELS = {
    "vaccine_name": "Vaccine name",
    "dose_number": "Dose number",
    "date_given": "Date given",
    "next_due": "Next due date",
    "user_id": "Owner",
}

PARSE_MESSAGES = {
    "dose_number": "Dose number must be a whole number",
    "date_given": "Date given must be a valid date",
    "next_due": "Next due date must be a valid date",
}


def resolve_vaccine_name(selection: str, custom: str = "") -> str:
    """Map the "Other" sentinel to the custom name typed alongside it."""
    selection = (selection or "").strip()
    if selection == OTHER_VACCINE:
        custom = (custom or "").strip()
        if not custom:
            raise ValidationError("Please enter the vaccine name", field="custom_vaccine_name")
        return custom
    return selection


def _translate(exc: PydanticValidationError) -> ValidationError:
    error = exc.errors()[0]
    field = str(error["loc"][0]) if error["loc"] else None
    if error["type"] == "value_error":
        reason = str(error["ctx"]["error"])
    elif error["type"] == "missing":
        reason = f"{FIELD_LABELS.get(field, field)} is required"
    else:
        reason = PARSE_MESSAGES.get(field, error["msg"])
    return ValidationError(reason, field=field)


def validate(fields: Union[Mapping, BaseModel], today: date) -> RecordFields:
    """Return validated fields or raise ValidationError naming the broken rule."""
    data = fields.model_dump() if isinstance(fields, BaseModel) else dict(fields)
    data["vaccine_name"] = resolve_vaccine_name(
        data.get("vaccine_name", ""), data.get("custom_vaccine_name", "")
    )
    try:
        return RecordFields.model_validate(data, context={"today": today})
    except PydanticValidationError as e:
        raise _translate(e) from e
