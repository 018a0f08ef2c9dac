from pydantic import BaseModel, ValidationInfo, field_validator
from datetime import date, datetime
from typing import Optional, Union

from vaxtracker.services.status import local_today


OTHER_VACCINE = "Other"

# Column limits on vaccination_records.
VACCINE_NAME_MAX_LENGTH = 200
DOSE_NUMBER_MAX = 100

COMMON_VACCINES = [
    "COVID-19",
    "Influenza",
    "Hepatitis B",
    "MMR",
    "Tdap",
    "HPV",
    "Pneumococcal",
    "Meningococcal",
    "Varicella",
    "Shingles",
]


class RecordForm(BaseModel):
    """Raw add/edit form values, exactly as a client submits them."""
    vaccine_name: str = ""
    custom_vaccine_name: str = ""
    dose_number: Union[int, str] = ""
    date_given: Union[date, str] = ""
    next_due: Optional[Union[date, str]] = None
    user_id: Optional[str] = None


def _today(info: ValidationInfo) -> date:
    if info.context and info.context.get("today"):
        return info.context["today"]
    return local_today()


class RecordFields(BaseModel):
    """Validated record fields. Validate with ``context={"today": ...}``."""
    vaccine_name: str
    dose_number: int
    date_given: date
    next_due: Optional[date] = None
    user_id: Optional[str] = None

    @field_validator("vaccine_name")
    @classmethod
    def _vaccine_name_present(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Vaccine name is required")
        if len(v) > VACCINE_NAME_MAX_LENGTH:
            raise ValueError(f"Vaccine name must be at most {VACCINE_NAME_MAX_LENGTH} characters")
        return v

    @field_validator("dose_number", mode="before")
    @classmethod
    def _dose_number_present(cls, v):
        if isinstance(v, bool):
            raise ValueError("Dose number must be a whole number")
        if isinstance(v, str):
            v = v.strip()
            if not v:
                raise ValueError("Dose number is required")
        return v

    @field_validator("dose_number")
    @classmethod
    def _dose_number_in_range(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Dose number must be at least 1")
        if v > DOSE_NUMBER_MAX:
            raise ValueError(f"Dose number must be at most {DOSE_NUMBER_MAX}")
        return v

    @field_validator("date_given", mode="before")
    @classmethod
    def _date_given_present(cls, v):
        if isinstance(v, str) and not v.strip():
            raise ValueError("Date given is required")
        return v

    @field_validator("date_given")
    @classmethod
    def _date_given_not_future(cls, v: date, info: ValidationInfo) -> date:
        if v > _today(info):
            raise ValueError("Date given cannot be in the future")
        return v

    @field_validator("next_due", mode="before")
    @classmethod
    def _blank_next_due(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("next_due")
    @classmethod
    def _next_due_after_given(cls, v: Optional[date], info: ValidationInfo) -> Optional[date]:
        given = info.data.get("date_given")
        if v is not None and given is not None and v <= given:
            raise ValueError("Next due date must be after the date given")
        return v


class OwnerSummary(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None

    class Config:
        from_attributes = True


class RecordResponse(BaseModel):
    id: str
    user_id: str
    vaccine_name: str
    dose_number: int
    date_given: date
    next_due: Optional[date] = None
    created_at: Optional[datetime] = None
    status: Optional[str] = None
    owner: Optional[OwnerSummary] = None

    class Config:
        from_attributes = True


class ReminderRecordSummary(BaseModel):
    vaccine_name: str
    dose_number: int

    class Config:
        from_attributes = True


class ReminderResponse(BaseModel):
    id: str
    user_id: str
    record_id: str
    due_date: date
    sent: bool = False
    overdue: bool = False
    record: Optional[ReminderRecordSummary] = None

    class Config:
        from_attributes = True
