from pydantic import BaseModel
from typing import Any, Optional

from vaxtracker.schemas.record import RecordResponse, ReminderResponse


class StatsResponse(BaseModel):
    total: int
    up_to_date: int
    upcoming: int
    overdue: int


class PermissionsResponse(BaseModel):
    can_add: bool
    can_edit: bool
    can_delete: bool


class SurfacesResponse(BaseModel):
    records: str
    reminders: str
    stats: str


class ToastResponse(BaseModel):
    id: int
    message: str
    type: str


class DashboardUser(BaseModel):
    id: str
    email: str
    display_name: str


class DashboardSnapshot(BaseModel):
    state: str
    role: Optional[str] = None
    user: Optional[DashboardUser] = None
    error: Optional[str] = None
    search_term: str = ""
    permissions: PermissionsResponse
    stats: StatsResponse
    records: list[RecordResponse]
    reminders: list[ReminderResponse]
    surfaces: SurfacesResponse
    notifications: list[ToastResponse] = []


class ActionResponse(BaseModel):
    ok: bool
    message: str = ""
    data: Optional[Any] = None
    dashboard: Optional[DashboardSnapshot] = None
