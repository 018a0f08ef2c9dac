from typing import AsyncGenerator

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from vaxtracker.database import get_db
from vaxtracker.auth import get_session_bridge, SessionBridge
from vaxtracker.schemas.dashboard import ActionResponse, DashboardSnapshot, StatsResponse
from vaxtracker.schemas.record import RecordForm, RecordResponse, ReminderResponse
from vaxtracker.services.dashboard import ActionResult, DashboardViewModel
from vaxtracker.services.notifications import Notifier
from vaxtracker.services.record_store import RecordStore

router = APIRouter()


async def get_dashboard(
    db: AsyncSession = Depends(get_db),
    session: SessionBridge = Depends(get_session_bridge),
) -> AsyncGenerator[DashboardViewModel, None]:
    """Initialized view-model for the caller; startup failures are kept on it."""
    dashboard = DashboardViewModel(
        store_factory=lambda principal: RecordStore(db, principal),
        session=session,
        notifier=Notifier(),
    )
    await dashboard.init()
    try:
        yield dashboard
    finally:
        dashboard.close()


def _ready(dashboard: DashboardViewModel) -> DashboardViewModel:
    if dashboard.startup_error is not None:
        raise dashboard.startup_error
    return dashboard


def _respond(result: ActionResult, dashboard: DashboardViewModel) -> ActionResponse:
    result.raise_for_error()
    return ActionResponse(
        ok=True,
        message=result.message,
        data=result.data,
        dashboard=dashboard.snapshot(),
    )


@router.get("", response_model=DashboardSnapshot)
async def get_dashboard_state(
    search: str = Query("", description="Filter records by vaccine (and owner, for admins)"),
    dashboard: DashboardViewModel = Depends(get_dashboard),
):
    if search:
        dashboard.search(search)
    snapshot = dashboard.snapshot()
    if dashboard.startup_error is not None:
        # Error snapshot still carries the retry surface.
        return JSONResponse(
            status_code=dashboard.startup_error.status_code,
            content=jsonable_encoder(snapshot),
        )
    return snapshot


@router.get("/records", response_model=list[RecordResponse])
async def list_records(
    search: str = Query(""),
    dashboard: DashboardViewModel = Depends(get_dashboard),
):
    _ready(dashboard).search(search)
    return dashboard.snapshot().records


@router.get("/reminders", response_model=list[ReminderResponse])
async def list_reminders(dashboard: DashboardViewModel = Depends(get_dashboard)):
    return _ready(dashboard).snapshot().reminders


@router.get("/stats", response_model=StatsResponse)
async def get_stats(dashboard: DashboardViewModel = Depends(get_dashboard)):
    return _ready(dashboard).stats.to_dict()


@router.post("/records", response_model=ActionResponse, status_code=201)
async def add_record(form: RecordForm, dashboard: DashboardViewModel = Depends(get_dashboard)):
    result = await _ready(dashboard).add_record(form)
    return _respond(result, dashboard)


@router.get("/records/{record_id}/edit", response_model=RecordForm)
async def edit_record(record_id: str, dashboard: DashboardViewModel = Depends(get_dashboard)):
    result = await _ready(dashboard).edit_record(record_id)
    return result.raise_for_error().data


@router.put("/records/{record_id}", response_model=ActionResponse)
async def update_record(
    record_id: str,
    form: RecordForm,
    dashboard: DashboardViewModel = Depends(get_dashboard),
):
    result = await _ready(dashboard).update_record(record_id, form)
    return _respond(result, dashboard)


@router.delete("/records/{record_id}", response_model=ActionResponse)
async def delete_record(record_id: str, dashboard: DashboardViewModel = Depends(get_dashboard)):
    # A DELETE request is the confirmed form of the two-step delete.
    (await _ready(dashboard).delete_record(record_id)).raise_for_error()
    result = await dashboard.confirm_delete()
    return _respond(result, dashboard)
