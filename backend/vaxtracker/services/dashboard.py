"""
Dashboard view-model.

Owns the in-memory records, reminders and search filter for one authenticated
session, derives status and counters, and keeps the three rendered surfaces
(record list, reminder list, stats) in step with the store after every change.

States:
    UNINITIALIZED -> LOADING_USER -> LOADING_DATA -> READY
    READY -> LOADING_DATA -> READY           (reload)
    any -> ERROR                             (startup failure, retry() restarts)

Mutations are admin-only. A rejected mutation never reaches the store and is
reported through an error toast and a failed ActionResult.
"""

import enum
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Optional

from vaxtracker.auth import SIGNED_IN, SIGNED_OUT, AuthSession, SessionBridge, UserPrincipal
from vaxtracker.config import get_settings
from vaxtracker.exceptions import (
    AccessDenied,
    DashboardNotReady,
    NotAuthenticated,
    NotFound,
    ValidationError,
    VaxTrackerError,
)
from vaxtracker.schemas.dashboard import DashboardSnapshot
from vaxtracker.schemas.record import COMMON_VACCINES, OTHER_VACCINE, RecordForm, RecordResponse, ReminderResponse
from vaxtracker.services.notifications import Debouncer, Notifier
from vaxtracker.services.record_store import RecordStore
from vaxtracker.services.renderer import DashboardRenderer, RenderedSurfaces, derive_view_permissions
from vaxtracker.services.status import DashboardStats, classify, compute_stats, is_overdue, local_today

logger = logging.getLogger(__name__)


class DashboardState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    LOADING_USER = "loading_user"
    LOADING_DATA = "loading_data"
    READY = "ready"
    ERROR = "error"


@dataclass
class ActionResult:
    ok: bool
    message: str = ""
    data: Any = None
    error: Optional[VaxTrackerError] = field(default=None, repr=False)

    @classmethod
    def success(cls, message: str = "", data: Any = None) -> "ActionResult":
        return cls(ok=True, message=message, data=data)

    @classmethod
    def failure(cls, error: VaxTrackerError) -> "ActionResult":
        return cls(ok=False, message=error.reason, error=error)

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error else None

    def raise_for_error(self) -> "ActionResult":
        if self.error is not None:
            raise self.error
        return self


def record_form_for(record) -> RecordForm:
    """Edit-form values for an existing record."""
    known = record.vaccine_name in COMMON_VACCINES
    return RecordForm(
        vaccine_name=record.vaccine_name if known else OTHER_VACCINE,
        custom_vaccine_name="" if known else record.vaccine_name,
        dose_number=record.dose_number,
        date_given=record.date_given,
        next_due=record.next_due,
        user_id=record.user_id,
    )


class DashboardViewModel:
    def __init__(
        self,
        store_factory: Callable[[UserPrincipal], RecordStore],
        session: SessionBridge,
        notifier: Notifier,
        renderer: Optional[DashboardRenderer] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        settings = get_settings()
        self.window_days = settings.due_soon_days
        self.store_factory = store_factory
        self.session = session
        self.notifier = notifier
        self.renderer = renderer or DashboardRenderer(window_days=self.window_days)
        self.today = today or (lambda: local_today(settings.app_timezone))

        self._search_debouncer = Debouncer(self.search, settings.search_debounce_ms)
        self._unsubscribe = session.subscribe(self.on_session_event)
        self._store: Optional[RecordStore] = None
        self.disabled_controls: set[str] = set()
        self._clear_state()

    def _clear_state(self) -> None:
        self.state = DashboardState.UNINITIALIZED
        self.user: Optional[UserPrincipal] = None
        self.role: Optional[str] = None
        self.error_message: Optional[str] = None
        self.startup_error: Optional[VaxTrackerError] = None
        self.records: list = []
        self.reminders: list = []
        self.filtered_records: list = []
        self.search_term = ""
        self.stats = DashboardStats()
        self.surfaces = RenderedSurfaces()
        self.editing_id: Optional[str] = None
        self.pending_delete_id: Optional[str] = None
        self._store = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def permissions(self):
        return derive_view_permissions(self.role)

    # ------------------------------------------------------------------ lifecycle

    async def init(self) -> ActionResult:
        self.state = DashboardState.LOADING_USER
        self.error_message = None
        self.startup_error = None
        user = self.session.current_identity()
        if user is None:
            return self._fail_startup(NotAuthenticated("No authenticated session"))
        self.user = user
        self._store = self.store_factory(user)

        self.state = DashboardState.LOADING_DATA
        self.role = await self._load_role()
        try:
            await self._load_data()
        except VaxTrackerError as e:
            return self._fail_startup(e)

        self._refresh_view()
        self.state = DashboardState.READY
        logger.info("Dashboard ready for %s (%s): %d records", user.email, self.role, len(self.records))
        return ActionResult.success()

    async def retry(self) -> ActionResult:
        if self.state is not DashboardState.ERROR:
            return self._reject(DashboardNotReady("Nothing to retry"))
        return await self.init()

    async def reload(self) -> ActionResult:
        if self.state is not DashboardState.READY:
            return self._reject(DashboardNotReady("The dashboard is still loading"))
        self.state = DashboardState.LOADING_DATA
        try:
            await self._load_data()
        except VaxTrackerError as e:
            self.state = DashboardState.READY
            return self._report(e, "Error loading data")
        self._refresh_view()
        self.state = DashboardState.READY
        return ActionResult.success()

    async def on_session_event(self, event: str, session: Optional[AuthSession] = None) -> None:
        if event == SIGNED_IN:
            self._clear_state()
            await self.init()
        elif event == SIGNED_OUT:
            self._search_debouncer.cancel()
            self._clear_state()

    def close(self) -> None:
        self._unsubscribe()
        self._search_debouncer.cancel()
        self.notifier.clear()

    async def _load_role(self) -> str:
        try:
            return await self._store.get_role()
        except VaxTrackerError as e:
            logger.error("Could not load role for %s, falling back to user: %s", self.user.email, e.reason)
            return "user"

    async def _load_data(self) -> None:
        owner_filter = None if self.is_admin else self.user.id
        records = await self._store.list_records(owner_id=owner_filter)
        reminders = await self._store.list_open_reminders(owner_id=owner_filter)
        self.records = records
        self.reminders = reminders
        self.filtered_records = self._filter(self.search_term)

    def _refresh_view(self) -> None:
        today = self.today()
        self.stats = compute_stats(self.records, self.reminders, today, self.window_days)
        self.surfaces = self.renderer.render_all(
            self.filtered_records, self.reminders, self.role, self.search_term, self.stats, today
        )

    def _fail_startup(self, error: VaxTrackerError) -> ActionResult:
        logger.error("Dashboard initialization failed: %s", error.reason)
        self.state = DashboardState.ERROR
        self.error_message = error.reason
        self.startup_error = error
        self.role = self.role or "user"
        self.records, self.reminders, self.filtered_records = [], [], []
        self.stats = DashboardStats()
        self.surfaces = RenderedSurfaces(
            records=self.renderer.render_error(error.reason),
            reminders=self.renderer.render_reminders([], self.role, self.today()),
            stats=self.renderer.render_stats(self.stats),
        )
        self.notifier.error(error.reason)
        return ActionResult.failure(error)

    # ------------------------------------------------------------------ search

    def _filter(self, term: str) -> list:
        term = (term or "").lower().strip()
        if not term:
            return list(self.records)

        def matches(record) -> bool:
            if term in record.vaccine_name.lower():
                return True
            owner = getattr(record, "owner", None)
            if self.is_admin and owner is not None:
                return term in (owner.full_name or "").lower() or term in (owner.email or "").lower()
            return False

        return [r for r in self.records if matches(r)]

    def search(self, term: str) -> list:
        """Filter the loaded records; never re-fetches."""
        self.search_term = term or ""
        self.filtered_records = self._filter(self.search_term)
        if self.state is DashboardState.READY:
            self.surfaces.records = self.renderer.render_records(
                self.filtered_records, self.role, self.search_term, self.today()
            )
        return self.filtered_records

    def search_input(self, term: str) -> None:
        """Keystroke entry point; coalesces rapid input into one search."""
        self._search_debouncer(term)

    # ------------------------------------------------------------------ mutations

    def _check(self, allowed: bool, action: str) -> Optional[VaxTrackerError]:
        if self.state is not DashboardState.READY:
            return DashboardNotReady("The dashboard is still loading")
        if not allowed:
            return AccessDenied(f"Only administrators can {action} vaccination records")
        return None

    def _reject(self, error: VaxTrackerError) -> ActionResult:
        logger.warning("Rejected dashboard action: %s", error.reason)
        self.notifier.error(error.reason)
        return ActionResult.failure(error)

    def _report(self, error: VaxTrackerError, context: str) -> ActionResult:
        logger.error("%s: %s", context, error.reason)
        if isinstance(error, ValidationError):
            self.notifier.error(error.reason)
        else:
            self.notifier.error(f"{context}: {error.reason}")
        return ActionResult.failure(error)

    @asynccontextmanager
    async def busy(self, control: str):
        """Disable a control while an operation is awaited; always re-enabled."""
        self.disabled_controls.add(control)
        try:
            yield
        finally:
            self.disabled_controls.discard(control)

    async def add_record(self, form) -> ActionResult:
        denied = self._check(self.permissions.can_add, "add")
        if denied:
            return self._reject(denied)
        async with self.busy("add-record"):
            try:
                record = await self._store.insert_record(form, self.today())
            except VaxTrackerError as e:
                return self._report(e, "Error adding vaccination record")
            await self.reload()
        message = "Vaccination record added successfully!"
        self.notifier.success(message)
        return ActionResult.success(message, data={"record_id": record.id})

    async def edit_record(self, record_id: str) -> ActionResult:
        """Populate the edit form for a loaded record."""
        denied = self._check(self.permissions.can_edit, "edit")
        if denied:
            return self._reject(denied)
        record = next((r for r in self.records if r.id == record_id), None)
        if record is None:
            return self._report(NotFound(f"Vaccination record {record_id} not found"), "Error editing record")
        self.editing_id = record_id
        return ActionResult.success(data=record_form_for(record))

    async def update_record(self, record_id: str, form) -> ActionResult:
        denied = self._check(self.permissions.can_edit, "edit")
        if denied:
            return self._reject(denied)
        async with self.busy("edit-record"):
            try:
                await self._store.update_record(record_id, form, self.today())
            except VaxTrackerError as e:
                return self._report(e, "Error updating vaccination record")
            self.editing_id = None
            await self.reload()
        message = "Vaccination record updated successfully!"
        self.notifier.success(message)
        return ActionResult.success(message, data={"record_id": record_id})

    async def delete_record(self, record_id: str) -> ActionResult:
        """First step of deletion: remember the record and ask for confirmation."""
        denied = self._check(self.permissions.can_delete, "delete")
        if denied:
            return self._reject(denied)
        if not any(r.id == record_id for r in self.records):
            return self._report(NotFound(f"Vaccination record {record_id} not found"), "Error deleting record")
        self.pending_delete_id = record_id
        return ActionResult.success("Confirm deletion", data={"record_id": record_id})

    def cancel_delete(self) -> None:
        self.pending_delete_id = None

    async def confirm_delete(self) -> ActionResult:
        denied = self._check(self.permissions.can_delete, "delete")
        if denied:
            return self._reject(denied)
        record_id = self.pending_delete_id
        if record_id is None:
            return self._reject(NotFound("No record selected for deletion"))
        async with self.busy("confirm-delete"):
            try:
                await self._store.delete_record(record_id)
            except VaxTrackerError as e:
                return self._report(e, "Error deleting vaccination record")
            self.pending_delete_id = None
            await self.reload()
        message = "Vaccination record deleted successfully!"
        self.notifier.success(message)
        return ActionResult.success(message, data={"record_id": record_id})

    # ------------------------------------------------------------------ output

    def _record_response(self, record, today: date) -> RecordResponse:
        response = RecordResponse.model_validate(record)
        response.status = classify(record.next_due, today, self.window_days).label
        if not self.is_admin:
            response.owner = None
        return response

    def _reminder_response(self, reminder, today: date) -> ReminderResponse:
        response = ReminderResponse.model_validate(reminder)
        response.overdue = is_overdue(reminder.due_date, today)
        return response

    def snapshot(self) -> DashboardSnapshot:
        today = self.today()
        user = None
        if self.user is not None:
            user = {
                "id": self.user.id,
                "email": self.user.email,
                "display_name": self.user.display_name or self.user.email,
            }
        return DashboardSnapshot(
            state=self.state.value,
            role=self.role,
            user=user,
            error=self.error_message,
            search_term=self.search_term,
            permissions=self.permissions.to_dict(),
            stats=self.stats.to_dict(),
            records=[self._record_response(r, today) for r in self.filtered_records],
            reminders=[self._reminder_response(r, today) for r in self.reminders],
            surfaces=self.surfaces.to_dict(),
            notifications=[t.to_dict() for t in self.notifier.active],
        )
