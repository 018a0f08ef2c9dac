"""HTML fragments for the three dashboard surfaces.

Pure projections of view-model state; nothing here writes back to it.
"""

from dataclasses import dataclass, asdict
from datetime import date
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from vaxtracker.services.status import (
    DUE_SOON_DAYS,
    DashboardStats,
    classify,
    format_date,
    format_relative,
    is_overdue,
)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"


@dataclass(frozen=True)
class ViewPermissions:
    can_add: bool = False
    can_edit: bool = False
    can_delete: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def derive_view_permissions(role: Optional[str]) -> ViewPermissions:
    is_admin = role == "admin"
    return ViewPermissions(can_add=is_admin, can_edit=is_admin, can_delete=is_admin)


@dataclass
class RenderedSurfaces:
    records: str = ""
    reminders: str = ""
    stats: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


def _owner_label(record) -> Optional[str]:
    owner = getattr(record, "owner", None)
    if owner is None:
        return None
    if owner.full_name:
        return f"{owner.full_name} ({owner.email})"
    return owner.email


class DashboardRenderer:
    def __init__(self, window_days: int = DUE_SOON_DAYS, template_dir: Path = TEMPLATE_DIR):
        self.window_days = window_days
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["format_date"] = format_date
        self.env.filters["format_relative"] = format_relative

    def render_records(self, records: list, role: Optional[str], search_term: str, today: date) -> str:
        cards = [
            {
                "record": r,
                "status": classify(r.next_due, today, self.window_days),
                "owner": _owner_label(r),
            }
            for r in records
        ]
        return self.env.get_template("records.html").render(
            cards=cards,
            search_term=(search_term or "").strip(),
            is_admin=role == "admin",
            permissions=derive_view_permissions(role),
        )

    def render_reminders(self, reminders: list, role: Optional[str], today: date) -> str:
        cards = []
        for reminder in reminders:
            record = getattr(reminder, "record", None)
            cards.append({
                "reminder": reminder,
                "overdue": is_overdue(reminder.due_date, today),
                "vaccine_name": record.vaccine_name if record else "Unknown Vaccine",
                "dose_number": record.dose_number if record else 1,
                "owner": _owner_label(record) if record is not None and role == "admin" else None,
            })
        return self.env.get_template("reminders.html").render(
            cards=cards,
            is_admin=role == "admin",
            today=today,
        )

    def render_stats(self, stats: DashboardStats) -> str:
        return self.env.get_template("stats.html").render(stats=stats)

    def render_error(self, message: str) -> str:
        return self.env.get_template("error.html").render(message=message)

    def render_all(
        self,
        records: list,
        reminders: list,
        role: Optional[str],
        search_term: str,
        stats: DashboardStats,
        today: date,
    ) -> RenderedSurfaces:
        return RenderedSurfaces(
            records=self.render_records(records, role, search_term, today),
            reminders=self.render_reminders(reminders, role, today),
            stats=self.render_stats(stats),
        )
