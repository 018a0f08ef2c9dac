"""Record/reminder store client.

Every query runs through the row policy: a caller sees and changes rows it
owns, or every row when its profile says ``admin``. The role is read from the
profiles table on each call, never from the token.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from vaxtracker.auth import UserPrincipal
from vaxtracker.exceptions import AccessDenied, NotFound, TransientStoreError
from vaxtracker.models import Profile, Reminder, VaccinationRecord
from vaxtracker.schemas.record import RecordFields
from vaxtracker.services.validation import validate

logger = logging.getLogger(__name__)


class RecordStore:
    def __init__(self, db: AsyncSession, principal: UserPrincipal):
        self.db = db
        self.principal = principal

    @asynccontextmanager
    async def _guard(self, action: str):
        try:
            yield
        except SQLAlchemyError as e:
            logger.error("Store call failed while trying to %s: %s", action, e)
            await self.db.rollback()
            raise TransientStoreError(f"Could not {action}, please try again") from e

    async def _caller_is_admin(self) -> bool:
        profile = await self.db.get(Profile, self.principal.id)
        return profile is not None and profile.role == "admin"

    def _visible(self, query, model, is_admin: bool):
        if is_admin:
            return query
        return query.where(model.user_id == self.principal.id)

    # ------------------------------------------------------------------ profile

    async def get_role(self) -> str:
        """Caller's role; a missing profile is provisioned as a plain user."""
        async with self._guard("load your profile"):
            profile = await self.db.get(Profile, self.principal.id)
            if profile is None:
                profile = Profile(
                    id=self.principal.id,
                    email=self.principal.email,
                    full_name=self.principal.display_name or "",
                    role="user",
                )
                self.db.add(profile)
                await self.db.commit()
                logger.info("Provisioned profile for %s", self.principal.email)
            return profile.role or "user"

    # ------------------------------------------------------------------ reads

    async def list_records(self, owner_id: Optional[str] = None) -> list[VaccinationRecord]:
        async with self._guard("load vaccination records"):
            is_admin = await self._caller_is_admin()
            query = (
                select(VaccinationRecord)
                .options(selectinload(VaccinationRecord.owner))
                .order_by(VaccinationRecord.date_given.desc(), VaccinationRecord.created_at.desc())
                .execution_options(populate_existing=True)
            )
            if owner_id:
                query = query.where(VaccinationRecord.user_id == owner_id)
            query = self._visible(query, VaccinationRecord, is_admin)
            result = await self.db.execute(query)
            return list(result.scalars().all())

    async def list_open_reminders(self, owner_id: Optional[str] = None) -> list[Reminder]:
        async with self._guard("load reminders"):
            is_admin = await self._caller_is_admin()
            query = (
                select(Reminder)
                .options(selectinload(Reminder.record))
                .where(Reminder.sent.is_(False))
                .order_by(Reminder.due_date.asc())
                .execution_options(populate_existing=True)
            )
            if owner_id:
                query = query.where(Reminder.user_id == owner_id)
            query = self._visible(query, Reminder, is_admin)
            result = await self.db.execute(query)
            return list(result.scalars().all())

    async def get_record(self, record_id: str) -> VaccinationRecord:
        async with self._guard("load the vaccination record"):
            is_admin = await self._caller_is_admin()
            query = self._visible(
                select(VaccinationRecord).where(VaccinationRecord.id == record_id),
                VaccinationRecord,
                is_admin,
            )
            record = (await self.db.execute(query)).scalar_one_or_none()
        if record is None:
            raise NotFound(f"Vaccination record {record_id} not found")
        return record

    # ------------------------------------------------------------------ writes

    async def _resolve_owner(self, owner_id: str, is_admin: bool) -> str:
        if owner_id != self.principal.id and not is_admin:
            raise AccessDenied("You may only manage your own vaccination records")
        if await self.db.get(Profile, owner_id) is None:
            raise NotFound(f"Owner {owner_id} not found")
        return owner_id

    async def insert_record(self, fields, today: date) -> VaccinationRecord:
        values: RecordFields = validate(fields, today)
        async with self._guard("save the vaccination record"):
            is_admin = await self._caller_is_admin()
            owner_id = await self._resolve_owner(values.user_id or self.principal.id, is_admin)
            record = VaccinationRecord(
                user_id=owner_id,
                vaccine_name=values.vaccine_name,
                dose_number=values.dose_number,
                date_given=values.date_given,
                next_due=values.next_due,
            )
            self.db.add(record)
            await self.db.commit()
            record_id = record.id
        logger.info("Inserted record %s (%s dose %s)", record_id, values.vaccine_name, values.dose_number)

        if values.next_due:
            await self._sync_reminder_safely(record)
        # A failed sync rolls the session back and expires the instance.
        async with self._guard("load the saved vaccination record"):
            return await self.db.get(VaccinationRecord, record_id)

    async def update_record(self, record_id: str, fields, today: date) -> None:
        values: RecordFields = validate(fields, today)
        async with self._guard("update the vaccination record"):
            is_admin = await self._caller_is_admin()
            query = self._visible(
                select(VaccinationRecord).where(VaccinationRecord.id == record_id),
                VaccinationRecord,
                is_admin,
            )
            record = (await self.db.execute(query)).scalar_one_or_none()
            if record is None:
                raise NotFound(f"Vaccination record {record_id} not found")

            if values.user_id and values.user_id != record.user_id:
                record.user_id = await self._resolve_owner(values.user_id, is_admin)
            record.vaccine_name = values.vaccine_name
            record.dose_number = values.dose_number
            record.date_given = values.date_given
            record.next_due = values.next_due
            await self.db.commit()
        logger.info("Updated record %s", record_id)

        await self._sync_reminder_safely(record)

    async def delete_record(self, record_id: str) -> None:
        async with self._guard("delete the vaccination record"):
            result = await self.db.execute(
                select(VaccinationRecord).where(VaccinationRecord.id == record_id)
            )
            record = result.scalar_one_or_none()
            if record is None:
                raise NotFound(f"Vaccination record {record_id} not found")
            if record.user_id != self.principal.id and not await self._caller_is_admin():
                raise AccessDenied("You do not have permission to delete this record")
            await self.db.delete(record)
            await self.db.commit()
        logger.info("Deleted record %s", record_id)

    # ------------------------------------------------------------------ reminders

    async def _sync_reminder(self, record: VaccinationRecord) -> None:
        """Create, move or drop the record's reminder so it mirrors next_due."""
        result = await self.db.execute(select(Reminder).where(Reminder.record_id == record.id))
        existing = result.scalars().first()

        if record.next_due:
            if existing:
                existing.due_date = record.next_due
                existing.user_id = record.user_id
            else:
                self.db.add(Reminder(
                    user_id=record.user_id,
                    record_id=record.id,
                    due_date=record.next_due,
                ))
        elif existing:
            await self.db.delete(existing)
        await self.db.commit()

    async def _sync_reminder_safely(self, record: VaccinationRecord) -> None:
        # The record write has already been committed and stays in place.
        try:
            await self._sync_reminder(record)
        except SQLAlchemyError as e:
            logger.warning("Reminder sync failed for record %s: %s", record.id, e)
            await self.db.rollback()
