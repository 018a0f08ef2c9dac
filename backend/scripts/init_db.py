"""
Initialize the database and manage roles.
Run with: python -m scripts.init_db
Run with: python -m scripts.init_db --set-role jane@example.com admin
Run with: python -m scripts.init_db --set-password jane@example.com NEW_PASSWORD
"""

import argparse
import asyncio
import logging
from sqlalchemy import select
from vaxtracker.auth import hash_password
from vaxtracker.database import engine, async_session, Base
from vaxtracker.models import Profile, VaccinationRecord, Reminder  # noqa: F401  (register tables)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ROLES = ("user", "admin")


async def create_tables():
    logger.info("Creating database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("All tables created successfully.")


async def set_role(email: str, role: str) -> bool:
    """Roles are not self-service; this is the administrative path."""
    async with async_session() as session:
        profile = await session.scalar(select(Profile).where(Profile.email == email.strip().lower()))
        if profile is None:
            logger.error("No profile for %s; the user must sign up first", email)
            return False
        profile.role = role
        await session.commit()
    logger.info("Role of %s set to %s", email, role)
    return True


async def set_password(email: str, password: str) -> bool:
    async with async_session() as session:
        profile = await session.scalar(select(Profile).where(Profile.email == email.strip().lower()))
        if profile is None:
            logger.error("No profile for %s", email)
            return False
        profile.password_hash = hash_password(password)
        await session.commit()
    logger.info("Password of %s updated", email)
    return True


async def main(args):
    await create_tables()
    ok = True
    if args.set_role:
        email, role = args.set_role
        ok = await set_role(email, role)
    if ok and args.set_password:
        email, password = args.set_password
        ok = await set_password(email, password)
    await engine.dispose()
    return ok


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create VaxTracker tables and manage roles")
    parser.add_argument("--set-role", nargs=2, metavar=("EMAIL", "ROLE"))
    parser.add_argument("--set-password", nargs=2, metavar=("EMAIL", "PASSWORD"))
    args = parser.parse_args()
    if args.set_role and args.set_role[1] not in ROLES:
        parser.error(f"role must be one of {', '.join(ROLES)}")
    raise SystemExit(0 if asyncio.run(main(args)) else 1)
