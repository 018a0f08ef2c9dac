import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from sqlalchemy import select
from vaxtracker.auth import hash_password
from vaxtracker.config import get_settings
from vaxtracker.database import engine, Base, async_session
from vaxtracker.exceptions import VaxTrackerError
from vaxtracker.routers import dashboard
from vaxtracker.routers import auth as auth_router

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


async def seed_admin(email: str, password: str = ""):
    """Create or promote the configured admin profile. Idempotent."""
    from vaxtracker.models.profile import Profile

    async with async_session() as session:
        profile = await session.scalar(select(Profile).where(Profile.email == email))
        if profile is None:
            profile = Profile(email=email, full_name="Administrator", role="admin")
            session.add(profile)
        elif profile.role != "admin":
            profile.role = "admin"
        if password and not profile.password_hash:
            profile.password_hash = hash_password(password)
        await session.commit()
    if not profile.password_hash:
        logger.warning("Admin %s has no password; set ADMIN_PASSWORD or use scripts/init_db.py", email)
    logger.info("Admin profile ensured for %s", email)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create tables then seed the admin profile
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if settings.admin_email:
        await seed_admin(settings.admin_email.strip().lower(), settings.admin_password)
    yield
    # Shutdown
    await engine.dispose()


app = FastAPI(
    title="VaxTracker",
    description="Personal vaccination records with due and overdue reminders",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class NoCacheMiddleware(BaseHTTPMiddleware):
    """Dashboard data is per-user; keep browsers from caching it."""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, proxy-revalidate, max-age=0"
        response.headers["Expires"] = "0"
        response.headers["Pragma"] = "no-cache"
        return response


app.add_middleware(NoCacheMiddleware)


@app.exception_handler(VaxTrackerError)
async def vaxtracker_error_handler(request: Request, exc: VaxTrackerError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.reason, "error": exc.kind, **exc.details},
    )


app.include_router(auth_router.router, prefix="/api/auth", tags=["Auth"])
app.include_router(dashboard.router, prefix="/api/dashboard", tags=["Dashboard"])


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "service": "vaxtracker"}
