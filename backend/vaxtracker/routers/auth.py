import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from vaxtracker.database import get_db
from vaxtracker.models.profile import Profile
from vaxtracker.schemas.auth import SignupRequest, TokenRequest, TokenResponse, ProfileResponse
from vaxtracker.auth import (
    create_token,
    get_current_user,
    get_session_bridge,
    hash_password,
    verify_password,
    SessionBridge,
    UserPrincipal,
)
from vaxtracker.exceptions import NotAuthenticated, NotFound

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/signup", response_model=ProfileResponse, status_code=201)
async def signup(data: SignupRequest, db: AsyncSession = Depends(get_db)):
    """Register a profile. New profiles always start with the ``user`` role."""
    existing = await db.scalar(select(Profile).where(Profile.email == data.email))
    if existing:
        raise HTTPException(status_code=409, detail="User already registered")

    profile = Profile(
        email=data.email,
        full_name=data.full_name.strip(),
        role="user",
        password_hash=hash_password(data.password),
    )
    db.add(profile)
    await db.flush()
    await db.refresh(profile)
    logger.info("Registered profile %s", profile.email)
    return ProfileResponse.model_validate(profile)


@router.post("/token", response_model=TokenResponse)
async def get_token(data: TokenRequest, db: AsyncSession = Depends(get_db)):
    """
    Exchange email and password for a JWT.
    Body: {"email": "jane@example.com", "password": "..."}
    """
    profile = await db.scalar(select(Profile).where(Profile.email == data.email))
    if not verify_password(profile, data.password):
        logger.warning("Failed sign-in for %s", data.email)
        raise NotAuthenticated("Incorrect email or password")

    return TokenResponse(
        access_token=create_token(profile),
        user_id=profile.id,
        email=profile.email,
        display_name=profile.display_name,
        role=profile.role,
    )


@router.get("/me", response_model=ProfileResponse)
async def me(
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(get_current_user),
):
    if current_user is None:
        raise NotAuthenticated("No authenticated session")
    profile = await db.get(Profile, current_user.id)
    if not profile:
        raise NotFound("Profile not found")
    return ProfileResponse.model_validate(profile)


@router.post("/logout")
async def logout(session: SessionBridge = Depends(get_session_bridge)):
    await session.sign_out()
    return {"signed_out": True}
