"""
Auth module: JWT creation/validation, the request principal and the session bridge.

Tokens carry the caller's role for display purposes only. Authorization decisions
on stored rows are re-derived from the profiles table by the record store.
"""

import inspect
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union
from jose import jwt, JWTError
from werkzeug.security import check_password_hash, generate_password_hash
from fastapi import Request
from vaxtracker.config import get_settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"


@dataclass
class UserPrincipal:
    """Resolved identity attached to each request."""
    id: str
    email: str
    display_name: str = ""
    role: str = "user"            # "user" | "admin"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass
class AuthSession:
    access_token: str
    user: UserPrincipal


SessionListener = Callable[[str, Optional[AuthSession]], Union[Awaitable[None], None]]


class SessionBridge:
    """Supplies the current identity and broadcasts sign-in / sign-out events."""

    def __init__(self, session: Optional[AuthSession] = None):
        self._session = session
        self._listeners: list[SessionListener] = []

    def current_identity(self) -> Optional[UserPrincipal]:
        return self._session.user if self._session else None

    def current_session(self) -> Optional[AuthSession]:
        return self._session

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def sign_in(self, session: AuthSession) -> None:
        self._session = session
        await self._emit(SIGNED_IN, session)

    async def sign_out(self) -> None:
        self._session = None
        await self._emit(SIGNED_OUT, None)

    async def _emit(self, event: str, session: Optional[AuthSession]) -> None:
        logger.info("Session event %s", event)
        for listener in list(self._listeners):
            result = listener(event, session)
            if inspect.isawaitable(result):
                await result


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(profile, password: str) -> bool:
    """Profiles without a stored hash never match."""
    if profile is None or not profile.password_hash:
        return False
    return check_password_hash(profile.password_hash, password)


def create_token(profile) -> str:
    """Create a signed JWT for the given Profile model instance."""
    settings = get_settings()
    payload = {
        "sub": profile.id,
        "email": profile.email,
        "display_name": profile.display_name,
        "role": profile.role,
        "exp": int(time.time()) + settings.token_expire_seconds,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[UserPrincipal]:
    """Decode and validate a JWT. Returns None if invalid/expired."""
    try:
        settings = get_settings()
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[ALGORITHM])
        return UserPrincipal(
            id=payload["sub"],
            email=payload.get("email", ""),
            display_name=payload.get("display_name", ""),
            role=payload.get("role", "user"),
        )
    except (JWTError, KeyError):
        return None


def _bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:]


async def get_current_user(request: Request) -> Optional[UserPrincipal]:
    """
    FastAPI dependency. Extracts the principal from the Authorization header.
    Returns None when the header is absent or the token is invalid; callers
    decide whether that is fatal.
    """
    token = _bearer_token(request)
    return decode_token(token) if token else None


async def get_session_bridge(request: Request) -> SessionBridge:
    """FastAPI dependency building a session bridge for the bearer token."""
    token = _bearer_token(request)
    principal = decode_token(token) if token else None
    if principal is None:
        return SessionBridge()
    return SessionBridge(AuthSession(access_token=token, user=principal))
