"""Identity service: sign up, sign in, sign out and current-user lookup.

The module-level ``identity`` instance is the single process-wide place where
auth changes are published. Components that care about a user's session
(access guards on long-lived connections, for instance) subscribe to it and
re-read state when notified.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from jose import JWTError
from jose.exceptions import ExpiredSignatureError
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import create_access_token, decode_access_token, verify_password
from core.exceptions import AuthError, ValidationError
from core.settings import settings
from crud.user_crud import user_crud as UserCrud
from models import UserModel

logger = logging.getLogger(__name__)

# Revoked ids are kept this long past their token's expiry, so a lapsed
# session is reported once rather than on every retry
REVOCATION_GRACE_SECONDS = 300


class AuthEvent(str, Enum):
    SIGNED_UP = "SIGNED_UP"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    SESSION_EXPIRED = "SESSION_EXPIRED"


@dataclass(frozen=True)
class AuthChange:
    event: AuthEvent
    user_id: Optional[int]
    token_id: Optional[str] = None


AuthListener = Callable[[AuthChange], None]


class IdentityService:

    def __init__(self):
        self._listeners: List[AuthListener] = []
        # jti -> exp timestamp of the revoked token
        self._revoked: Dict[str, float] = {}

    def subscribe_to_auth_changes(self, callback: AuthListener) -> Callable[[], None]:
        """Register ``callback`` for every auth change. Returns the unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _publish(self, event: AuthEvent, user_id: Optional[int], token_id: Optional[str] = None) -> None:
        change = AuthChange(event=event, user_id=user_id, token_id=token_id)
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception(f"Auth listener failed on {event.value} for user {user_id}")

    async def sign_up(self, session: AsyncSession, email: str, password: str, profile: dict) -> UserModel:
        async with session.begin():
            existing_user = await UserCrud.get_user_by_email(session, email)
            if existing_user:
                raise ValidationError({"email": ["User with this email already exists"]})

            user = await UserCrud.create_user(session, {
                "email": email,
                "password": password,
                "name": profile.get("name") or email.split("@")[0],
            })

        logger.info(f"User {user.id} signed up")
        self._publish(AuthEvent.SIGNED_UP, user.id)
        return user

    async def sign_in(self, session: AsyncSession, email: str, password: str) -> str:
        async with session.begin():
            user = await UserCrud.get_user_by_email(session, email)

        if not user or not verify_password(password, user.hashed_password):
            logger.warning(f"Failed sign in for {email}")
            raise AuthError("Incorrect email or password", redirect_to=settings.LOGIN_PATH)

        token = create_access_token(
            data={"sub": str(user.id)},
            expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        )
        logger.info(f"User {user.id} signed in")
        self._publish(AuthEvent.SIGNED_IN, user.id, self.token_id(token))
        return token

    def sign_out(self, token: str) -> None:
        try:
            payload = decode_access_token(token, verify_exp=False)
        except JWTError:
            raise AuthError("Invalid token", redirect_to=settings.LOGIN_PATH)

        self._revoke(payload)
        user_id = _user_id_from(payload)
        logger.info(f"User {user_id} signed out")
        self._publish(AuthEvent.SIGNED_OUT, user_id, payload.get("jti"))

    def expire_session(self, token: str) -> None:
        """Report that ``token`` has lapsed. Subscribers see SESSION_EXPIRED."""
        try:
            payload = decode_access_token(token, verify_exp=False)
        except JWTError:
            return
        jti = payload.get("jti")
        if jti in self._revoked:
            return
        self._revoke(payload)
        user_id = _user_id_from(payload)
        logger.info(f"Session expired for user {user_id}")
        self._publish(AuthEvent.SESSION_EXPIRED, user_id, jti)

    async def expire_when_due(self, token: str) -> None:
        """Sleep until ``token`` reaches its ``exp``, then report it expired.

        Long-lived connections run this as a task so their guard hears about
        the expiry without another request coming in.
        """
        try:
            payload = decode_access_token(token, verify_exp=False)
        except JWTError:
            return
        exp = payload.get("exp")
        if exp is None:
            return

        delay = exp - datetime.now(timezone.utc).timestamp()
        if delay > 0:
            await asyncio.sleep(delay)
        self.expire_session(token)

    def token_id(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        try:
            return decode_access_token(token, verify_exp=False).get("jti")
        except JWTError:
            return None

    def _revoke(self, payload: dict) -> None:
        now = datetime.now(timezone.utc).timestamp()
        self._revoked = {
            jti: exp for jti, exp in self._revoked.items()
            if exp + REVOCATION_GRACE_SECONDS > now
        }
        jti = payload.get("jti")
        if jti:
            self._revoked[jti] = float(payload.get("exp") or now)

    async def get_current_user(self, session: AsyncSession, token: Optional[str]) -> Optional[UserModel]:
        if not token or not token.strip():
            return None

        try:
            payload = decode_access_token(token)
        except ExpiredSignatureError:
            self.expire_session(token)
            return None
        except JWTError:
            return None

        if payload.get("jti") in self._revoked:
            return None

        user_id = _user_id_from(payload)
        if user_id is None:
            return None

        async with session.begin():
            return await UserCrud.get_user_by_id(session, user_id)


def _user_id_from(payload: dict) -> Optional[int]:
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None


identity = IdentityService()
