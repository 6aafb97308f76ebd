from typing import Annotated, AsyncGenerator, Optional
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from typing_extensions import TypeAlias

from core.async_engine import AsyncSessionLocal
from core.auth import bearer_scheme
from core.exceptions import AuthError
from core.identity import identity
from models import UserModel
from services.access_guard import AccessGuard, GuardState


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session

AsyncDBSession: TypeAlias = Annotated[AsyncSession, Depends(get_session)]


def get_bearer_token(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)]
) -> Optional[str]:
    if credentials is None:
        return None
    return credentials.credentials

BearerToken: TypeAlias = Annotated[Optional[str], Depends(get_bearer_token)]


async def get_optional_user(session: AsyncDBSession, token: BearerToken) -> Optional[UserModel]:
    return await identity.get_current_user(session, token)

OptionalUser: TypeAlias = Annotated[Optional[UserModel], Depends(get_optional_user)]


async def get_current_user(user: OptionalUser) -> UserModel:
    guard = AccessGuard()
    if guard.resolve(user) is GuardState.UNAUTHENTICATED:
        raise AuthError("Could not validate credentials", redirect_to=guard.redirect_to)
    return user

AuthenticatedUser: TypeAlias = Annotated[UserModel, Depends(get_current_user)]
