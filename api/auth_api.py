import logging

from fastapi import HTTPException, APIRouter, status

from core.depends import AsyncDBSession, AuthenticatedUser, BearerToken
from core.exceptions import AuthError, PollsError
from core.identity import identity
from core.settings import settings
from schemas.user_schema import UserCreate, UserLogin, UserResponse, Token, MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"]
)


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    session: AsyncDBSession,
    user_data: UserCreate
):
    try:
        user = await identity.sign_up(
            session,
            user_data.email,
            user_data.password,
            {"name": user_data.name},
        )
        return UserResponse.model_validate(user)

    except PollsError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error registering user: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create user"
        )


@router.post("/login", response_model=Token)
async def login(
    session: AsyncDBSession,
    credentials: UserLogin
):
    """Authenticate user and return access token."""
    try:
        access_token = await identity.sign_in(session, credentials.email, credentials.password)
        return Token(access_token=access_token, token_type="bearer")

    except PollsError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error authenticating user: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to authenticate user"
        )


@router.post("/logout", response_model=MessageResponse)
async def logout(current_user: AuthenticatedUser, token: BearerToken):
    if token is None:
        raise AuthError(redirect_to=settings.LOGIN_PATH)
    identity.sign_out(token)
    return MessageResponse(message="Signed out")


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: AuthenticatedUser):
    return UserResponse.model_validate(current_user)
