import logging
from enum import Enum
from typing import Callable, Optional

from core.identity import AuthChange, AuthEvent, IdentityService
from core.settings import settings
from models import UserModel

logger = logging.getLogger(__name__)


class GuardState(str, Enum):
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class AccessGuard:
    """Gate for protected operations.

    Starts in ``loading`` until the caller's identity is known. Entering
    ``unauthenticated`` redirects to the login path straight away; resolving to
    the state the guard is already in does nothing, so a redirect fires once
    per transition.
    """

    def __init__(
        self,
        on_redirect: Optional[Callable[[str], None]] = None,
        login_path: Optional[str] = None,
    ):
        self.state = GuardState.LOADING
        self.user: Optional[UserModel] = None
        self.redirect_to: Optional[str] = None
        self.on_redirect = on_redirect
        self._login_path = login_path or settings.LOGIN_PATH
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._token_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.state is GuardState.AUTHENTICATED

    def resolve(self, user: Optional[UserModel]) -> GuardState:
        target = GuardState.AUTHENTICATED if user is not None else GuardState.UNAUTHENTICATED
        self.user = user
        if target is self.state:
            return self.state

        self.state = target
        if target is GuardState.UNAUTHENTICATED:
            self.redirect_to = self._login_path
            logger.info(f"Access guard redirecting to {self._login_path}")
            if self.on_redirect is not None:
                self.on_redirect(self._login_path)
        else:
            self.redirect_to = None
        return self.state

    def watch(self, identity: IdentityService, token_id: Optional[str] = None) -> None:
        """Follow ``identity`` so sign-out or expiry of the guarded session redirects.

        With ``token_id`` only that token's session counts; without it any
        session of the guarded user does.
        """
        self.release()
        self._token_id = token_id
        self._unsubscribe = identity.subscribe_to_auth_changes(self._on_auth_change)

    def release(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_auth_change(self, change: AuthChange) -> None:
        if change.event not in (AuthEvent.SIGNED_OUT, AuthEvent.SESSION_EXPIRED):
            return
        if self.user is None or self.user.id != change.user_id:
            return
        if self._token_id is not None and change.token_id != self._token_id:
            return
        self.resolve(None)
