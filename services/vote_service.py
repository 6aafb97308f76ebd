import logging
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import (
    AuthError,
    NotFound,
    PollsError,
    StorageCategory,
    ValidationError,
    storage_errors,
)
from core.settings import settings
from crud.poll_option_crud import poll_option_crud as PollOptionCrud
from crud.vote_crud import vote_crud as VoteCrud
from models import UserModel, Vote
from services.tally import PollTally, apply_optimistic_vote

logger = logging.getLogger(__name__)

ALREADY_VOTED_MESSAGE = "Failed to submit vote. You may have already voted."
NO_SELECTION_MESSAGE = "Please select an option"


async def submit_vote(
    session: AsyncSession,
    poll_id: int,
    option_id: Optional[int],
    user: Optional[UserModel],
) -> Vote:
    """Record ``user``'s vote for ``option_id`` on ``poll_id``.

    Duplicate votes are caught by the storage unique constraint, not here, and
    come back as a StorageError like any other failed insert. Nothing is retried.
    """
    if option_id is None:
        raise ValidationError({"option_id": [NO_SELECTION_MESSAGE]})
    if user is None:
        raise AuthError(redirect_to=settings.LOGIN_PATH)
    user_id = user.id

    async with session.begin():
        option = await PollOptionCrud.get_option_by_id(session, option_id)
    if option is None or option.poll_id != poll_id:
        raise NotFound(f"Option {option_id} not found for this poll")

    with storage_errors(StorageCategory.VOTES, ALREADY_VOTED_MESSAGE):
        async with session.begin():
            vote = await VoteCrud.create_vote(session, user_id, poll_id, option_id)

    logger.info(f"User {user_id} voted for option {option_id} on poll {poll_id}")
    return vote


class PollView:
    """Ballot state for one user looking at one poll.

    ``tally`` is a local projection: a successful vote bumps it immediately and
    :meth:`refresh` replaces it with an authoritative tally whenever one arrives.
    """

    def __init__(self, tally: PollTally):
        self.tally = tally
        self.selected_option_id: Optional[int] = None
        self.error: Optional[str] = None

    @property
    def has_voted(self) -> bool:
        return self.tally.has_voted

    def select(self, option_id: int) -> None:
        if self.tally.option(option_id) is None:
            raise NotFound(f"Option {option_id} not found for this poll")
        self.selected_option_id = option_id

    def refresh(self, tally: PollTally) -> None:
        self.tally = tally

    async def submit(self, send: Callable[[int], Awaitable[object]]) -> PollTally:
        """Send the selected option through ``send`` and project the result.

        On any failure the tally and voted state stay as they were, ``error``
        holds the message and the exception propagates.
        """
        if self.has_voted:
            self.error = "You have already voted on this poll"
            raise ValidationError({"option_id": [self.error]})
        if self.selected_option_id is None:
            self.error = NO_SELECTION_MESSAGE
            raise ValidationError({"option_id": [self.error]})

        try:
            await send(self.selected_option_id)
        except PollsError as exc:
            self.error = exc.message
            raise

        self.error = None
        self.tally = apply_optimistic_vote(self.tally, self.selected_option_id)
        return self.tally
