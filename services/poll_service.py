import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import (
    AuthError,
    NotFound,
    PermissionDenied,
    StorageCategory,
    StorageError,
    ValidationError,
    storage_errors,
)
from core.settings import settings
from crud.poll_crud import poll_crud as PollCrud
from crud.poll_option_crud import poll_option_crud as PollOptionCrud
from crud.vote_crud import vote_crud as VoteCrud
from models import Poll, PollOption, UserModel
from services.tally import PollTally, tally_poll

logger = logging.getLogger(__name__)


@dataclass
class PollDetail:
    poll: Poll
    options: Sequence[PollOption]
    tally: PollTally


def validate_poll(title: Optional[str], options: Sequence[Optional[str]]) -> Tuple[str, List[str]]:
    """Trim ``title`` and ``options``, dropping blank options.

    Collects every problem before raising so the caller can report them all at once.
    """
    errors: Dict[str, List[str]] = {}
    title = (title or "").strip()
    cleaned = [text.strip() for text in options if text is not None and text.strip()]

    if not title:
        errors["title"] = ["Title is required"]
    if len(cleaned) < settings.MIN_POLL_OPTIONS:
        errors["options"] = [f"At least {settings.MIN_POLL_OPTIONS} options are required"]

    if errors:
        raise ValidationError(errors)
    return title, cleaned


def validate_create_form(title: Optional[str], option_slots: Sequence[Optional[str]]) -> Tuple[str, List[str]]:
    # Only the form's fixed slots count; anything after them is ignored
    return validate_poll(title, list(option_slots)[:settings.CREATE_OPTION_SLOTS])


def _require_user(user: Optional[UserModel]) -> UserModel:
    if user is None:
        raise AuthError(redirect_to=settings.LOGIN_PATH)
    return user


async def create_poll(
    session: AsyncSession,
    user: Optional[UserModel],
    title: Optional[str],
    option_slots: Sequence[Optional[str]],
) -> PollDetail:
    """Insert a poll and then its options.

    If the options cannot be stored the poll row is deleted again, so no poll is
    left without options. A failing compensation is logged and otherwise ignored.
    """
    question, texts = validate_create_form(title, option_slots)
    # A rollback expires every loaded row, so keep plain ids for the later steps
    user_id = _require_user(user).id

    with storage_errors(StorageCategory.POLL, "Error creating poll."):
        async with session.begin():
            poll = await PollCrud.create_poll(session, {"question": question, "user_id": user_id})
            poll_id = poll.id

    try:
        with storage_errors(StorageCategory.OPTIONS, "Error creating poll options."):
            async with session.begin():
                options = await PollOptionCrud.add_options_to_poll(session, poll_id, texts)
    except StorageError:
        await _discard_poll(session, poll_id)
        raise

    logger.info(f"Poll created successfully: ID {poll_id} by user {user_id} with {len(options)} options")
    return PollDetail(poll=poll, options=options, tally=tally_poll(poll_id, options, [], user_id))


async def _discard_poll(session: AsyncSession, poll_id: int) -> None:
    try:
        async with session.begin():
            await PollCrud.delete_poll(session, poll_id)
        logger.warning(f"Deleted poll {poll_id} after its options failed to insert")
    except SQLAlchemyError as exc:
        logger.error(f"Could not delete orphaned poll {poll_id}: {exc}")


async def get_owned_poll(session: AsyncSession, user: UserModel, poll_id: int) -> Poll:
    async with session.begin():
        poll = await PollCrud.get_poll_by_id(session, poll_id)

    if poll is None:
        raise NotFound("Poll not found")
    if poll.user_id != user.id:
        logger.warning(f"User {user.id} tried to modify poll {poll_id} owned by {poll.user_id}")
        raise PermissionDenied("You are not authorized to edit this poll.", redirect_to=settings.POLL_LIST_PATH)
    return poll


async def edit_poll(
    session: AsyncSession,
    user: Optional[UserModel],
    poll_id: int,
    question: Optional[str],
    options: Sequence[Optional[str]],
) -> PollDetail:
    """Update the question and replace every option of an owned poll.

    Options are deleted and inserted anew, so they get new ids and lose their
    votes. The steps are not atomic: if the final insert fails the poll is left
    with the new question and no options.
    """
    user = _require_user(user)
    question, texts = validate_poll(question, options)
    await get_owned_poll(session, user, poll_id)
    user_id = user.id

    with storage_errors(StorageCategory.POLL, "Failed to update the poll. Please try again."):
        async with session.begin():
            poll = await PollCrud.update_question(session, poll_id, question)

    with storage_errors(StorageCategory.OPTIONS, "Failed to update poll options. Please try again."):
        async with session.begin():
            await PollOptionCrud.delete_options_by_poll_id(session, poll_id)

    with storage_errors(StorageCategory.OPTIONS, "Failed to save new poll options. Please try again."):
        async with session.begin():
            new_options = await PollOptionCrud.add_options_to_poll(session, poll_id, texts)

    logger.info(f"Poll {poll_id} updated by user {user_id}: {len(new_options)} options")
    return PollDetail(poll=poll, options=new_options, tally=tally_poll(poll_id, new_options, [], user_id))


async def delete_poll(session: AsyncSession, user: Optional[UserModel], poll_id: int) -> None:
    user = _require_user(user)
    await get_owned_poll(session, user, poll_id)
    user_id = user.id

    with storage_errors(StorageCategory.VOTES, "Failed to delete the poll."):
        async with session.begin():
            await VoteCrud.delete_votes_by_poll(session, poll_id)

    with storage_errors(StorageCategory.OPTIONS, "Failed to delete the poll."):
        async with session.begin():
            await PollOptionCrud.delete_options_by_poll_id(session, poll_id)

    with storage_errors(StorageCategory.POLL, "Failed to delete the poll."):
        async with session.begin():
            await PollCrud.delete_poll(session, poll_id)

    logger.info(f"Poll {poll_id} deleted by user {user_id}")


async def get_poll_detail(session: AsyncSession, poll_id: int, user_id: Optional[int] = None) -> PollDetail:
    async with session.begin():
        poll = await PollCrud.get_poll_by_id(session, poll_id)
        options = await PollOptionCrud.get_options_by_poll_id(session, poll_id) if poll else []
        votes = await VoteCrud.get_votes_by_poll(session, poll_id) if poll else []

    if poll is None:
        raise NotFound("Poll not found")

    return PollDetail(poll=poll, options=options, tally=tally_poll(poll_id, options, votes, user_id))
