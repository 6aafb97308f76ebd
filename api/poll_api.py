import logging

from fastapi import HTTPException, APIRouter, status
from fastapi_pagination import Page
from fastapi_pagination.ext.sqlalchemy import apaginate

from core.connection_manager import manager
from core.depends import AsyncDBSession, AuthenticatedUser, OptionalUser
from core.exceptions import PollsError
from crud.poll_crud import poll_crud as PollCrud
from schemas.poll_schema import (
    CreatePollRequestSchema,
    DeletePollResponseSchema,
    PollDetailResponseSchema,
    PollSchema,
    PollTallySchema,
    UpdatePollRequestSchema,
    VoteRequestSchema,
    VoteResponseSchema,
)
from services import poll_service
from services.tally import PollTally
from services.vote_service import submit_vote

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/polls",
)


def _public_tally(tally: PollTally) -> dict:
    # Broadcast payloads go to every client, so no per-user ballot state
    return {
        "poll_id": tally.poll_id,
        "total_votes": tally.total_votes,
        "options": [
            {
                "option_id": opt.option_id,
                "votes": opt.votes,
                "percentage": opt.percentage,
            }
            for opt in tally.options
        ],
    }


@router.post("/", response_model=PollDetailResponseSchema, status_code=status.HTTP_201_CREATED)
async def create_poll(
    session: AsyncDBSession,
    poll: CreatePollRequestSchema,
    current_user: AuthenticatedUser
):
    try:
        detail = await poll_service.create_poll(session, current_user, poll.title, poll.options)
        response = PollDetailResponseSchema.model_validate(detail)

        await manager.broadcast({
            "type": "poll_created",
            "data": response.poll.model_dump(mode="json")
        })
        return response

    except PollsError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error creating poll: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create poll")


@router.get("/", response_model=Page[PollSchema])
async def get_all_polls(
    session: AsyncDBSession,
    current_user: AuthenticatedUser
):
    """Polls, newest first."""
    return await apaginate(session, PollCrud.list_polls_query())


@router.get("/{poll_id}", response_model=PollDetailResponseSchema)
async def get_poll(
    session: AsyncDBSession,
    poll_id: int,
    current_user: OptionalUser
):
    try:
        detail = await poll_service.get_poll_detail(
            session, poll_id, current_user.id if current_user else None
        )
        return PollDetailResponseSchema.model_validate(detail)

    except PollsError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error fetching poll {poll_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch poll")


@router.put("/{poll_id}", response_model=PollDetailResponseSchema)
async def edit_poll(
    session: AsyncDBSession,
    poll_id: int,
    poll: UpdatePollRequestSchema,
    current_user: AuthenticatedUser
):
    try:
        detail = await poll_service.edit_poll(session, current_user, poll_id, poll.question, poll.options)
        response = PollDetailResponseSchema.model_validate(detail)

        await manager.broadcast({
            "type": "poll_updated",
            "data": response.model_dump(mode="json", exclude={"tally"})
        })
        return response

    except PollsError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error updating poll {poll_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update poll")


@router.delete("/{poll_id}", response_model=DeletePollResponseSchema)
async def delete_poll(
    session: AsyncDBSession,
    poll_id: int,
    current_user: AuthenticatedUser
):
    try:
        await poll_service.delete_poll(session, current_user, poll_id)

        await manager.broadcast({
            "type": "poll_deleted",
            "data": {"id": poll_id}
        })
        return DeletePollResponseSchema(message="Poll deleted successfully", id=poll_id)

    except PollsError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error deleting poll {poll_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete poll")


@router.post("/{poll_id}/vote", response_model=VoteResponseSchema)
async def vote_on_poll(
    session: AsyncDBSession,
    poll_id: int,
    vote_data: VoteRequestSchema,
    current_user: AuthenticatedUser
):
    """Vote on a poll option. A second vote on the same poll is refused by storage with 409."""
    try:
        user_id = current_user.id
        await submit_vote(session, poll_id, vote_data.option_id, current_user)
        detail = await poll_service.get_poll_detail(session, poll_id, user_id)

        await manager.broadcast({
            "type": "poll_voted",
            "data": _public_tally(detail.tally)
        })

        return VoteResponseSchema(
            message="Vote recorded successfully",
            poll_id=poll_id,
            option_id=vote_data.option_id,
            tally=PollTallySchema.model_validate(detail.tally),
        )

    except PollsError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error recording vote on poll {poll_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to record vote")
