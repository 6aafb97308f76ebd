from typing import Sequence

from sqlalchemy import select, delete, insert
from sqlalchemy.ext.asyncio import AsyncSession

from models import Vote


class VoteCrud:

    def __init__(self):
        self.table = Vote

    async def create_vote(self, session: AsyncSession, user_id: int, poll_id: int, option_id: int) -> Vote:
        stmt = insert(Vote).values(
            user_id=user_id,
            poll_id=poll_id,
            option_id=option_id
        ).returning(Vote)
        result = await session.execute(stmt)
        return result.scalars().first()

    async def get_votes_by_poll(self, session: AsyncSession, poll_id: int) -> Sequence[Vote]:
        stmt = select(Vote).where(Vote.poll_id == poll_id).order_by(Vote.id)
        result = await session.execute(stmt)
        return result.scalars().all()

    async def delete_votes_by_poll(self, session: AsyncSession, poll_id: int) -> int:
        stmt = delete(Vote).where(Vote.poll_id == poll_id)
        result = await session.execute(stmt)
        return result.rowcount


vote_crud = VoteCrud()
