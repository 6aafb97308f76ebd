from typing import List, Optional, Sequence

from sqlalchemy import insert, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import PollOption, Vote


class PollOptionCrud:
    def __init__(self):
        self.table = PollOption

    async def create_options(self, session: AsyncSession, options: List[dict]) -> Sequence[PollOption]:
        stmt = insert(PollOption).values(options).returning(PollOption)
        result = await session.execute(stmt)
        return sorted(result.scalars().all(), key=lambda opt: opt.id)

    async def add_options_to_poll(self, session: AsyncSession, poll_id: int, texts: List[str]) -> Sequence[PollOption]:
        return await self.create_options(session, [{"text": text, "poll_id": poll_id} for text in texts])

    async def get_options_by_poll_id(self, session: AsyncSession, poll_id: int) -> Sequence[PollOption]:
        stmt = select(PollOption).where(PollOption.poll_id == poll_id).order_by(PollOption.id)
        result = await session.execute(stmt)
        return result.scalars().all()

    async def get_option_by_id(self, session: AsyncSession, option_id: int) -> Optional[PollOption]:
        stmt = select(PollOption).where(PollOption.id == option_id)
        result = await session.execute(stmt)
        return result.scalars().first()

    async def delete_options_by_poll_id(self, session: AsyncSession, poll_id: int) -> int:
        """Delete every option of a poll, along with the votes cast for them."""
        option_ids = select(PollOption.id).where(PollOption.poll_id == poll_id)
        await session.execute(delete(Vote).where(Vote.option_id.in_(option_ids)))
        result = await session.execute(delete(PollOption).where(PollOption.poll_id == poll_id))
        return result.rowcount


poll_option_crud = PollOptionCrud()
