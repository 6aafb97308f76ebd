from typing import Optional

from sqlalchemy import insert, update, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Poll


class PollCrud:
    def __init__(self):
        self.table = Poll

    async def create_poll(self, session: AsyncSession, poll_data: dict) -> Poll:
        stmt = insert(Poll).values(**poll_data).returning(Poll)
        result = await session.execute(stmt)
        return result.scalars().first()

    async def get_poll_by_id(self, session: AsyncSession, poll_id: int) -> Optional[Poll]:
        stmt = select(Poll).where(Poll.id == poll_id)
        result = await session.execute(stmt)
        return result.scalars().first()

    def list_polls_query(self):
        return select(Poll).order_by(Poll.created_at.desc(), Poll.id.desc())

    async def update_question(self, session: AsyncSession, poll_id: int, question: str) -> Optional[Poll]:
        stmt = update(Poll).where(Poll.id == poll_id).values(question=question).returning(Poll)
        result = await session.execute(stmt)
        return result.scalars().first()

    async def delete_poll(self, session: AsyncSession, poll_id: int) -> bool:
        stmt = delete(Poll).where(Poll.id == poll_id)
        result = await session.execute(stmt)
        return result.rowcount > 0


poll_crud = PollCrud()
