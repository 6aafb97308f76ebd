from sqlalchemy import Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.base import Base


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (
        # One ballot per user per poll; the only guard against concurrent double votes
        UniqueConstraint("user_id", "poll_id", name="uq_votes_user_poll"),
    )

    option_id: Mapped[int] = mapped_column(Integer, ForeignKey("poll_options.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    poll_id: Mapped[int] = mapped_column(Integer, ForeignKey("polls.id", ondelete="CASCADE"), nullable=False, index=True)
