from sqlalchemy import Integer, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from core.base import Base


class PollOption(Base):
    __tablename__ = "poll_options"
    # Replaced options must never hand their ids to new ones on SQLite
    __table_args__ = {"sqlite_autoincrement": True}

    poll_id: Mapped[int] = mapped_column(Integer, ForeignKey("polls.id", ondelete="CASCADE"), nullable=False, index=True)
    text: Mapped[str] = mapped_column(String(200), nullable=False)
