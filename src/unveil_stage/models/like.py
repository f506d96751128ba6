# src/unveil_stage/models/like.py
"""Discovery decisions recorded between members."""

from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from unveil_stage.db.session import Base
from unveil_stage.db.time import UTCDateTime, utcnow
from unveil_stage.models.user import new_id


class Like(Base):
    """One member's like or pass on another.

    A pair of reciprocal likes produces a Match and its Conversation.
    """

    __tablename__ = "user_like"
    __table_args__ = (
        UniqueConstraint("from_user_id", "to_user_id", name="uq_user_like_pair"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    from_user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_profile.id", ondelete="CASCADE"), nullable=False
    )
    to_user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_profile.id", ondelete="CASCADE"), nullable=False
    )
    # False records a pass ("dislike").
    is_like: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
