# src/unveil_stage/models/user.py
"""SQLAlchemy model for member profiles."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from unveil_stage.db.session import Base
from unveil_stage.db.time import UTCDateTime, utcnow


def new_id() -> str:
    """Return a fresh string identifier for primary keys."""
    return str(uuid.uuid4())


class User(Base):
    """Member profile owned by the identity collaborator.

    The conversation core only reads the public fields listed in
    ``PUBLIC_FIELDS``; credentials never reach this table.
    """

    __tablename__ = "user_profile"

    PUBLIC_FIELDS = ("id", "name", "age", "gender", "city", "photo_url")

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    gender: Mapped[str | None] = mapped_column(String(32), nullable=True)
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    photo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    def public_profile(self) -> dict[str, object]:
        """Return the profile fields other members may see."""
        return {field: getattr(self, field) for field in self.PUBLIC_FIELDS}
