# src/unveil_stage/schemas/discovery.py
"""Like/dislike Pydantic schemas."""

from pydantic import BaseModel, Field


class LikeRequest(BaseModel):
    """Schema for liking or passing on another member."""

    to_user_id: str = Field(..., min_length=1, description="Member being rated")


class LikeResult(BaseModel):
    """Outcome of a like; match fields are set when the like was reciprocal."""

    like_id: str
    is_like: bool
    matched: bool
    match_id: str | None = None
    conversation_id: str | None = None
