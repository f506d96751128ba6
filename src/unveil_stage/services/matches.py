"""Likes, passes and the matches they produce."""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from unveil_stage.core.errors import MatchError
from unveil_stage.db.transactions import run_transaction
from unveil_stage.models import Conversation, Like, Match, User
from unveil_stage.models.conversation import canonical_pair
from unveil_stage.schemas.discovery import LikeResult

logger = logging.getLogger(__name__)


class MatchService:
    """Records discovery decisions and opens a conversation on a mutual like."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    async def like_user(self, from_user_id: str, to_user_id: str) -> LikeResult:
        """Like ``to_user_id``; a reciprocal like creates the match and its conversation.

        Raises:
            MatchError: Self-like, unknown target or a decision already recorded.
        """
        return await self._record(from_user_id, to_user_id, is_like=True)

    async def dislike_user(self, from_user_id: str, to_user_id: str) -> LikeResult:
        """Record a pass on ``to_user_id``; passes never produce a match."""
        return await self._record(from_user_id, to_user_id, is_like=False)

    async def _record(self, from_user_id: str, to_user_id: str, *, is_like: bool) -> LikeResult:
        if from_user_id == to_user_id:
            raise MatchError("Cannot like yourself" if is_like else "Cannot dislike yourself")
        try:
            return await asyncio.to_thread(
                run_transaction,
                self.session_factory,
                lambda db: self._store(db, from_user_id, to_user_id, is_like),
            )
        except IntegrityError as err:
            # A concurrent request recorded the same decision first.
            raise MatchError("Already rated this user") from err

    def _store(self, db: Session, from_user_id: str, to_user_id: str, is_like: bool) -> LikeResult:
        if db.get(User, to_user_id) is None:
            raise MatchError("User not found")

        existing = db.execute(
            select(Like).where(Like.from_user_id == from_user_id, Like.to_user_id == to_user_id)
        ).scalar_one_or_none()
        if existing is not None:
            raise MatchError("Already liked this user" if existing.is_like else "Already disliked this user")

        like = Like(from_user_id=from_user_id, to_user_id=to_user_id, is_like=is_like)
        db.add(like)
        db.flush()

        if not is_like:
            return LikeResult(like_id=like.id, is_like=False, matched=False)

        reciprocal = db.execute(
            select(Like).where(
                Like.from_user_id == to_user_id,
                Like.to_user_id == from_user_id,
                Like.is_like.is_(True),
            )
        ).scalar_one_or_none()
        if reciprocal is None:
            return LikeResult(like_id=like.id, is_like=True, matched=False)

        user1_id, user2_id = canonical_pair(from_user_id, to_user_id)
        conversation = Conversation(user1_id=user1_id, user2_id=user2_id)
        db.add(conversation)
        db.flush()
        match = Match(user1_id=user1_id, user2_id=user2_id, conversation_id=conversation.id)
        db.add(match)
        db.flush()
        logger.info("Matched %s and %s in conversation %s", user1_id, user2_id, conversation.id)

        return LikeResult(
            like_id=like.id,
            is_like=True,
            matched=True,
            match_id=match.id,
            conversation_id=conversation.id,
        )
