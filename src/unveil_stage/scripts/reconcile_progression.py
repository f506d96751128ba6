"""Repair conversation counters that fell behind their stored TEXT messages.

Run after restoring a backup or replaying messages imported out of band.
Counters are only ever raised.
"""

from __future__ import annotations

import argparse
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from unveil_stage.core.logging import setup_logging
from unveil_stage.db.session import SessionLocal
from unveil_stage.db.transactions import run_transaction
from unveil_stage.models import Conversation
from unveil_stage.services.progression import ProgressionSnapshot, reconcile_progression

logger = logging.getLogger(__name__)


def reconcile_all(
    session_factory: sessionmaker[Session],
    conversation_ids: list[str] | None = None,
) -> list[ProgressionSnapshot]:
    """Reconcile each conversation in its own transaction.

    Args:
        session_factory: Factory for short-lived sessions.
        conversation_ids: Restrict the run to these ids; all conversations when omitted.

    Returns:
        The progression of every conversation after reconciliation.
    """
    if conversation_ids is None:
        with session_factory() as db:
            conversation_ids = list(db.execute(select(Conversation.id)).scalars())

    results = []
    for conversation_id in conversation_ids:
        snapshot = run_transaction(
            session_factory,
            lambda db, cid=conversation_id: reconcile_progression(db, cid),
        )
        logger.info(
            "Conversation %s: count=%d level=%d",
            conversation_id,
            snapshot.text_message_count,
            snapshot.reveal_level,
        )
        results.append(snapshot)
    return results


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Recount TEXT messages and ratchet reveal levels.")
    parser.add_argument("conversation_ids", nargs="*", help="Conversations to repair (default: all)")
    args = parser.parse_args(argv)

    setup_logging()
    snapshots = reconcile_all(SessionLocal, args.conversation_ids or None)
    print(f"Reconciled {len(snapshots)} conversation(s)")


if __name__ == "__main__":
    main()
