"""Reveal policy: text-message count to reveal level, chapter labels and photo gating.

``REVEAL_THRESHOLDS`` is the process-wide table taken from settings. Services
built with their own ``Settings`` pass its ``reveal_thresholds`` explicitly, so
the level shown to clients and the level that unlocks chapters come from the
same table.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Final

from unveil_stage.core.settings import settings

REVEAL_THRESHOLDS: Final[tuple[int, ...]] = tuple(settings.reveal_thresholds)
MAX_REVEAL_LEVEL: Final[int] = len(REVEAL_THRESHOLDS)

CHAPTER_LABELS: Final[dict[int, str]] = {
    0: "Chapter 0 - Locked",
    1: "Chapter 1 - The beginning",
    2: "Chapter 2 - Discovery",
    3: "Chapter 3 - Connection",
    4: "Chapter 4 - Reveal",
}


def compute_reveal_level(text_message_count: int, thresholds: Sequence[int] | None = None) -> int:
    """Return the reveal level (0..4) earned by ``text_message_count`` text messages.

    Args:
        text_message_count: Number of TEXT messages in the conversation.
        thresholds: Ascending counts unlocking levels 1..4; defaults to
            ``REVEAL_THRESHOLDS``.

    Returns:
        The highest level whose threshold the count has reached.
    """
    table = REVEAL_THRESHOLDS if thresholds is None else thresholds
    level = 0
    for threshold in table:
        if text_message_count < threshold:
            break
        level += 1
    return level


def clamp_level(level: int) -> int:
    return max(0, min(MAX_REVEAL_LEVEL, level))


def chapter_label(level: int) -> str:
    """Return the human-readable chapter name for a reveal level."""
    return CHAPTER_LABELS[clamp_level(level)]


def normalize_photo_url(value: str | None) -> str | None:
    if not value:
        return None
    trimmed = value.strip()
    return trimmed or None


def apply_reveal(
    profile: Mapping[str, Any],
    reveal_level: int,
    *,
    is_self: bool,
) -> dict[str, Any]:
    """Return a copy of ``profile`` with its photo gated by ``reveal_level``.

    The requester always sees their own photo unhidden. A counterpart's photo stays
    hidden until the conversation reaches level 1; from then on the URL is
    passed through and clients blur it according to ``reveal_level``.
    """
    gated = dict(profile)
    photo_url = normalize_photo_url(profile.get("photo_url"))
    hidden = not is_self and (photo_url is None or reveal_level <= 0)
    gated["photo_url"] = None if hidden else photo_url
    gated["photo_hidden"] = hidden
    return gated
