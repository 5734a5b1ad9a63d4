# src/taskpulse/notifications/messages.py

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import StrEnum


class MessageFamily(StrEnum):
    INTRINSIC = "intrinsic"
    EXTRINSIC = "extrinsic"  # achievement/extrinsic pool for high completion rates
    IMPLEMENTATION = "implementation"
    ACHIEVEMENT = "achievement"  # streak override


@dataclass(frozen=True, slots=True)
class MotivationalMessage:
    title: str
    body: str
    family: MessageFamily


_F = MessageFamily

IMPLEMENTATION_MESSAGES = (
    MotivationalMessage(
        "Plan your next step",
        "As soon as you finish the current task, start the next one on your list.",
        _F.IMPLEMENTATION,
    ),
    MotivationalMessage(
        "Pick a time",
        "When exactly will you work on this? A fixed time makes follow-through far more likely.",
        _F.IMPLEMENTATION,
    ),
    MotivationalMessage(
        "Pick a place",
        "Decide where you will do this task. A concrete place helps you actually start.",
        _F.IMPLEMENTATION,
    ),
)

INTRINSIC_MESSAGES = (
    MotivationalMessage(
        "Why it matters",
        "Think about why this task matters to you. How does it connect to what you value?",
        _F.INTRINSIC,
    ),
    MotivationalMessage(
        "Growing every day",
        "Every task you finish builds skills you keep.",
        _F.INTRINSIC,
    ),
    MotivationalMessage(
        "Your choice",
        "You picked this goal because it is important to you. You can get it done.",
        _F.INTRINSIC,
    ),
)

ACHIEVEMENT_MESSAGES = (
    MotivationalMessage(
        "You're on a streak!",
        "Tasks done several days in a row. Keep the momentum going!",
        _F.ACHIEVEMENT,
    ),
    MotivationalMessage(
        "Almost there",
        "Most of this week's tasks are already done. Finish strong!",
        _F.ACHIEVEMENT,
    ),
    MotivationalMessage(
        "New personal best",
        "You are completing more tasks than ever. Nice work!",
        _F.ACHIEVEMENT,
    ),
)

EXTRINSIC_MESSAGES = (
    MotivationalMessage(
        "Treat yourself",
        "Finish this important task, then reward yourself with something you enjoy.",
        _F.EXTRINSIC,
    ),
    MotivationalMessage(
        "Deadline ahead",
        "Don't let this one slip past its due date.",
        _F.EXTRINSIC,
    ),
    MotivationalMessage(
        "Progress check",
        "Look how much you have already completed this week. Keep building on it!",
        _F.EXTRINSIC,
    ),
)

FAMILY_MESSAGES: dict[MessageFamily, tuple[MotivationalMessage, ...]] = {
    _F.IMPLEMENTATION: IMPLEMENTATION_MESSAGES,
    _F.INTRINSIC: INTRINSIC_MESSAGES,
    _F.ACHIEVEMENT: ACHIEVEMENT_MESSAGES,
    _F.EXTRINSIC: EXTRINSIC_MESSAGES + ACHIEVEMENT_MESSAGES,
}

DEFAULT_MESSAGE = MotivationalMessage(
    "Let's get back to your tasks!",
    "You've made great progress. Keep it up!",
    _F.IMPLEMENTATION,
)


def pick_message(family: MessageFamily, rng: random.Random | None = None) -> MotivationalMessage:
    """Uniform random pick from the family's fixed set."""
    pool = FAMILY_MESSAGES.get(family) or IMPLEMENTATION_MESSAGES
    return (rng or random).choice(pool)
