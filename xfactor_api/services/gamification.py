"""Streak and badge engine.

Pure computation over a user's aggregate stats and lesson progress map. The
caller supplies ``today``; nothing here reads the clock or touches storage.

Streak policy:
- the first completion of a calendar day continues the streak when the last
  activity was yesterday, and otherwise starts a new streak at 1 (the
  completing day counts as day one);
- further completions on the same day leave the streak unchanged;
- a day with a completion never reports a zero streak.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from typing import Literal, Mapping, Optional

BADGE_FIRST_LESSON = "first lesson"
BADGE_FIVE_LESSONS = "5 lessons"
BADGE_TEN_LESSONS = "10 lessons"
BADGE_THREE_DAY_STREAK = "3-day streak"
BADGE_WEEK_STREAK = "week streak"
BADGE_MONTH_STREAK = "month streak"


@dataclass(frozen=True)
class BadgeRule:
    """Award ``badge_id`` when the ``trigger`` counter equals ``threshold``."""

    trigger: Literal["count", "streak"]
    threshold: int
    badge_id: str


BADGE_RULES: tuple[BadgeRule, ...] = (
    BadgeRule("count", 1, BADGE_FIRST_LESSON),
    BadgeRule("count", 5, BADGE_FIVE_LESSONS),
    BadgeRule("count", 10, BADGE_TEN_LESSONS),
    BadgeRule("streak", 3, BADGE_THREE_DAY_STREAK),
    BadgeRule("streak", 7, BADGE_WEEK_STREAK),
    BadgeRule("streak", 30, BADGE_MONTH_STREAK),
)


@dataclass(frozen=True)
class UserStats:
    """Aggregate gamification state of one user."""

    current_streak: int = 0
    longest_streak: int = 0
    total_lessons_completed: int = 0
    last_activity_date: Optional[date] = None
    badges_earned: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "total_lessons_completed": self.total_lessons_completed,
            "badges_earned": list(self.badges_earned),
        }


@dataclass(frozen=True)
class CompletionOutcome:
    stats: UserStats
    new_badges: list[str] = field(default_factory=list)


def completed_on(record: Mapping) -> Optional[date]:
    """Calendar date a progress record was completed, or None."""
    if record.get("status") != "completed":
        return None
    completed_at = record.get("completed_at")
    if not completed_at:
        return None
    if not isinstance(completed_at, datetime):
        try:
            completed_at = datetime.fromisoformat(str(completed_at).replace("Z", "+00:00"))
        except ValueError:
            return None
    if completed_at.tzinfo is None:
        return completed_at.date()
    return completed_at.astimezone(timezone.utc).date()


def has_completed_other_lesson_on(
    lesson_progress: Mapping[str, Mapping],
    lesson_id: str,
    day: date,
) -> bool:
    """True when a lesson other than ``lesson_id`` was completed on ``day``."""
    return any(
        other_id != lesson_id and completed_on(record) == day
        for other_id, record in lesson_progress.items()
    )


def next_streak(current_streak: int, last_activity_date: Optional[date], today: date) -> int:
    """Streak after the first completion of ``today``."""
    if last_activity_date == today - timedelta(days=1):
        streak = current_streak + 1
    elif last_activity_date == today:
        streak = current_streak
    else:
        streak = 1
    return max(streak, 1)


def evaluate_badges(
    total_completed: int,
    current_streak: int,
    earned: tuple[str, ...],
    rules: tuple[BadgeRule, ...] = BADGE_RULES,
) -> list[str]:
    """Badges whose threshold is hit exactly and which are not yet earned."""
    new_badges: list[str] = []
    for rule in rules:
        value = total_completed if rule.trigger == "count" else current_streak
        if value != rule.threshold:
            continue
        if rule.badge_id in earned or rule.badge_id in new_badges:
            continue
        new_badges.append(rule.badge_id)
    return new_badges


def apply_completion(
    stats: UserStats,
    lesson_progress: Mapping[str, Mapping],
    lesson_id: str,
    was_already_completed: bool,
    today: date,
) -> CompletionOutcome:
    """Compute updated stats and newly earned badges for a lesson completion.

    Args:
        stats: aggregate stats before this completion
        lesson_progress: the user's full progress map (used for the same-day check)
        lesson_id: lesson being completed
        was_already_completed: the lesson had been completed before this call
        today: UTC calendar date of the request

    Returns:
        CompletionOutcome with the new stats and the badges added by this call.
        A repeated completion returns ``stats`` untouched and no badges.
    """
    if was_already_completed:
        return CompletionOutcome(stats=stats, new_badges=[])

    total = stats.total_lessons_completed + 1
    streak = stats.current_streak
    longest = stats.longest_streak

    if has_completed_other_lesson_on(lesson_progress, lesson_id, today):
        if streak == 0:
            streak = 1
    else:
        streak = next_streak(streak, stats.last_activity_date, today)

    longest = max(longest, streak)

    new_badges = evaluate_badges(total, streak, stats.badges_earned)
    updated = replace(
        stats,
        current_streak=streak,
        longest_streak=longest,
        total_lessons_completed=total,
        last_activity_date=today,
        badges_earned=stats.badges_earned + tuple(new_badges),
    )
    return CompletionOutcome(stats=updated, new_badges=new_badges)
