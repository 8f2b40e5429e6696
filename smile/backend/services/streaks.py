"""
Daily activity streak arithmetic and the badge catalog
"""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional

# Streak milestones that pay out bonus points
STREAK_BONUS_ACTIONS = {
    3: "STREAK_3_DAYS",
    7: "STREAK_7_DAYS",
    14: "STREAK_14_DAYS",
    30: "STREAK_30_DAYS",
}


@dataclass(frozen=True)
class Badge:
    id: str
    name: str
    icon: str
    description: str
    badge_type: str
    threshold: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "description": self.description,
            "type": self.badge_type,
            "threshold": self.threshold,
        }


BADGES: Dict[str, Badge] = {badge.id: badge for badge in [
    # Streak badges
    Badge("streak_starter", "Streak Starter", "⚡", "Active 3 days in a row", "streak", 3),
    Badge("week_warrior", "Week Warrior", "🔥", "Active 7 days in a row", "streak", 7),
    Badge("month_master", "Month Master", "🏆", "Active 30 days in a row", "streak", 30),
    # Milestones
    Badge("first_question", "First Question", "❓", "Created your first question", "milestone", 1),
    Badge("question_master", "Question Master", "🎯", "Created 50 or more questions", "milestone", 50),
    Badge("first_response", "First Response", "💬", "Submitted your first response", "milestone", 1),
    Badge("response_pro", "Response Pro", "📝", "Submitted 100 or more responses", "milestone", 100),
    Badge("exam_complete", "First Exam Complete", "📋", "Completed your first exam", "milestone"),
    Badge("inquiry_explorer", "Inquiry Explorer", "🔍", "Completed your first inquiry", "milestone"),
    Badge("case_solver", "Case Solver", "💡", "Completed your first case study", "milestone"),
    # Achievements
    Badge("exam_ace", "Exam Ace", "🌟", "Scored 100 on an exam", "achievement", 100),
    Badge("helpful_responder", "Helpful Responder", "🤝", "Received 10 or more likes", "achievement", 10),
]}

STREAK_BADGE_IDS = ("streak_starter", "week_warrior", "month_master")


@dataclass
class StreakUpdate:
    current_streak: int
    longest_streak: int
    weekly_count: int
    monthly_count: int
    week_start: date
    month_start: date
    is_new_day: bool


def one_month_before(day: date) -> date:
    year, month = (day.year, day.month - 1) if day.month > 1 else (day.year - 1, 12)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def advance_streak(
    today: date,
    last_activity: Optional[date],
    current_streak: int = 0,
    longest_streak: int = 0,
    weekly_count: int = 0,
    monthly_count: int = 0,
    week_start: Optional[date] = None,
    month_start: Optional[date] = None,
) -> StreakUpdate:
    """Apply one day of activity to a streak record.

    Same day leaves the streak alone, the next day extends it, any longer
    gap restarts it at one. Weekly and monthly activity counters restart
    once their window start is older than a week / a month.
    """
    if last_activity is None:
        new_streak, is_new_day = 1, True
    elif today == last_activity:
        new_streak, is_new_day = current_streak, False
    elif today - last_activity == timedelta(days=1):
        new_streak, is_new_day = current_streak + 1, True
    else:
        new_streak, is_new_day = 1, True

    if week_start is None or week_start < today - timedelta(days=7):
        weekly_count, week_start = 0, today
    if month_start is None or month_start < one_month_before(today):
        monthly_count, month_start = 0, today

    if is_new_day:
        weekly_count += 1
        monthly_count += 1

    return StreakUpdate(
        current_streak=new_streak,
        longest_streak=max(longest_streak, new_streak),
        weekly_count=weekly_count,
        monthly_count=monthly_count,
        week_start=week_start,
        month_start=month_start,
        is_new_day=is_new_day,
    )


def streak_badges_for(streak_days: int) -> List[str]:
    return [badge_id for badge_id in STREAK_BADGE_IDS if streak_days >= BADGES[badge_id].threshold]


def streak_bonus_action(streak_days: int) -> Optional[str]:
    return STREAK_BONUS_ACTIONS.get(streak_days)
