"""History, streak and achievement statistics.

Everything here is derived on demand from the histories of all known
problems. Nothing is cached or maintained incrementally because histories
can be edited after the fact (undo, retime).

Usage:
    problems = reconciler.all_known_problems()
    summary = summarize(problems)
    print(summary.streak.count, summary.totals.total_reviews)
"""
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from typing import Dict, Iterable, List, Optional

from algotrack.config import settings
from algotrack.models.progress_models import (
    Difficulty,
    EventType,
    ProgressStatus,
    TrackedProblem,
)
from algotrack.services.scheduling import is_due, local_date


@dataclass
class HistoryEntry:
    """One learn or review event of one problem."""
    type: EventType
    date: datetime
    catalog_id: Optional[str]
    problem: TrackedProblem

    @property
    def day(self) -> date:
        return local_date(self.date)


@dataclass
class HeatmapDay:
    """Activity of one calendar day."""
    date: date
    count: int
    level: int


@dataclass
class HistoryTotals:
    """Running totals over the whole history."""
    total_learns: int = 0
    total_reviews: int = 0
    active_days: int = 0


@dataclass
class StreakInfo:
    """Current streak; frozen when the last active day was just missed."""
    count: int = 0
    is_frozen: bool = False


@dataclass(frozen=True)
class Achievement:
    """A milestone over one of the totals or the streak."""
    id: str
    title: str
    description: str
    metric: str  # learns, reviews, streak or active_days
    threshold: int


ACHIEVEMENTS = [
    Achievement("first_learn", "First Step", "Learn your first problem", "learns", 1),
    Achievement("learns_10", "Getting Started", "Learn 10 problems", "learns", 10),
    Achievement("learns_50", "Problem Solver", "Learn 50 problems", "learns", 50),
    Achievement("learns_100", "Centurion", "Learn 100 problems", "learns", 100),
    Achievement("reviews_10", "Keep It Fresh", "Complete 10 reviews", "reviews", 10),
    Achievement("reviews_100", "Review Machine", "Complete 100 reviews", "reviews", 100),
    Achievement("streak_3", "On a Roll", "Reach a 3-day streak", "streak", 3),
    Achievement("streak_7", "Week Warrior", "Reach a 7-day streak", "streak", 7),
    Achievement("streak_30", "Unstoppable", "Reach a 30-day streak", "streak", 30),
    Achievement("active_30", "Regular", "Be active on 30 different days", "active_days", 30),
]


@dataclass
class AchievementStatus:
    """Evaluation of an achievement against the current statistics."""
    achievement: Achievement
    unlocked: bool
    progress: float  # 0.0 - 1.0


@dataclass
class HistorySummary:
    """All history statistics for a set of problems."""
    history: List[HistoryEntry]
    heatmap: List[HeatmapDay]
    totals: HistoryTotals
    streak: StreakInfo
    achievements: List[AchievementStatus]


def today_local() -> date:
    """Today's date in the configured timezone."""
    return local_date(datetime.now(UTC))


def build_history(problems: Iterable[TrackedProblem]) -> List[HistoryEntry]:
    """Flatten every event of every problem, newest first."""
    entries = []
    for problem in problems:
        for event in problem.record.learn_history:
            entries.append(HistoryEntry(EventType.LEARN, event.date, event.plan, problem))
        for event in problem.record.review_history:
            entries.append(HistoryEntry(EventType.REVIEW, event.date, event.plan, problem))
    entries.sort(key=lambda entry: entry.date, reverse=True)
    return entries


def history_by_date(history: Iterable[HistoryEntry]) -> Dict[date, List[HistoryEntry]]:
    """Group history entries by calendar day, keeping their order."""
    grouped: Dict[date, List[HistoryEntry]] = {}
    for entry in history:
        grouped.setdefault(entry.day, []).append(entry)
    return grouped


def activity_counts(history: Iterable[HistoryEntry]) -> Dict[date, int]:
    """Number of events per calendar day."""
    return dict(Counter(entry.day for entry in history))


def activity_level(count: int, max_count: int) -> int:
    """Heatmap intensity from 0 (no activity) to 4 relative to the busiest day."""
    if max_count == 0 or count == 0:
        return 0
    ratio = count / max_count
    if ratio >= 0.75:
        return 4
    elif ratio >= 0.5:
        return 3
    elif ratio >= 0.25:
        return 2
    else:
        return 1


def heatmap(history: Iterable[HistoryEntry], today: date, days: Optional[int] = None) -> List[HeatmapDay]:
    """Per-day activity over a trailing window ending today, oldest first."""
    days = days or settings.learning.heatmap_days
    counts = activity_counts(history)
    start = today - timedelta(days=days - 1)
    window = [start + timedelta(days=offset) for offset in range(days)]
    max_count = max((counts.get(day, 0) for day in window), default=0)
    return [
        HeatmapDay(date=day, count=counts.get(day, 0), level=activity_level(counts.get(day, 0), max_count))
        for day in window
    ]


def totals(history: List[HistoryEntry]) -> HistoryTotals:
    """Learn and review totals and the number of active days."""
    return HistoryTotals(
        total_learns=sum(1 for entry in history if entry.type == EventType.LEARN),
        total_reviews=sum(1 for entry in history if entry.type == EventType.REVIEW),
        active_days=len({entry.day for entry in history}),
    )


def current_streak(active_days: Iterable[date], today: date, freeze_days: Optional[int] = None) -> StreakInfo:
    """Count consecutive active days ending today or yesterday.

    With ``freeze_days`` of grace, a streak whose last active day was up to
    ``1 + freeze_days`` days ago is kept but reported frozen, and acting
    today bridges a gap of up to ``freeze_days`` missed days once.
    """
    if freeze_days is None:
        freeze_days = settings.learning.streak_freeze_days
    days = sorted({day for day in active_days if day <= today}, reverse=True)
    if not days:
        return StreakInfo()

    since_last = (today - days[0]).days
    if since_last <= 1:
        is_frozen = False
    elif since_last <= 1 + freeze_days:
        is_frozen = True
    else:
        return StreakInfo()

    count = 1
    for position, (newer, older) in enumerate(zip(days, days[1:])):
        gap = (newer - older).days
        if gap == 1:
            count += 1
        elif position == 0 and newer == today and gap <= 1 + freeze_days:
            # Recovering today from missed days
            count += 1
        else:
            break
    return StreakInfo(count=count, is_frozen=is_frozen)


def evaluate_achievements(history_totals: HistoryTotals, streak: StreakInfo) -> List[AchievementStatus]:
    """Evaluate the fixed achievement set."""
    metrics = {
        "learns": history_totals.total_learns,
        "reviews": history_totals.total_reviews,
        "streak": streak.count,
        "active_days": history_totals.active_days,
    }
    statuses = []
    for achievement in ACHIEVEMENTS:
        value = metrics[achievement.metric]
        statuses.append(AchievementStatus(
            achievement=achievement,
            unlocked=value >= achievement.threshold,
            progress=min(value / achievement.threshold, 1.0),
        ))
    return statuses


def summarize(problems: Iterable[TrackedProblem], today: Optional[date] = None) -> HistorySummary:
    """Compute every history statistic for the given problems."""
    today = today or today_local()
    history = build_history(problems)
    history_totals = totals(history)
    streak = current_streak((entry.day for entry in history), today)
    return HistorySummary(
        history=history,
        heatmap=heatmap(history, today),
        totals=history_totals,
        streak=streak,
        achievements=evaluate_achievements(history_totals, streak),
    )


@dataclass
class ScheduleDay:
    """Problems whose next review falls on a given day."""
    date: date
    problems: List[TrackedProblem]


@dataclass
class DifficultyProgress:
    """Learning coverage of one difficulty level."""
    difficulty: Difficulty
    total: int
    learning: int
    mastered: int

    @property
    def done(self) -> int:
        return self.learning + self.mastered

    @property
    def percent(self) -> int:
        return round(self.done / self.total * 100) if self.total else 0


@dataclass
class DashboardSummary:
    """Overview of a problem set for a given day."""
    today: date
    status_counts: Dict[ProgressStatus, int]
    due_today: List[TrackedProblem]
    due_tomorrow: List[TrackedProblem]
    overdue_count: int
    schedule: List[ScheduleDay]
    today_activity: int
    difficulty: List[DifficultyProgress]
    suggestions: List[TrackedProblem]
    streak: StreakInfo = field(default_factory=StreakInfo)


def dashboard_summary(problems: List[TrackedProblem], today: Optional[date] = None) -> DashboardSummary:
    """Summarize due reviews, schedule and coverage of a problem set."""
    today = today or today_local()
    tomorrow = today + timedelta(days=1)
    records = [problem.record for problem in problems]
    history = build_history(problems)

    due_today = sorted(
        (problem for problem in problems if is_due(problem.record, today)),
        key=lambda problem: problem.record.next_review_date,
    )
    schedule = [
        ScheduleDay(
            date=day,
            problems=[problem for problem in problems if problem.record.next_review_date == day],
        )
        for day in (today + timedelta(days=offset) for offset in range(settings.learning.schedule_days))
    ]
    difficulty = []
    for level in Difficulty:
        subset = [record for record in records if record.difficulty == level]
        difficulty.append(DifficultyProgress(
            difficulty=level,
            total=len(subset),
            learning=sum(1 for record in subset if record.status == ProgressStatus.LEARNING),
            mastered=sum(1 for record in subset if record.status == ProgressStatus.MASTERED),
        ))

    return DashboardSummary(
        today=today,
        status_counts={status: sum(1 for record in records if record.status == status) for status in ProgressStatus},
        due_today=due_today,
        due_tomorrow=[
            problem for problem in problems
            if problem.record.status == ProgressStatus.LEARNING and problem.record.next_review_date == tomorrow
        ],
        overdue_count=sum(
            1 for problem in due_today if problem.record.next_review_date < today
        ),
        schedule=schedule,
        today_activity=sum(1 for entry in history if entry.day == today),
        difficulty=difficulty,
        suggestions=[
            problem for problem in problems if problem.record.status == ProgressStatus.UNSTARTED
        ][:settings.learning.suggestion_count],
        streak=current_streak((entry.day for entry in history), today),
    )
