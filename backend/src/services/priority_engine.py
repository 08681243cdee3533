"""
Purpose: Rule-based priority scoring (0-100) and the derived High/Medium/Low tier
Depends on: nothing but the enums
Used by: TaskService on create/update/recalculate, the priority preview endpoint

Scoring Formula:
    score = 50 (base)
          + deadline urgency   (0-40)
          + category weight    (0-20)
          + quick-win bonus    (0-15, shorter estimates score higher)
          + urgent tag bonus   (0 or 10, flat)
          + manual priority    (0-15)
    clamped to [0, 100]

Tier: score >= 75 High, >= 40 Medium, otherwise Low.
"""

import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from loguru import logger

from backend.src.models.enums import Category, Priority, TaskStatus
from backend.src.utils import utcnow
from backend.src.utils.errors import ValidationError
from backend.src.utils.validators import parse_datetime


BASE_SCORE = 50
SECONDS_PER_DAY = 86400

OVERDUE_POINTS = 40
# (max days until deadline, points), checked in order after the overdue test
DEADLINE_BANDS = ((1, 35), (3, 25), (7, 15), (14, 5))

CATEGORY_POINTS = {
    Category.URGENT.value: 20,
    Category.IMPORTANT.value: 15,
    Category.WORK.value: 10,
    Category.PERSONAL.value: 5,
    Category.OTHER.value: 0,
}

# (max minutes, points)
ESTIMATE_BANDS = ((30, 15), (60, 10), (120, 5))

URGENT_TAGS = {'urgent', 'important', 'critical', 'asap', 'high-priority'}
URGENT_TAG_POINTS = 10

PRIORITY_HINT_POINTS = {
    Priority.HIGH.value: 15,
    Priority.MEDIUM.value: 5,
    Priority.LOW.value: 0,
}

HIGH_TIER_THRESHOLD = 75
MEDIUM_TIER_THRESHOLD = 40


def _clamp(value: float) -> int:
    return max(0, min(100, int(round(value))))


def deadline_points(deadline: Optional[datetime], now: datetime) -> int:
    if deadline is None:
        return 0
    delta = (deadline - now).total_seconds()
    # Overdue wins over "due today" for any negative delta, however small
    if delta < 0:
        return OVERDUE_POINTS
    days_until = math.ceil(delta / SECONDS_PER_DAY)
    for max_days, points in DEADLINE_BANDS:
        if days_until <= max_days:
            return points
    return 0


def category_points(category: Optional[str]) -> int:
    if not isinstance(category, str):
        return 0
    return CATEGORY_POINTS.get(category, 0)


def estimate_points(estimated_time: Optional[float]) -> int:
    if isinstance(estimated_time, bool) or not isinstance(estimated_time, (int, float)):
        return 0
    if estimated_time <= 0:
        return 0
    for max_minutes, points in ESTIMATE_BANDS:
        if estimated_time <= max_minutes:
            return points
    return 0


def tag_points(tags: Optional[Iterable[str]]) -> int:
    if not tags or isinstance(tags, str):
        return 0
    if any(isinstance(tag, str) and tag.strip().lower() in URGENT_TAGS for tag in tags):
        return URGENT_TAG_POINTS
    return 0


def priority_hint_points(priority: Optional[str]) -> int:
    if not isinstance(priority, str):
        return 0
    return PRIORITY_HINT_POINTS.get(priority, 0)


def compute_score(attrs: Mapping[str, Any], now: Optional[datetime] = None) -> int:
    """
    Score a task from its attributes.

    Total over optional inputs: any missing field contributes zero. Pass
    ``now`` to pin the clock; the same value is used for the whole computation.
    """
    now = now or utcnow()
    try:
        deadline = parse_datetime(attrs.get('deadline'), 'deadline')
    except ValidationError:
        deadline = None

    score = (
        BASE_SCORE
        + deadline_points(deadline, now)
        + category_points(attrs.get('category'))
        + estimate_points(attrs.get('estimated_time'))
        + tag_points(attrs.get('tags'))
        + priority_hint_points(attrs.get('priority'))
    )
    return _clamp(score)


def tier_for_score(score: int) -> str:
    if score >= HIGH_TIER_THRESHOLD:
        return Priority.HIGH.value
    if score >= MEDIUM_TIER_THRESHOLD:
        return Priority.MEDIUM.value
    return Priority.LOW.value


class PriorityScorer:
    """Strategy interface: turn task attributes into a 0-100 score"""

    name = 'base'

    def score(self, attrs: Mapping[str, Any], now: Optional[datetime] = None) -> int:
        raise NotImplementedError

    def score_and_tier(self, attrs: Mapping[str, Any], now: Optional[datetime] = None) -> Tuple[int, str]:
        """
        Score with the current priority as the hint, then derive the new tier.

        The caller overwrites the stored priority with the returned tier.
        """
        score = self.score(attrs, now)
        return score, tier_for_score(score)


class RuleBasedScorer(PriorityScorer):
    """Deterministic scorer. Always available."""

    name = 'rule_based'

    def score(self, attrs, now=None):
        return compute_score(attrs, now)


class FallbackScorer(PriorityScorer):
    """
    Wrap an optional scorer and fall back to another on any failure.

    A primary that raises or returns something outside 0..100 never reaches
    the caller; the fallback's score is used instead.
    """

    def __init__(self, primary: PriorityScorer, fallback: Optional[PriorityScorer] = None):
        self.primary = primary
        self.fallback = fallback or RuleBasedScorer()
        self.name = f'{primary.name}+{self.fallback.name}'

    def score(self, attrs, now=None):
        try:
            score = self.primary.score(attrs, now)
        except Exception:
            logger.exception("Scorer {} failed, falling back to {}", self.primary.name, self.fallback.name)
            return self.fallback.score(attrs, now)
        if isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= 100:
            logger.warning("Scorer {} returned invalid score {!r}, falling back", self.primary.name, score)
            return self.fallback.score(attrs, now)
        return score


# Scorers selectable through PRIORITY_SCORER, by name
SCORERS = {
    RuleBasedScorer.name: RuleBasedScorer,
}


def register_scorer(scorer_cls):
    """
    Make a PriorityScorer subclass selectable by its ``name``.

    Usable as a class decorator. Only the rule-based scorer ships; this is the
    hook for an external (e.g. model-backed) scorer.
    """
    SCORERS[scorer_cls.name] = scorer_cls
    return scorer_cls


def build_scorer(name: Optional[str] = None) -> PriorityScorer:
    """
    Build the scorer named by PRIORITY_SCORER.

    Any registered scorer other than the rule-based one is wrapped in a
    FallbackScorer, so its failures degrade to rule-based scores. Unknown
    names log a warning and use the rule-based scorer.
    """
    if not name or name == RuleBasedScorer.name:
        return RuleBasedScorer()
    scorer_cls = SCORERS.get(name)
    if scorer_cls is None:
        logger.warning("Unknown priority scorer {!r}, using rule_based", name)
        return RuleBasedScorer()
    return FallbackScorer(scorer_cls())


def recommendation_reason(task, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    reasons = []

    if task.deadline is not None:
        delta = (task.deadline - now).total_seconds()
        days_until = math.ceil(delta / SECONDS_PER_DAY)
        if delta < 0:
            reasons.append('Overdue')
        elif days_until <= 1:
            reasons.append('Due very soon')
        elif days_until <= 3:
            reasons.append('Due within 3 days')

    if task.category in (Category.URGENT.value, Category.IMPORTANT.value):
        reasons.append(f'{task.category} category')

    if task.estimated_time and task.estimated_time <= 30:
        reasons.append('Quick win (< 30 min)')

    if task.priority == Priority.HIGH.value:
        reasons.append('High priority')

    return ', '.join(reasons) if reasons else 'Good to complete soon'


def recommend(tasks: Iterable, now: Optional[datetime] = None, limit: int = 5) -> List[Dict[str, Any]]:
    """Top unfinished tasks by score, each with a human-readable reason"""
    now = now or utcnow()
    open_tasks = [task for task in tasks if task.status != TaskStatus.DONE.value]
    open_tasks.sort(key=lambda task: task.ai_priority_score or 0, reverse=True)
    return [
        {
            'id': task.id,
            'title': task.title,
            'priority': task.priority,
            'ai_priority_score': task.ai_priority_score,
            'reason': recommendation_reason(task, now),
        }
        for task in open_tasks[:limit]
    ]
