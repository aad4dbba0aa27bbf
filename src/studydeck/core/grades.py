from dataclasses import dataclass
import math
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from studydeck.core.dates import parse_instant
from studydeck.errors import ValidationError


@dataclass(frozen=True)
class CourseStats:
    earned_weight: float
    attempted_weight: float
    total_weight: float
    average: float
    progress: float


@dataclass(frozen=True)
class GroupRule:
    drop_lowest: int = 0
    best_of: Optional[int] = None


def _score(assessment: Mapping[str, Any]) -> Optional[float]:
    value = assessment.get("score")
    if value is None:
        return None
    return float(value)


def _weight(assessment: Mapping[str, Any]) -> float:
    return float(assessment.get("weight") or 0)


def course_stats(assessments: Iterable[Mapping[str, Any]]) -> CourseStats:
    """
    earned   = Σ(score/100 * weight) over scored items
    attempted = Σ(weight) over scored items
    average  = earned / attempted * 100
    progress = attempted / Σ(weight) * 100
    """
    earned = 0.0
    attempted = 0.0
    total = 0.0

    for assessment in assessments:
        weight = _weight(assessment)
        total += weight
        score = _score(assessment)
        if score is None:
            continue
        earned += (score / 100) * weight
        attempted += weight

    average = 0.0 if attempted == 0 else (earned / attempted) * 100
    progress = 0.0 if total == 0 else (attempted / total) * 100
    return CourseStats(
        earned_weight=earned,
        attempted_weight=attempted,
        total_weight=total,
        average=average,
        progress=progress,
    )


def course_average(assessments: Iterable[Mapping[str, Any]]) -> float:
    return course_stats(assessments).average


def term_average(courses: Iterable[Mapping[str, Any]]) -> float:
    """Plain mean of course averages; courses without assessments are left out.

    Credits are not used as weights.
    """
    averages = [
        course_average(course.get("assessments") or [])
        for course in courses
        if course.get("assessments")
    ]
    if not averages:
        return 0.0
    return sum(averages) / len(averages)


def validate_score(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError("Score must be a number")
    try:
        score = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Score must be a number") from exc
    if math.isnan(score) or score < 0 or score > 100:
        raise ValidationError("Score must be between 0 and 100")
    return score


def weight_total(assessments: Iterable[Mapping[str, Any]]) -> float:
    return sum(_weight(a) for a in assessments)


def weight_warning(assessments: Iterable[Mapping[str, Any]]) -> Optional[str]:
    total = weight_total(assessments)
    if total > 100:
        return f"Assessment weights add up to {total:g}%, which is more than 100%"
    return None


_DIGITS = re.compile(r"(\d+)")


def natural_key(name: str) -> Tuple[Any, ...]:
    """Case-insensitive sort key that orders "Quiz 2" before "Quiz 10"."""
    parts = _DIGITS.split((name or "").casefold())
    return tuple(int(part) if index % 2 else part for index, part in enumerate(parts))


def _due_timestamp(value: Any) -> Optional[float]:
    instant = parse_instant(value)
    if instant is None:
        return None
    try:
        return instant.timestamp()
    except (OverflowError, OSError, ValueError):
        return None


def sort_assessments(assessments: Iterable[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    """Due date ascending, undated last, then natural name order."""

    def key(assessment: Mapping[str, Any]) -> Tuple[Any, ...]:
        stamp = _due_timestamp(assessment.get("due_date"))
        return (
            stamp is None,
            stamp if stamp is not None else 0.0,
            natural_key(str(assessment.get("name", ""))),
        )

    return sorted(assessments, key=key)


def _ratio(assessment: Mapping[str, Any]) -> float:
    score = _score(assessment)
    if score is None:
        return -1.0
    total = float(assessment.get("total_marks") or 100)
    return score / total


def apply_grading_rules(
    assessments: Sequence[Mapping[str, Any]],
    rules: Optional[Mapping[str, GroupRule]] = None,
) -> Tuple[float, float, List[str]]:
    """Weighted grade honouring per-group drop rules.

    Assessments sharing a ``group_tag`` with a rule have their lowest
    ``drop_lowest`` results (or everything outside the ``best_of`` best)
    dropped. Returns (current_grade, total_weight_completed, dropped_ids).
    """
    rules = rules or {}
    groups: Dict[str, List[Mapping[str, Any]]] = {}
    kept: List[Mapping[str, Any]] = []
    dropped: List[str] = []

    for assessment in assessments:
        tag = assessment.get("group_tag")
        if tag:
            groups.setdefault(str(tag), []).append(assessment)
        else:
            kept.append(assessment)

    for tag, items in groups.items():
        rule = rules.get(tag)
        if rule is None:
            kept.extend(items)
            continue

        ordered = sorted(items, key=_ratio)
        drop_count = rule.drop_lowest
        if rule.best_of is not None:
            drop_count = max(0, len(ordered) - rule.best_of)
        dropped.extend(str(item.get("id")) for item in ordered[:drop_count])
        kept.extend(ordered[drop_count:])

    earned = 0.0
    completed = 0.0
    for assessment in kept:
        score = _score(assessment)
        if score is None:
            continue
        weight = _weight(assessment)
        total_marks = float(assessment.get("total_marks") or 100)
        earned += (score / total_marks) * weight
        completed += weight

    if completed == 0:
        return 0.0, 0.0, dropped
    return (earned / completed) * 100, completed, dropped
