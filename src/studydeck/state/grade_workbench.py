from __future__ import annotations

import copy
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from studydeck.core.grades import CourseStats, course_stats, sort_assessments, term_average, validate_score
from studydeck.state.store import MutationResult, MutationStatus, OptimisticStore


Envelope = Mapping[str, Any]


class GradeWorkbench:
    """Grade view with a what-if mode.

    In hypothetical mode score edits only touch a private copy of the
    assessments; leaving the mode drops the copy. Otherwise edits go through
    the optimistic protocol against ``save_score``.
    """

    def __init__(
        self,
        courses: Iterable[Mapping[str, Any]],
        save_score: Callable[[str, Optional[float]], Envelope],
        revalidate: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.courses: List[Dict[str, Any]] = []
        assessments: List[Dict[str, Any]] = []
        for course in courses:
            course = dict(course)
            assessments.extend(course.pop("assessments", None) or [])
            course.pop("stats", None)
            self.courses.append(course)
        self.store = OptimisticStore(assessments)
        self.save_score = save_score
        self.revalidate = revalidate
        self._hypothetical: Optional[Dict[str, Dict[str, Any]]] = None

    @classmethod
    def from_actions(cls, ctx, courses: Iterable[Mapping[str, Any]]) -> "GradeWorkbench":
        from studydeck.actions import assessments

        return cls(courses, lambda assessment_id, score: assessments.update_assessment_score(ctx, assessment_id, score))

    @property
    def hypothetical(self) -> bool:
        return self._hypothetical is not None

    def enable_hypothetical(self) -> None:
        self._hypothetical = {str(a["id"]): a for a in self.store.items}

    def disable_hypothetical(self) -> None:
        self._hypothetical = None

    def assessments(self, course_id: Optional[str] = None) -> List[Dict[str, Any]]:
        if self._hypothetical is not None:
            rows = copy.deepcopy(list(self._hypothetical.values()))
        else:
            rows = self.store.items
        if course_id is not None:
            rows = [a for a in rows if a.get("course_id") == course_id]
        return sort_assessments(rows)

    def course_stats(self, course_id: str) -> CourseStats:
        return course_stats(self.assessments(course_id))

    def term_average(self) -> float:
        return term_average({**course, "assessments": self.assessments(course["id"])} for course in self.courses)

    async def set_score(self, assessment_id: str, value: Any) -> MutationResult:
        """Raises ValidationError for an out-of-range score, before touching anything."""
        score = validate_score(value)
        assessment_id = str(assessment_id)

        if self._hypothetical is not None:
            self._hypothetical[assessment_id]["score"] = score
            return MutationResult(MutationStatus.COMMITTED, (assessment_id,))

        def apply(item: Dict[str, Any]) -> None:
            item["score"] = score

        return await self.store.mutate(
            assessment_id,
            apply,
            lambda: self.save_score(assessment_id, score),
            self.revalidate,
        )
