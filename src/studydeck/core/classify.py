from typing import Optional, Tuple

from studydeck.core.constants import ASSESSMENT_TYPES


# Checked in order; the first rule with a keyword contained in the name wins.
TYPE_RULES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("quiz", "test"), "Quiz"),
    (("lab", "workshop"), "Lab"),
    (("exam", "midterm", "final"), "Exam"),
    (("project",), "Project"),
)

DEFAULT_TYPE = "Assignment"


def classify_assessment(name: str, explicit_type: Optional[str] = None) -> str:
    """Assessment type from an explicit value, else inferred from its name."""
    if explicit_type:
        for known in ASSESSMENT_TYPES:
            if explicit_type.strip().lower() == known.lower():
                return known

    lowered = (name or "").lower()
    for keywords, assessment_type in TYPE_RULES:
        if any(keyword in lowered for keyword in keywords):
            return assessment_type
    return DEFAULT_TYPE
