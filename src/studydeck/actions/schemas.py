from datetime import datetime
import math
import re
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from studydeck.core.constants import (
    ACADEMIC_TERMS,
    DEFAULT_COURSE_COLOR,
    DEFAULT_COURSE_CREDITS,
    SCHEDULE_TYPES,
    WEEKDAYS,
)
from studydeck.core.dates import parse_instant


TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")
HEX_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")
INVITE_CODE_RE = re.compile(r"^[a-z0-9]+$")


def _required_text(value: Optional[str], message: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValueError(message)
    return text


def _optional_datetime(value: Optional[str], message: str) -> Optional[str]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if parse_instant(value) is None:
        raise ValueError(message)
    return value.strip() if isinstance(value, str) else value


def _weekday(value: str) -> str:
    day = (value or "").strip().upper()[:3]
    if day not in WEEKDAYS:
        raise ValueError(f"Day must be one of {', '.join(WEEKDAYS)}")
    return day


def _schedule_type(value: str) -> str:
    kind = (value or "").strip().upper()
    if kind not in SCHEDULE_TYPES:
        raise ValueError(f"Type must be one of {', '.join(SCHEDULE_TYPES)}")
    return kind


def _clock(value: str) -> str:
    if not TIME_RE.match((value or "").strip()):
        raise ValueError("Times must look like HH:MM or HH:MM:SS")
    return value.strip()


class CoursePayload(BaseModel):
    course_code: str
    course_name: str
    color: str = DEFAULT_COURSE_COLOR
    credits: float = Field(DEFAULT_COURSE_CREDITS, ge=0)
    term_label: Optional[str] = None

    @field_validator("course_code")
    @classmethod
    def _code(cls, value: str) -> str:
        return _required_text(value, "Course code is required")

    @field_validator("course_name")
    @classmethod
    def _name(cls, value: str) -> str:
        return _required_text(value, "Course name is required")

    @field_validator("color")
    @classmethod
    def _color(cls, value: str) -> str:
        if not HEX_COLOR_RE.match(value or ""):
            raise ValueError("Color must be a hex code like #3b82f6")
        return value

    @field_validator("term_label")
    @classmethod
    def _term(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        label = value.strip().upper()
        if label not in ACADEMIC_TERMS:
            raise ValueError(f"Unknown term label: {value}")
        return label


class CourseUpdatePayload(BaseModel):
    course_code: Optional[str] = None
    course_name: Optional[str] = None
    color: Optional[str] = None
    credits: Optional[float] = Field(None, ge=0)
    term_id: Optional[str] = None

    @field_validator("course_code", "course_name")
    @classmethod
    def _not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return _required_text(value, "Course code and name are required")

    @field_validator("color")
    @classmethod
    def _color(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not HEX_COLOR_RE.match(value):
            raise ValueError("Color must be a hex code like #3b82f6")
        return value


class AssessmentPayload(BaseModel):
    course_id: str
    name: str
    weight: float
    total_marks: float = Field(100, gt=0)
    due_date: Optional[str] = None
    type: Optional[str] = None
    group_tag: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        return _required_text(value, "Assessment name is required")

    @field_validator("weight")
    @classmethod
    def _weight(cls, value: float) -> float:
        if not math.isfinite(value) or value < 0 or value > 100:
            raise ValueError("Weight must be between 0 and 100")
        return value

    @field_validator("due_date")
    @classmethod
    def _due(cls, value: Optional[str]) -> Optional[str]:
        return _optional_datetime(value, "Invalid due date")


class ScheduleItemPayload(BaseModel):
    course_id: str
    day: str
    start_time: str
    end_time: str
    location: str = ""
    type: str

    @field_validator("course_id")
    @classmethod
    def _course(cls, value: str) -> str:
        return _required_text(value, "Missing required fields")

    @field_validator("day")
    @classmethod
    def _day(cls, value: str) -> str:
        return _weekday(value)

    @field_validator("type")
    @classmethod
    def _type(cls, value: str) -> str:
        return _schedule_type(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def _time(cls, value: str) -> str:
        return _clock(value)

    @model_validator(mode="after")
    def _ordered(self) -> "ScheduleItemPayload":
        if self.end_time[:5] <= self.start_time[:5]:
            raise ValueError("End time must be after start time")
        return self


class ScheduleItemUpdatePayload(BaseModel):
    course_id: Optional[str] = None
    day: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    location: Optional[str] = None
    type: Optional[str] = None

    @field_validator("day")
    @classmethod
    def _day(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _weekday(value)

    @field_validator("type")
    @classmethod
    def _type(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _schedule_type(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def _time(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _clock(value)


class TaskListPayload(BaseModel):
    name: str
    color_hex: str = "#6366f1"

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        return _required_text(value, "List name is required")


class TaskPayload(BaseModel):
    title: str
    list_id: Optional[str] = None
    due_date: Optional[str] = None
    priority: Literal["low", "medium", "high"] = "medium"
    course_id: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _title(cls, value: str) -> str:
        return _required_text(value, "Title is required")

    @field_validator("due_date")
    @classmethod
    def _due(cls, value: Optional[str]) -> Optional[str]:
        return _optional_datetime(value, "Invalid due date")


class TaskUpdatePayload(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[str] = None
    priority: Optional[Literal["low", "medium", "high"]] = None
    course_id: Optional[str] = None
    notes: Optional[str] = None
    position: Optional[int] = Field(None, ge=0)

    @field_validator("title")
    @classmethod
    def _title(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _required_text(value, "Title is required")

    @field_validator("due_date")
    @classmethod
    def _due(cls, value: Optional[str]) -> Optional[str]:
        return _optional_datetime(value, "Invalid due date")


class PersonalTaskPayload(BaseModel):
    title: str
    due_date: str
    type: Literal["personal", "course_work"] = "personal"
    description: Optional[str] = None
    course_id: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _title(cls, value: str) -> str:
        return _required_text(value, "Title is required")

    @field_validator("due_date")
    @classmethod
    def _due(cls, value: str) -> str:
        parsed = _optional_datetime(value, "Invalid due date")
        if parsed is None:
            raise ValueError("Due date is required")
        return parsed

    @model_validator(mode="after")
    def _course_work(self) -> "PersonalTaskPayload":
        if self.type == "course_work" and not self.course_id:
            raise ValueError("Course selection is required for course work")
        if self.type == "personal":
            self.course_id = None
        return self


class InterviewPayload(BaseModel):
    company_name: str
    role_title: str = ""
    interview_date: str
    type: Literal["interview", "oa"] = "interview"

    @field_validator("company_name")
    @classmethod
    def _company(cls, value: str) -> str:
        return _required_text(value, "Company is required")

    @field_validator("interview_date")
    @classmethod
    def _date(cls, value: str) -> str:
        parsed = _optional_datetime(value, "Invalid interview date")
        if parsed is None:
            raise ValueError("Interview date is required")
        return parsed


class FocusSessionPayload(BaseModel):
    duration_minutes: int = Field(gt=0, le=600)
    objective_name: str
    linked_assessment_id: Optional[str] = None

    @field_validator("objective_name")
    @classmethod
    def _objective(cls, value: str) -> str:
        return _required_text(value, "Objective is required")


class CreateSquadPayload(BaseModel):
    name: str
    description: Optional[str] = None
    program: Optional[str] = None
    term: Optional[str] = None
    is_official: bool = False

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        name = (value or "").strip()
        if len(name) < 3:
            raise ValueError("Squad name must be at least 3 characters")
        if len(name) > 50:
            raise ValueError("Squad name must be less than 50 characters")
        return name

    @field_validator("description")
    @classmethod
    def _description(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and len(value) > 500:
            raise ValueError("Description must be less than 500 characters")
        return value

    @field_validator("program")
    @classmethod
    def _program(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and len(value) > 100:
            raise ValueError("Program must be less than 100 characters")
        return value

    @field_validator("term")
    @classmethod
    def _term(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and len(value) > 50:
            raise ValueError("Term must be less than 50 characters")
        return value


class CurriculumSquadPayload(CreateSquadPayload):
    course_ids: List[str] = Field(default_factory=list)


class JoinSquadPayload(BaseModel):
    invite_code: str

    @field_validator("invite_code")
    @classmethod
    def _code(cls, value: str) -> str:
        code = (value or "").strip().lower()
        if len(code) != 8:
            raise ValueError("Invite code must be exactly 8 characters")
        if not INVITE_CODE_RE.match(code):
            raise ValueError("Invalid invite code format")
        return code


class TaskTemplatePayload(BaseModel):
    squad_id: str
    title: str
    description: Optional[str] = None
    due_date: datetime
    weight: Optional[float] = None
    type: Literal["assignment", "exam", "quiz", "project", "other"]
    category: Literal["academic", "social"] = "academic"

    @field_validator("title")
    @classmethod
    def _title(cls, value: str) -> str:
        title = _required_text(value, "Title is required")
        if len(title) > 200:
            raise ValueError("Title must be less than 200 characters")
        return title

    @field_validator("description")
    @classmethod
    def _description(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and len(value) > 1000:
            raise ValueError("Description must be less than 1000 characters")
        return value

    @field_validator("weight")
    @classmethod
    def _weight(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and (not math.isfinite(value) or value < 0 or value > 100):
            raise ValueError("Weight must be between 0 and 100")
        return value


class TaskStatePayload(BaseModel):
    """A member's overrides for one squad template; null means use the template's value."""

    template_id: str
    custom_title: Optional[str] = None
    custom_date: Optional[str] = None
    custom_weight: Optional[float] = None
    status: Optional[Literal["pending", "completed", "late"]] = None
    grade: Optional[float] = None
    notes: Optional[str] = None

    @field_validator("template_id")
    @classmethod
    def _template(cls, value: str) -> str:
        return _required_text(value, "Template id is required")

    @field_validator("custom_title")
    @classmethod
    def _title(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        title = value.strip()
        if len(title) > 200:
            raise ValueError("Custom title must be less than 200 characters")
        return title or None

    @field_validator("custom_date")
    @classmethod
    def _date(cls, value: Optional[str]) -> Optional[str]:
        return _optional_datetime(value, "Invalid date format")

    @field_validator("custom_weight")
    @classmethod
    def _weight(cls, value: Optional[float]) -> Optional[float]:
        if value is None:
            return None
        if not math.isfinite(value) or value < 0:
            raise ValueError("Weight must be at least 0")
        if value > 100:
            raise ValueError("Weight cannot exceed 100")
        return value

    @field_validator("grade")
    @classmethod
    def _grade(cls, value: Optional[float]) -> Optional[float]:
        if value is None:
            return None
        if not math.isfinite(value) or value < 0:
            raise ValueError("Grade must be at least 0")
        if value > 100:
            raise ValueError("Grade cannot exceed 100")
        return value

    @field_validator("notes")
    @classmethod
    def _notes(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and len(value) > 2000:
            raise ValueError("Notes must be less than 2000 characters")
        return value


class ProfileUpdatePayload(BaseModel):
    full_name: str

    @field_validator("full_name")
    @classmethod
    def _name(cls, value: str) -> str:
        return _required_text(value, "Name is required")


class AcademicProfilePayload(BaseModel):
    university_id: str
    program_id: str
    term_label: str

    @field_validator("term_label")
    @classmethod
    def _term(cls, value: str) -> str:
        label = (value or "").strip().upper()
        if label not in ACADEMIC_TERMS:
            raise ValueError(f"Unknown term label: {value}")
        return label


class ReorderPayload(BaseModel):
    task_ids: List[str]
