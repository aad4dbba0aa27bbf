from typing import Dict, Tuple


ACADEMIC_TERMS: Tuple[str, ...] = (
    "1A", "1B",
    "2A", "2B",
    "3A", "3B",
    "4A", "4B",
    "5A", "5B",
    "WT1", "WT2", "WT3", "WT4", "WT5", "WT6",
)

ASSESSMENT_TYPES: Tuple[str, ...] = ("Assignment", "Exam", "Quiz", "Project", "Lab", "Other")

WEEKDAYS: Tuple[str, ...] = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")
SCHEDULE_TYPES: Tuple[str, ...] = ("LEC", "TUT", "LAB", "SEM")

PRIORITIES: Tuple[str, ...] = ("low", "medium", "high")
PERSONAL_TASK_TYPES: Tuple[str, ...] = ("personal", "course_work")
INTERVIEW_TYPES: Tuple[str, ...] = ("interview", "oa")

INTERVIEW_STATUS_OPEN = "Interview"
INTERVIEW_STATUS_DONE = "Done"

INBOX_LIST_NAME = "Inbox"
INBOX_LIST_COLOR = "#6366f1"

DEFAULT_COURSE_COLOR = "#3b82f6"
DEFAULT_COURSE_CREDITS = 0.5

# Colors used on the calendar when an item has no linked course.
SOURCE_COLORS: Dict[str, str] = {
    "assessment": "#9ca3af",
    "interview": "#eab308",
    "oa": "#eab308",
    "personal": "#888888",
}

# Same-day sort weights; career items always float above academic work.
INTERVIEW_SORT_WEIGHT = 999
OA_SORT_WEIGHT = 998
PERSONAL_SORT_WEIGHT = 0

CAREER_STAT_COLUMNS: Dict[str, str] = {
    "applications": "pending_count",
    "pending": "pending_count",
    "rejected": "rejected_count",
    "ghosted": "ghosted_count",
    "interview": "interview_count",
    "offer": "offer_count",
    "no_offer": "no_offer_count",
}

MAX_COURSES_PER_TERM = 8
MAX_ASSESSMENTS_PER_COURSE = 25

# View paths marked stale after mutations.
PATH_DASHBOARD = "/dashboard"
PATH_GRADES = "/dashboard/grades"
PATH_CALENDAR = "/dashboard/calendar"
PATH_TASKS = "/dashboard/tasks"
PATH_SCHEDULE = "/dashboard/schedule"
PATH_COURSES = "/dashboard/courses"
PATH_CAREER = "/dashboard/career"
PATH_PROFILE = "/dashboard/profile"
PATH_GROUPS = "/dashboard/groups"
PATH_LEADERBOARD = "/dashboard/leaderboard"

# A member's own status for a squad template.
TASK_STATUS_PENDING = "pending"
TASK_STATUS_COMPLETED = "completed"
TASK_STATUSES: Tuple[str, ...] = (TASK_STATUS_PENDING, TASK_STATUS_COMPLETED, "late")

# Squad leaderboard visibility, in the order the toggle cycles through.
LEADERBOARD_PRIVACY_MODES: Tuple[str, ...] = ("public", "incognito", "hidden")
