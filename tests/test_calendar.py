from datetime import date, datetime, timedelta, timezone
import unittest
from zoneinfo import ZoneInfo

from studydeck.core.calendar import (
    CalendarItem,
    bucket_by_day,
    build_calendar_items,
    filter_items,
    normalize_interview,
    normalize_personal_task,
    split_uid,
)
from studydeck.core.classify import classify_assessment
from studydeck.core.dates import academic_week, date_key, days_remaining, local_noon


TORONTO = ZoneInfo("America/Toronto")
TOKYO = ZoneInfo("Asia/Tokyo")


class DateKeyTests(unittest.TestCase):
    def test_evening_local_time_stays_on_local_day(self):
        # 23:30 in Toronto is already the next day in UTC.
        self.assertEqual(date_key("2026-02-02T04:30:00Z", TORONTO), "2026-02-01")
        self.assertEqual(date_key("2026-02-02T04:30:00+00:00", TORONTO), "2026-02-01")

    def test_same_instant_other_zone(self):
        self.assertEqual(date_key("2026-02-01T20:00:00Z", TOKYO), "2026-02-02")

    def test_date_only_passes_through(self):
        self.assertEqual(date_key("2026-02-01", TOKYO), "2026-02-01")
        self.assertEqual(date_key(date(2026, 2, 1), TORONTO), "2026-02-01")

    def test_naive_values_are_local(self):
        self.assertEqual(date_key("2026-02-01T23:59:00", TOKYO), "2026-02-01")
        self.assertEqual(date_key(datetime(2026, 2, 1, 0, 1), TORONTO), "2026-02-01")

    def test_unparsable_is_none(self):
        for value in (None, "", "tomorrow", "2026-13-45", 12345):
            self.assertIsNone(date_key(value, TORONTO))

    def test_noon_round_trip(self):
        original = datetime(2026, 2, 1, 22, 15, tzinfo=timezone.utc)
        key = date_key(original, TORONTO)
        self.assertEqual(date_key(local_noon(key, TORONTO), TORONTO), key)
        self.assertEqual(date_key(local_noon(key, TORONTO).isoformat(), TORONTO), key)

    def test_days_remaining_labels(self):
        today = date(2026, 2, 1)
        self.assertEqual(days_remaining("2026-01-31", today), "Overdue")
        self.assertEqual(days_remaining("2026-02-01", today), "Today")
        self.assertEqual(days_remaining("2026-02-02", today), "Tomorrow")
        self.assertEqual(days_remaining("2026-02-06", today), "In 5 days")

    def test_academic_week(self):
        start = date(2026, 1, 5)
        self.assertEqual(academic_week("2026-01-04", start), 0)
        self.assertEqual(academic_week("2026-01-05", start), 1)
        self.assertEqual(academic_week("2026-01-12", start), 2)


class ClassifyTests(unittest.TestCase):
    def test_keyword_rules(self):
        self.assertEqual(classify_assessment("Quiz 3"), "Quiz")
        self.assertEqual(classify_assessment("Midterm"), "Exam")
        self.assertEqual(classify_assessment("Final Exam"), "Exam")
        self.assertEqual(classify_assessment("Lab Report 2"), "Lab")
        self.assertEqual(classify_assessment("Group Project"), "Project")
        self.assertEqual(classify_assessment("Essay"), "Assignment")

    def test_rules_apply_in_order(self):
        self.assertEqual(classify_assessment("Quiz on exam topics"), "Quiz")

    def test_explicit_type_wins(self):
        self.assertEqual(classify_assessment("Midterm", "project"), "Project")
        self.assertEqual(classify_assessment("Midterm", "Unknown"), "Exam")


class CalendarBucketTests(unittest.TestCase):
    def setUp(self):
        self.courses = [
            {
                "id": "c1",
                "course_code": "SYDE 101",
                "color": "#ff0000",
                "assessments": [
                    {"id": "a1", "name": "Quiz 1", "weight": 10, "due_date": "2026-02-02T04:30:00Z"},
                    {"id": "a2", "name": "Essay", "weight": 30, "due_date": "2026-02-01"},
                    {"id": "a3", "name": "Reading", "weight": 5, "due_date": None},
                ],
            }
        ]
        self.interviews = [
            {"id": "i1", "company_name": "Acme", "type": "interview", "interview_date": "2026-02-01T15:00:00Z"},
            {"id": "i2", "company_name": "Globex", "type": "oa", "interview_date": "2026-02-01T18:00:00Z", "status": "Done"},
        ]
        self.personal = [
            {"id": "p1", "title": "Gym", "type": "personal", "due_date": "2026-02-01", "course_id": "c1"},
            {"id": "p2", "title": "Notes", "type": "course_work", "due_date": "2026-02-03", "course_id": "c1"},
        ]

    def test_each_dated_item_in_exactly_one_bucket(self):
        items = build_calendar_items(self.courses, self.interviews, self.personal, TORONTO)
        buckets = bucket_by_day(items)
        placed = [item.uid for day in buckets.values() for item in day]
        dated = [item.uid for item in items if item.date_key is not None]
        self.assertEqual(sorted(placed), sorted(dated))
        for key, day in buckets.items():
            for item in day:
                self.assertEqual(item.date_key, key)
        self.assertNotIn("assessment-a3", placed)

    def test_same_day_order(self):
        buckets = bucket_by_day(build_calendar_items(self.courses, self.interviews, self.personal, TORONTO))
        self.assertEqual(
            [item.uid for item in buckets["2026-02-01"]],
            ["interview-i1", "interview-i2", "assessment-a2", "assessment-a1", "personal-p1"],
        )

    def test_stable_for_equal_weights(self):
        items = [
            CalendarItem("x-1", "1", "personal", "first", "#000", 0, False, "2026-02-01"),
            CalendarItem("x-2", "2", "personal", "second", "#000", 0, False, "2026-02-01"),
        ]
        self.assertEqual([i.name for i in bucket_by_day(items)["2026-02-01"]], ["first", "second"])

    def test_colors_and_labels(self):
        items = {i.uid: i for i in build_calendar_items(self.courses, self.interviews, self.personal, TORONTO)}
        self.assertEqual(items["assessment-a1"].color, "#ff0000")
        self.assertEqual(items["personal-p1"].color, "#888888")
        self.assertEqual(items["personal-p1"].label, "Personal")
        self.assertEqual(items["personal-p2"].color, "#ff0000")
        self.assertEqual(items["personal-p2"].label, "SYDE 101")
        self.assertEqual(items["interview-i2"].kind, "oa")
        self.assertEqual(items["interview-i2"].weight, 998)
        self.assertTrue(items["interview-i2"].is_completed)

    def test_interview_time_display(self):
        item = normalize_interview(self.interviews[0], TORONTO)
        self.assertEqual(item.time_display, "10:00 AM")

    def test_personal_task_without_course(self):
        item = normalize_personal_task({"id": "p9", "title": "Walk", "due_date": None})
        self.assertIsNone(item.date_key)
        self.assertEqual(item.weight, 0)

    def test_filter_completed(self):
        items = build_calendar_items(self.courses, self.interviews, self.personal, TORONTO)
        self.assertNotIn("interview-i2", [i.uid for i in filter_items(items)])
        self.assertEqual(len(filter_items(items, show_completed=True)), len(items))

    def test_split_uid(self):
        self.assertEqual(split_uid("assessment-abc-123"), ("assessment", "abc-123"))
        self.assertEqual(split_uid("personal-9"), ("personal", "9"))
        with self.assertRaises(ValueError):
            split_uid("unknown-1")

    def test_window_edge(self):
        later = datetime(2026, 2, 1, 12, tzinfo=TORONTO) + timedelta(hours=11, minutes=59)
        self.assertEqual(date_key(later, TORONTO), "2026-02-01")


if __name__ == "__main__":
    unittest.main()
