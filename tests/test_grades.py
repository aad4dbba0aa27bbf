import unittest

from studydeck.core.grades import (
    GroupRule,
    apply_grading_rules,
    course_stats,
    natural_key,
    sort_assessments,
    term_average,
    validate_score,
    weight_warning,
)
from studydeck.errors import ValidationError


class CourseStatsTests(unittest.TestCase):
    def test_partially_graded_course(self):
        stats = course_stats(
            [
                {"weight": 20, "score": 80},
                {"weight": 30, "score": 60},
                {"weight": 50, "score": None},
            ]
        )
        self.assertAlmostEqual(stats.earned_weight, 34)
        self.assertAlmostEqual(stats.attempted_weight, 50)
        self.assertAlmostEqual(stats.total_weight, 100)
        self.assertAlmostEqual(stats.average, 68)
        self.assertAlmostEqual(stats.progress, 50)

    def test_nothing_scored(self):
        stats = course_stats([{"weight": 40, "score": None}, {"weight": 60}])
        self.assertEqual(stats.average, 0)
        self.assertEqual(stats.progress, 0)

    def test_empty_course(self):
        stats = course_stats([])
        self.assertEqual((stats.average, stats.progress, stats.total_weight), (0, 0, 0))

    def test_perfect_scores_ignore_weights(self):
        for weights in ([1, 99], [33, 33, 34], [5]):
            stats = course_stats([{"weight": w, "score": 100} for w in weights])
            self.assertAlmostEqual(stats.average, 100)

    def test_average_stays_in_range(self):
        stats = course_stats(
            [
                {"weight": 70, "score": 0},
                {"weight": 10, "score": 100},
                {"weight": 20, "score": 55.5},
            ]
        )
        self.assertGreaterEqual(stats.average, 0)
        self.assertLessEqual(stats.average, 100)

    def test_zero_score_counts_as_attempted(self):
        stats = course_stats([{"weight": 25, "score": 0}, {"weight": 75, "score": None}])
        self.assertEqual(stats.attempted_weight, 25)
        self.assertEqual(stats.average, 0)
        self.assertEqual(stats.progress, 25)


class TermAverageTests(unittest.TestCase):
    def test_plain_mean_skips_empty_courses(self):
        courses = [
            {"credits": 1.0, "assessments": [{"weight": 100, "score": 90}]},
            {"credits": 0.25, "assessments": [{"weight": 100, "score": 70}]},
            {"credits": 0.5, "assessments": []},
        ]
        self.assertAlmostEqual(term_average(courses), 80)

    def test_no_courses(self):
        self.assertEqual(term_average([]), 0)


class ValidateScoreTests(unittest.TestCase):
    def test_accepts_bounds_and_none(self):
        self.assertIsNone(validate_score(None))
        self.assertEqual(validate_score(0), 0)
        self.assertEqual(validate_score("100"), 100)

    def test_rejects_out_of_range(self):
        for value in (-1, 100.5, float("nan")):
            with self.assertRaises(ValidationError) as ctx:
                validate_score(value)
            self.assertEqual(ctx.exception.message, "Score must be between 0 and 100")

    def test_rejects_non_numbers(self):
        with self.assertRaises(ValidationError):
            validate_score("abc")
        with self.assertRaises(ValidationError):
            validate_score(True)


class SortingTests(unittest.TestCase):
    def test_numeric_aware_names(self):
        ordered = sort_assessments([{"name": "Quiz 10", "due_date": None}, {"name": "Quiz 2", "due_date": None}])
        self.assertEqual([a["name"] for a in ordered], ["Quiz 2", "Quiz 10"])

    def test_dated_before_undated(self):
        ordered = sort_assessments(
            [
                {"name": "Essay", "due_date": None},
                {"name": "Lab 2", "due_date": "2026-03-10"},
                {"name": "Lab 1", "due_date": "2026-02-01T09:00:00Z"},
                {"name": "Broken", "due_date": "not a date"},
            ]
        )
        self.assertEqual([a["name"] for a in ordered], ["Lab 1", "Lab 2", "Broken", "Essay"])

    def test_natural_key_ignores_case(self):
        self.assertEqual(natural_key("QUIZ 3"), natural_key("quiz 3"))


class WeightWarningTests(unittest.TestCase):
    def test_warns_only_above_hundred(self):
        self.assertIsNone(weight_warning([{"weight": 60}, {"weight": 40}]))
        self.assertIn("110", weight_warning([{"weight": 60}, {"weight": 50}]))


class GradingRuleTests(unittest.TestCase):
    def setUp(self):
        self.quizzes = [
            {"id": "q1", "group_tag": "quiz", "weight": 10, "score": 40, "total_marks": 100},
            {"id": "q2", "group_tag": "quiz", "weight": 10, "score": 90, "total_marks": 100},
            {"id": "q3", "group_tag": "quiz", "weight": 10, "score": 80, "total_marks": 100},
        ]
        self.exam = {"id": "e1", "weight": 70, "score": 70, "total_marks": 100}

    def test_drop_lowest(self):
        grade, completed, dropped = apply_grading_rules(
            self.quizzes + [self.exam], {"quiz": GroupRule(drop_lowest=1)}
        )
        self.assertEqual(dropped, ["q1"])
        self.assertEqual(completed, 90)
        self.assertAlmostEqual(grade, (9 + 8 + 49) / 90 * 100)

    def test_best_of(self):
        _, _, dropped = apply_grading_rules(self.quizzes, {"quiz": GroupRule(best_of=1)})
        self.assertEqual(sorted(dropped), ["q1", "q3"])

    def test_without_rules_everything_counts(self):
        grade, completed, dropped = apply_grading_rules(self.quizzes)
        self.assertEqual(dropped, [])
        self.assertEqual(completed, 30)
        self.assertAlmostEqual(grade, 70)


if __name__ == "__main__":
    unittest.main()
