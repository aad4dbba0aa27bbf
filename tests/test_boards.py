import unittest
from zoneinfo import ZoneInfo

from studydeck.core.calendar import build_calendar_items
from studydeck.errors import ValidationError
from studydeck.state.calendar_board import CalendarBoard, CalendarGateway, DragError, DragState, TasksBoard
from studydeck.state.grade_workbench import GradeWorkbench
from studydeck.state.store import MutationStatus


TORONTO = ZoneInfo("America/Toronto")


class RecordingGateway:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def _answer(self):
        if self.fail:
            return {"success": False, "error": "Failed to update date"}
        return {"success": True}

    def reschedule(self, kind):
        def call(source_id, when):
            self.calls.append(("reschedule", kind, source_id, when))
            return self._answer()

        return call

    def complete(self, kind):
        def call(source_id, flag):
            self.calls.append(("complete", kind, source_id, flag))
            return self._answer()

        return call

    def build(self):
        return CalendarGateway(
            reschedule={kind: self.reschedule(kind) for kind in ("assessment", "personal")},
            set_completed={kind: self.complete(kind) for kind in ("assessment", "personal", "interview", "oa")},
        )


def calendar_items():
    courses = [
        {
            "id": "c1",
            "course_code": "MATH 135",
            "color": "#123456",
            "assessments": [
                {"id": "a1", "name": "Assignment 1", "weight": 10, "due_date": "2026-02-01", "is_completed": False},
            ],
        }
    ]
    interviews = [{"id": "i1", "company_name": "Acme", "type": "interview", "interview_date": "2026-02-03T15:00:00Z"}]
    personal = [{"id": "p1", "title": "Groceries", "type": "personal", "due_date": "2026-02-02"}]
    return build_calendar_items(courses, interviews, personal, TORONTO)


class CalendarBoardTests(unittest.IsolatedAsyncioTestCase):
    async def test_same_day_drop_makes_no_remote_call(self):
        gateway = RecordingGateway()
        board = CalendarBoard(calendar_items(), gateway.build())
        board.start_drag("assessment-a1")
        self.assertEqual(board.state, DragState.DRAGGING)
        state = await board.drop("2026-02-01")
        self.assertEqual(state, DragState.IDLE)
        self.assertEqual(gateway.calls, [])

    async def test_drop_on_new_day_commits(self):
        gateway = RecordingGateway()
        board = CalendarBoard(calendar_items(), gateway.build())
        board.start_drag("assessment-a1")
        state = await board.drop("2026-02-05")
        self.assertEqual(state, DragState.COMMITTED)
        self.assertEqual(len(gateway.calls), 1)
        _, kind, source_id, when = gateway.calls[0]
        self.assertEqual((kind, source_id), ("assessment", "a1"))
        self.assertTrue(when.startswith("2026-02-05T12:00:00"))
        self.assertIn("assessment-a1", [i.uid for i in board.days()["2026-02-05"]])

    async def test_failed_drop_rolls_back(self):
        gateway = RecordingGateway(fail=True)
        board = CalendarBoard(calendar_items(), gateway.build())
        before = board.items
        board.start_drag("personal-p1")
        state = await board.drop("2026-02-09")
        self.assertEqual(state, DragState.ROLLED_BACK)
        self.assertEqual(board.items, before)
        self.assertEqual(board.last_result.error, "Failed to update date")

    async def test_interviews_are_not_draggable(self):
        board = CalendarBoard(calendar_items(), RecordingGateway().build())
        with self.assertRaises(DragError):
            board.start_drag("interview-i1")
        self.assertEqual(board.state, DragState.IDLE)

    async def test_drop_without_drag(self):
        board = CalendarBoard(calendar_items(), RecordingGateway().build())
        with self.assertRaises(DragError):
            await board.drop("2026-02-05")

    async def test_impossible_day_keeps_drag(self):
        gateway = RecordingGateway()
        board = CalendarBoard(calendar_items(), gateway.build())
        board.start_drag("assessment-a1")
        with self.assertRaises(DragError):
            await board.drop("2026-02-30")
        self.assertEqual(board.state, DragState.DRAGGING)
        self.assertEqual(gateway.calls, [])
        self.assertEqual(await board.drop("2026-02-27"), DragState.COMMITTED)

    async def test_toggle_complete(self):
        gateway = RecordingGateway()
        board = CalendarBoard(calendar_items(), gateway.build())
        result = await board.toggle_complete("interview-i1")
        self.assertEqual(result.status, MutationStatus.COMMITTED)
        self.assertEqual(gateway.calls, [("complete", "interview", "i1", True)])
        self.assertTrue({i.uid: i for i in board.items}["interview-i1"].is_completed)


class TasksBoardTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.calls = []
        self.tasks = [
            {"id": "t1", "list_id": "l1", "title": "Read", "is_completed": False, "position": 0},
            {"id": "t2", "list_id": "l1", "title": "Write", "is_completed": False, "position": 1},
        ]

    def board(self, ok=True):
        def answer(*args):
            self.calls.append(args)
            return {"success": ok} if ok else {"success": False, "error": "Failed to reorder tasks"}

        return TasksBoard(self.tasks, toggle=answer, update=answer, reorder=answer)

    async def test_toggle_and_edit(self):
        board = self.board()
        await board.toggle("t1")
        await board.edit("t2", title="Write essay")
        self.assertTrue(board.store.get("t1")["is_completed"])
        self.assertEqual(board.store.get("t2")["title"], "Write essay")
        self.assertEqual(self.calls, [("t1", True), ("t2", {"title": "Write essay"})])

    async def test_reorder(self):
        board = self.board()
        await board.reorder(["t2", "t1"])
        self.assertEqual([t["id"] for t in board.ordered("l1")], ["t2", "t1"])

    async def test_failed_reorder_restores_order(self):
        board = self.board(ok=False)
        result = await board.reorder(["t2", "t1"])
        self.assertEqual(result.status, MutationStatus.ROLLED_BACK)
        self.assertEqual([t["id"] for t in board.ordered()], ["t1", "t2"])


class GradeWorkbenchTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.saved = []
        self.courses = [
            {
                "id": "c1",
                "course_code": "SYDE 101",
                "assessments": [
                    {"id": "a1", "course_id": "c1", "name": "A1", "weight": 20, "score": 80},
                    {"id": "a2", "course_id": "c1", "name": "A2", "weight": 30, "score": 60},
                    {"id": "a3", "course_id": "c1", "name": "Final", "weight": 50, "score": None},
                ],
            }
        ]

    def workbench(self, ok=True):
        def save(assessment_id, score):
            self.saved.append((assessment_id, score))
            return {"success": True} if ok else {"success": False, "error": "Failed to save grade"}

        return GradeWorkbench(self.courses, save)

    def test_initial_stats(self):
        stats = self.workbench().course_stats("c1")
        self.assertAlmostEqual(stats.average, 68)
        self.assertAlmostEqual(stats.progress, 50)

    async def test_hypothetical_round_trip(self):
        bench = self.workbench()
        original = bench.assessments()
        bench.enable_hypothetical()
        await bench.set_score("a3", 100)
        self.assertAlmostEqual(bench.course_stats("c1").average, 84)
        bench.disable_hypothetical()
        self.assertEqual(bench.assessments(), original)
        self.assertEqual(self.saved, [])

    async def test_toggle_without_edits_restores(self):
        bench = self.workbench()
        original = bench.assessments()
        bench.enable_hypothetical()
        bench.disable_hypothetical()
        self.assertEqual(bench.assessments(), original)

    async def test_real_edit_goes_remote(self):
        bench = self.workbench()
        result = await bench.set_score("a3", 90)
        self.assertEqual(result.status, MutationStatus.COMMITTED)
        self.assertEqual(self.saved, [("a3", 90.0)])
        self.assertAlmostEqual(bench.term_average(), (16 + 18 + 45))

    async def test_failed_edit_rolls_back(self):
        bench = self.workbench(ok=False)
        before = bench.assessments()
        result = await bench.set_score("a1", 10)
        self.assertEqual(result.status, MutationStatus.ROLLED_BACK)
        self.assertEqual(bench.assessments(), before)

    async def test_out_of_range_score_touches_nothing(self):
        bench = self.workbench()
        before = bench.assessments()
        with self.assertRaises(ValidationError):
            await bench.set_score("a1", 101)
        self.assertEqual(bench.assessments(), before)
        self.assertEqual(self.saved, [])


if __name__ == "__main__":
    unittest.main()
