from dataclasses import replace
import unittest
from unittest import mock
from zoneinfo import ZoneInfo

from requests import RequestException

from studydeck.actions import assessments, calendar, courses, tasks
from studydeck.config.settings import settings
from studydeck.core.calendar import build_calendar_items
from studydeck.services import auth_service
from studydeck.services.auth_service import (
    AppwriteAuthService,
    AuthResult,
    AuthServiceError,
    TrustedHeaderAuthService,
)
from studydeck.services.row_store import SqliteRowStore
from studydeck.state.app_state import AppState
from studydeck.state.calendar_board import CalendarBoard, DragState, TasksBoard, action_gateway
from studydeck.state.grade_workbench import GradeWorkbench
from studydeck.state.session_state import SessionState
from studydeck.state.store import MutationStatus


TORONTO = ZoneInfo("America/Toronto")


def response(status, payload, cookies=None):
    res = mock.Mock()
    res.status_code = status
    res.json.return_value = payload
    res.cookies = cookies or {}
    return res


class AppwriteAuthServiceTests(unittest.TestCase):
    def setUp(self):
        self.auth = AppwriteAuthService("https://cloud.appwrite.io/v1/", "studydeck")

    def test_requires_configuration(self):
        with self.assertRaises(AuthServiceError):
            AppwriteAuthService("", "studydeck")
        with self.assertRaises(AuthServiceError):
            AppwriteAuthService("https://cloud.appwrite.io/v1", "")

    @mock.patch("studydeck.services.auth_service.requests.request")
    def test_sign_in(self, request):
        request.side_effect = [
            response(201, {"$id": "session-1", "secret": "s3cr3t", "userId": "u1"}),
            response(201, {"jwt": "jwt-1"}),
        ]
        result = self.auth.sign_in("a@example.com", "pw")
        self.assertEqual(result, AuthResult(uid="u1", email="a@example.com", id_token="jwt-1", refresh_token="s3cr3t"))
        login, mint = request.call_args_list
        self.assertEqual(login.args, ("POST", "https://cloud.appwrite.io/v1/account/sessions/email"))
        self.assertEqual(login.kwargs["headers"]["X-Appwrite-Project"], "studydeck")
        self.assertEqual(mint.args, ("POST", "https://cloud.appwrite.io/v1/account/jwts"))
        self.assertEqual(mint.kwargs["headers"]["X-Appwrite-Session"], "s3cr3t")

    @mock.patch("studydeck.services.auth_service.requests.request")
    def test_sign_in_reads_secret_from_session_cookie(self, request):
        request.side_effect = [
            response(201, {"$id": "session-1", "secret": "", "userId": "u1"}, cookies={"a_session_studydeck": "c00kie"}),
            response(201, {"jwt": "jwt-1"}),
        ]
        result = self.auth.sign_in("a@example.com", "pw")
        self.assertEqual((result.id_token, result.refresh_token), ("jwt-1", "c00kie"))
        self.assertEqual(request.call_args.kwargs["headers"]["X-Appwrite-Session"], "c00kie")

    @mock.patch("studydeck.services.auth_service.requests.request")
    def test_signed_in_session_authenticates_actions(self, request):
        request.side_effect = [
            response(201, {"$id": "session-1", "secret": "s3cr3t", "userId": "u1"}),
            response(201, {"jwt": "jwt-1"}),
            response(200, {"$id": "u1", "email": "a@example.com", "name": "Alice"}),
        ]
        state = AppState(store=SqliteRowStore(":memory:"), auth=self.auth)
        state.session.sign_in(self.auth.sign_in("a@example.com", "pw"))
        self.assertEqual(courses.get_courses(state.context()), {"success": True, "data": []})
        self.assertEqual(request.call_args.args, ("GET", "https://cloud.appwrite.io/v1/account"))
        self.assertEqual(request.call_args.kwargs["headers"]["X-Appwrite-JWT"], "jwt-1")

    @mock.patch("studydeck.services.auth_service.requests.request")
    def test_session_without_secret_is_rejected(self, request):
        request.return_value = response(201, {"$id": "session-1", "secret": "", "userId": "u1"})
        with self.assertRaises(AuthServiceError) as ctx:
            self.auth.sign_in("a@example.com", "pw")
        self.assertEqual(str(ctx.exception), "INVALID_APPWRITE_SESSION")
        self.assertEqual(request.call_count, 1)

    @mock.patch("studydeck.services.auth_service.requests.request")
    def test_current_user_sends_jwt(self, request):
        request.return_value = response(200, {"$id": "u1", "email": "a@example.com", "name": "Alice"})
        user = self.auth.get_current_user("jwt-token")
        self.assertEqual((user.uid, user.name), ("u1", "Alice"))
        self.assertEqual(request.call_args.kwargs["headers"]["X-Appwrite-JWT"], "jwt-token")

    @mock.patch("studydeck.services.auth_service.requests.request")
    def test_errors(self, request):
        request.return_value = response(401, {"message": "Invalid credentials"})
        with self.assertRaises(AuthServiceError) as ctx:
            self.auth.sign_in("a@example.com", "bad")
        self.assertEqual(str(ctx.exception), "Invalid credentials")

        request.side_effect = RequestException("offline")
        with self.assertRaises(AuthServiceError) as ctx:
            self.auth.get_current_user("jwt-token")
        self.assertEqual(str(ctx.exception), "AUTH_SERVICE_UNAVAILABLE")

    def test_missing_token(self):
        with self.assertRaises(AuthServiceError):
            self.auth.get_current_user(None)


class AuthFromSettingsTests(unittest.TestCase):
    def test_local_backend_warns_about_trusted_header(self):
        with mock.patch("studydeck.services.auth_service.settings", replace(settings, backend="sqlite")):
            with self.assertLogs("studydeck.services.auth_service", level="WARNING") as logs:
                service = auth_service.from_settings()
        self.assertIsInstance(service, TrustedHeaderAuthService)
        self.assertIn("x-user-id", logs.output[0])

    def test_hosted_backend_verifies_jwt(self):
        hosted = replace(
            settings, backend="appwrite", appwrite_endpoint="https://cloud.appwrite.io/v1", appwrite_project_id="studydeck"
        )
        with mock.patch("studydeck.services.auth_service.settings", hosted):
            self.assertIsInstance(auth_service.from_settings(), AppwriteAuthService)


class SessionStateTests(unittest.TestCase):
    def test_sign_in_and_clear(self):
        session = SessionState()
        self.assertFalse(session.is_authenticated)
        session.sign_in(AuthResult(uid="u1", email="a@example.com", id_token="tok", refresh_token="ref"))
        self.assertTrue(session.is_authenticated)
        session.clear()
        self.assertIsNone(session.id_token)
        self.assertFalse(session.is_authenticated)

    def test_context_carries_session_token(self):
        state = AppState(store=SqliteRowStore(":memory:"), auth=TrustedHeaderAuthService())
        self.assertFalse(courses.get_courses(state.context())["success"])
        state.session.sign_in(AuthResult(uid="u1", email="", id_token="u1", refresh_token=""))
        ctx = state.context()
        self.assertIs(ctx.invalidator, state.invalidator)
        self.assertEqual(courses.get_courses(ctx), {"success": True, "data": []})


class BoardsOverActionsTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.state = AppState(store=SqliteRowStore(":memory:"), auth=TrustedHeaderAuthService())
        self.state.session.sign_in(AuthResult(uid="alice", email="", id_token="alice", refresh_token=""))
        self.ctx = self.state.context()
        self.course_id = courses.create_course(
            self.ctx, {"course_code": "MATH 135", "course_name": "Algebra", "term_label": "1A"}
        )["courseId"]
        self.assessment_id = assessments.create_assessment(
            self.ctx, {"course_id": self.course_id, "name": "Assignment 1", "weight": 10, "due_date": "2026-02-01"}
        )["assessmentId"]

    def board(self):
        data = calendar.get_calendar_data(self.ctx)
        items = build_calendar_items(data["courses"], data["interviews"], data["personalTasks"], TORONTO)
        return CalendarBoard(items, action_gateway(self.ctx))

    def stored(self):
        return self.state.store.find_first("assessments", {"user_id": "alice", "id": self.assessment_id})

    async def test_drop_persists_new_date(self):
        board = self.board()
        board.start_drag(f"assessment-{self.assessment_id}")
        self.assertEqual(await board.drop("2026-02-05"), DragState.COMMITTED)
        self.assertTrue(self.stored()["due_date"].startswith("2026-02-05T12:00:00"))
        self.assertTrue(self.state.invalidator.is_stale("/dashboard/calendar"))

    async def test_drop_on_deleted_row_rolls_back(self):
        board = self.board()
        assessments.delete_assessment(self.ctx, self.assessment_id)
        board.start_drag(f"assessment-{self.assessment_id}")
        self.assertEqual(await board.drop("2026-02-05"), DragState.ROLLED_BACK)
        self.assertEqual(board.last_result.error, "Assessment not found")
        self.assertIn(f"assessment-{self.assessment_id}", [i.uid for i in board.days()["2026-02-01"]])

    async def test_workbench_saves_through_action(self):
        data = courses.get_grades_overview(self.ctx, None)
        bench = GradeWorkbench.from_actions(self.ctx, data["courses"])
        result = await bench.set_score(self.assessment_id, 88)
        self.assertEqual(result.status, MutationStatus.COMMITTED)
        self.assertEqual(self.stored()["score"], 88)

    async def test_tasks_board_reorders_through_action(self):
        first = tasks.create_task(self.ctx, {"title": "A"})["task"]
        second = tasks.create_task(self.ctx, {"title": "B"})["task"]
        board = TasksBoard.from_actions(self.ctx, [first, second])
        result = await board.reorder([second["id"], first["id"]])
        self.assertEqual(result.status, MutationStatus.COMMITTED)
        listed = tasks.get_task_lists_with_tasks(self.ctx)["lists"][0]["tasks"]
        self.assertEqual([t["id"] for t in listed], [second["id"], first["id"]])


if __name__ == "__main__":
    unittest.main()
