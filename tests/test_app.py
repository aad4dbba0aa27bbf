import unittest

from fastapi.testclient import TestClient

from studydeck.app import app, get_auth, get_store
from studydeck.services.auth_service import TrustedHeaderAuthService
from studydeck.services.row_store import SqliteRowStore


def headers(uid):
    # Local mode reads x-user-id, the hosted backends read the Appwrite JWT.
    return {"x-user-id": uid, "x-appwrite-user-jwt": uid}


class ApiTests(unittest.TestCase):
    def setUp(self):
        self.store = SqliteRowStore(":memory:")
        app.dependency_overrides[get_store] = lambda: self.store
        app.dependency_overrides[get_auth] = TrustedHeaderAuthService
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()

    def test_health(self):
        res = self.client.get("/health")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["status"], "ok")

    def test_missing_credentials(self):
        res = self.client.get("/terms")
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.json(), {"success": False, "error": "Not authenticated"})

    def test_course_flow(self):
        res = self.client.post(
            "/courses",
            json={"course_code": "ECE 140", "course_name": "Circuits", "term_label": "1B"},
            headers=headers("alice"),
        )
        self.assertEqual(res.status_code, 200, res.text)
        course_id = res.json()["courseId"]

        res = self.client.post(
            "/assessments",
            json={"course_id": course_id, "name": "Midterm", "weight": 40},
            headers=headers("alice"),
        )
        assessment_id = res.json()["assessmentId"]
        res = self.client.put(f"/assessments/{assessment_id}/score", json={"score": 75}, headers=headers("alice"))
        self.assertEqual(res.json(), {"success": True, "score": 75.0})

        course = self.client.get(f"/courses/{course_id}", headers=headers("alice")).json()["data"]
        self.assertEqual(course["assessments"][0]["type"], "Exam")
        self.assertAlmostEqual(course["stats"]["average"], 75)

    def test_validation_failure_is_400(self):
        res = self.client.post("/courses", json={"course_code": "", "course_name": "x"}, headers=headers("alice"))
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["error"], "Course code is required")

    def test_foreign_row_is_403(self):
        course_id = self.client.post(
            "/courses",
            json={"course_code": "ECE 140", "course_name": "Circuits", "term_label": "1B"},
            headers=headers("alice"),
        ).json()["courseId"]
        res = self.client.delete(f"/courses/{course_id}", headers=headers("bob"))
        self.assertEqual(res.status_code, 403)

    def test_reorder_takes_embedded_ids(self):
        first = self.client.post("/tasks", json={"title": "A"}, headers=headers("alice")).json()["task"]["id"]
        second = self.client.post("/tasks", json={"title": "B"}, headers=headers("alice")).json()["task"]["id"]
        res = self.client.post("/tasks/reorder", json={"task_ids": [second, first]}, headers=headers("alice"))
        self.assertTrue(res.json()["success"])
        lists = self.client.get("/task-lists", headers=headers("alice")).json()["lists"]
        self.assertEqual([t["id"] for t in lists[0]["tasks"]], [second, first])

    def test_calendar_feed_is_ical(self):
        course_id = self.client.post(
            "/courses",
            json={"course_code": "ECE 140", "course_name": "Circuits", "term_label": "1B"},
            headers=headers("alice"),
        ).json()["courseId"]
        self.client.post(
            "/assessments",
            json={"course_id": course_id, "name": "Lab 1", "weight": 5, "due_date": "2026-02-10T15:00:00Z"},
            headers=headers("alice"),
        )
        res = self.client.get("/calendar/feed.ics", headers=headers("alice"))
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.headers["content-type"].startswith("text/calendar"))
        self.assertIn("SUMMARY:Circuits: Lab 1", res.text)
        self.assertEqual(self.client.get("/calendar/feed.ics").status_code, 401)

    def test_squad_task_state_routes(self):
        squad = self.client.post("/squads", json={"name": "Squad"}, headers=headers("alice")).json()["squad"]
        template = self.client.post(
            f"/squads/{squad['id']}/templates",
            json={"title": "PS 1", "due_date": "2026-02-10T12:00:00Z", "type": "assignment"},
            headers=headers("alice"),
        ).json()["template"]
        self.client.post("/squads/join", json={"invite_code": squad["invite_code"]}, headers=headers("bob"))

        path = f"/squads/templates/{template['id']}"
        res = self.client.put(f"{path}/status", json={"status": "late"}, headers=headers("bob"))
        self.assertEqual(res.json()["state"]["status"], "late")
        res = self.client.patch(f"{path}/state", json={"notes": "ask TA"}, headers=headers("bob"))
        self.assertEqual(res.json()["state"]["notes"], "ask TA")
        items = self.client.get("/squads/calendar", headers=headers("bob")).json()["items"]
        self.assertEqual((items[0]["status"], items[0]["notes"]), ("late", "ask TA"))
        self.client.delete(f"{path}/state", headers=headers("bob"))
        self.assertIsNone(self.client.get(f"{path}/state", headers=headers("bob")).json()["state"])
        self.assertEqual(self.client.put(f"{path}/status", json={"status": "late"}, headers=headers("cara")).status_code, 403)


if __name__ == "__main__":
    unittest.main()
