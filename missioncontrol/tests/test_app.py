import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from missioncontrol.app import create_app
from missioncontrol.db import InMemoryDbClient
from missioncontrol.dependencies import set_db_client
from missioncontrol.errors import StorageError


class UnavailableDbClient(InMemoryDbClient):
    def get_user_pings(self, user_id):
        raise StorageError()


class MissionControlApiTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        set_db_client(self.db)
        self.client = TestClient(create_app())
        self.alpha = self._register("alpha")
        self.bravo = self._register("bravo")

    def tearDown(self):
        set_db_client(None)

    def _register(self, username):
        response = self.client.post(
            "/api/register",
            json={"username": username, "password": "s3cret!", "firstName": "Agent"},
        )
        self.assertEqual(response.status_code, 201)
        return {"Authorization": f"Bearer {response.json()['token']}"}

    def _ping(self, headers, **body):
        payload = {"latitude": "10.0000", "longitude": "20.0000"}
        payload.update(body)
        response = self.client.post("/api/pings", json=payload, headers=headers)
        self.assertEqual(response.status_code, 201)
        return response.json()

    def test_health(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_register_duplicate_and_login(self):
        response = self.client.post(
            "/api/register", json={"username": "alpha", "password": "another"}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Username already exists")

        bad = self.client.post(
            "/api/login", json={"username": "alpha", "password": "wrong!"}
        )
        self.assertEqual(bad.status_code, 401)

        good = self.client.post(
            "/api/login", json={"username": "alpha", "password": "s3cret!"}
        )
        self.assertEqual(good.status_code, 200)
        self.assertEqual(good.json()["user"]["username"], "alpha")
        self.assertNotIn("password", good.json()["user"])

    def test_current_user(self):
        response = self.client.get("/api/user", headers=self.alpha)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["username"], "alpha")
        self.assertEqual(response.json()["firstName"], "Agent")

    def test_current_user_removed_after_login(self):
        user = self.db.get_user_by_username("alpha")
        with patch.object(self.db, "get_user", side_effect=[user, None]):
            response = self.client.get("/api/user", headers=self.alpha)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"message": "User not found"})

    def test_requires_token(self):
        self.assertEqual(self.client.get("/api/pings").status_code, 401)
        bogus = {"Authorization": "Bearer nope"}
        self.assertEqual(self.client.get("/api/pings", headers=bogus).status_code, 401)

    def test_create_ping_wire_shape(self):
        ping = self._ping(self.alpha, message="Eagle has landed")
        self.assertEqual(
            set(ping),
            {
                "id",
                "userId",
                "latitude",
                "longitude",
                "message",
                "parentPingId",
                "createdAt",
                "status",
            },
        )
        self.assertIsNone(ping["parentPingId"])
        self.assertEqual(ping["latitude"], "10.0000")
        self.assertEqual(ping["status"], "ACTIVE")

    def test_create_ping_missing_coordinates(self):
        response = self.client.post(
            "/api/pings", json={"longitude": "20.0"}, headers=self.alpha
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.db.pings, {})

    def test_trail_and_ownership(self):
        root = self._ping(self.alpha)
        reply = self.client.post(
            f"/api/pings/{root['id']}",
            json={"latitude": "10.0001", "longitude": "20.0001"},
            headers=self.alpha,
        )
        self.assertEqual(reply.status_code, 201)
        self.assertEqual(reply.json()["parentPingId"], root["id"])

        foreign = self.client.post(
            f"/api/pings/{root['id']}", json={}, headers=self.bravo
        )
        self.assertEqual(foreign.status_code, 403)

        missing = self.client.post(
            "/api/pings/999",
            json={"latitude": "1", "longitude": "2"},
            headers=self.alpha,
        )
        self.assertEqual(missing.status_code, 404)

        invalid = self.client.post(
            f"/api/pings/{root['id']}", json={"latitude": ""}, headers=self.alpha
        )
        self.assertEqual(invalid.status_code, 400)

        trails = self.client.get("/api/trails", headers=self.alpha).json()
        self.assertEqual(len(trails), 1)
        self.assertEqual(trails[0]["root"]["id"], root["id"])
        self.assertEqual(
            [p["id"] for p in trails[0]["responses"]], [reply.json()["id"]]
        )
        self.assertEqual(self.client.get("/api/trails", headers=self.bravo).json(), [])

    def test_get_ping(self):
        root = self._ping(self.alpha)
        own = self.client.get(f"/api/pings/{root['id']}", headers=self.alpha)
        self.assertEqual(own.status_code, 200)
        other = self.client.get(f"/api/pings/{root['id']}", headers=self.bravo)
        self.assertEqual(other.status_code, 403)
        self.assertEqual(
            self.client.get("/api/pings/999", headers=self.alpha).status_code, 404
        )

    def test_list_and_latest(self):
        ids = [self._ping(self.alpha)["id"] for _ in range(4)]
        self._ping(self.bravo)

        listed = self.client.get("/api/pings", headers=self.alpha).json()
        self.assertEqual([p["id"] for p in listed], ids)

        latest = self.client.get("/api/pings/latest", headers=self.alpha).json()
        self.assertEqual([p["id"] for p in latest], [ids[3], ids[2], ids[1]])

        one = self.client.get(
            "/api/pings/latest", params={"limit": 1}, headers=self.alpha
        ).json()
        self.assertEqual([p["id"] for p in one], [ids[3]])

    def test_list_filters(self):
        root = self._ping(self.alpha, message="Rendezvous at dawn")
        self.client.post(
            f"/api/pings/{root['id']}",
            json={"latitude": "1", "longitude": "2"},
            headers=self.alpha,
        )
        roots = self.client.get(
            "/api/pings", params={"kind": "roots"}, headers=self.alpha
        ).json()
        self.assertEqual([p["id"] for p in roots], [root["id"]])

        found = self.client.get(
            "/api/pings", params={"search": "DAWN"}, headers=self.alpha
        ).json()
        self.assertEqual([p["id"] for p in found], [root["id"]])

        bad = self.client.get(
            "/api/pings", params={"status": "LOST"}, headers=self.alpha
        )
        self.assertEqual(bad.status_code, 400)

    def test_stats(self):
        root = self._ping(self.alpha)
        self.client.post(
            f"/api/pings/{root['id']}",
            json={"latitude": "1", "longitude": "2"},
            headers=self.alpha,
        )
        stats = self.client.get("/api/pings/stats", headers=self.alpha).json()
        self.assertEqual(stats["totalPings"], 2)
        self.assertEqual(stats["trailCount"], 1)
        self.assertEqual(stats["activePings"], 2)
        self.assertIsNotNone(stats["lastPingAt"])

    def test_storage_failure_returns_500(self):
        set_db_client(UnavailableDbClient())
        headers = self._register("charlie")
        response = self.client.get("/api/pings", headers=headers)
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"message": "Storage failure"})


if __name__ == "__main__":
    unittest.main()
