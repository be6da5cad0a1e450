"""
End-to-end tests for the DJ session HTTP API.
"""

from aiohttp.test_utils import AioHTTPTestCase

from main import create_app
from mock_stream.coordinator import SessionCoordinator
from mock_stream.gateway import COORDINATOR
from mock_stream.state import ConnectionRegistry, SessionStore

ORIGIN = "http://localhost:3000"


class TestSessionApi(AioHTTPTestCase):

    async def get_application(self):
        self.coordinator = SessionCoordinator()
        return create_app(self.coordinator)

    async def _create(self, name="Friday Night", **extra):
        resp = await self.client.post("/api/dj/sessions", json={"session_name": name, **extra})
        self.assertEqual(resp.status, 200)
        return (await resp.json())["session"]

    async def test_create_and_get(self):
        created = await self._create(dj_id="dj-7")
        self.assertEqual(created["dj_id"], "dj-7")
        self.assertFalse(created["is_live"])

        resp = await self.client.get(f"/api/dj/sessions/{created['id']}")
        body = await resp.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["session"]["session_name"], "Friday Night")

    async def test_create_defaults_dj_id(self):
        created = await self._create()
        self.assertEqual(created["dj_id"], "demo-dj")

    async def test_create_requires_name(self):
        resp = await self.client.post("/api/dj/sessions", json={"dj_id": "dj-1"})
        self.assertEqual(resp.status, 400)
        self.assertEqual(await resp.json(), {"success": False, "error": "session_name is required"})

    async def test_malformed_body(self):
        resp = await self.client.post(
            "/api/dj/sessions", data="{oops", headers={"Content-Type": "application/json"}
        )
        self.assertEqual(resp.status, 400)
        self.assertFalse((await resp.json())["success"])

    async def test_get_unknown(self):
        resp = await self.client.get("/api/dj/sessions/nope")
        self.assertEqual(resp.status, 404)
        self.assertEqual(await resp.json(), {"success": False, "error": "DJ session not found"})

    async def test_list_with_etag(self):
        created = await self._create()
        await self.client.patch(f"/api/dj/sessions/{created['id']}", json={"is_live": True})
        await self._create(name="Second")

        resp = await self.client.get("/api/dj/sessions")
        body = await resp.json()
        self.assertEqual(body["total_sessions"], 2)
        self.assertEqual(body["active_sessions"], 1)

        etag = resp.headers["ETag"]
        resp = await self.client.get("/api/dj/sessions", headers={"If-None-Match": etag})
        self.assertEqual(resp.status, 304)

    async def test_patch_session(self):
        created = await self._create()
        resp = await self.client.patch(
            f"/api/dj/sessions/{created['id']}",
            json={"session_name": "Renamed", "is_recording": True, "unknown": "ignored"},
        )
        body = await resp.json()
        self.assertEqual(body["action"], "session_updated")
        self.assertEqual(body["session"]["session_name"], "Renamed")
        self.assertTrue(body["session"]["is_recording"])

        resp = await self.client.patch(f"/api/dj/sessions/{created['id']}", json={"is_live": "yes"})
        self.assertEqual(resp.status, 400)

    async def test_end_session(self):
        created = await self._create()
        resp = await self.client.delete(f"/api/dj/sessions/{created['id']}")
        self.assertEqual(await resp.json(), {
            "success": True,
            "action": "session_ended",
            "session_id": created["id"],
        })

        resp = await self.client.delete(f"/api/dj/sessions/{created['id']}")
        self.assertEqual(resp.status, 404)

    async def test_track_and_playback(self):
        session_id = (await self._create())["id"]
        base = f"/api/dj/sessions/{session_id}"

        resp = await self.client.post(f"{base}/playback/A", json={"action": "play"})
        self.assertEqual(resp.status, 400)
        self.assertEqual((await resp.json())["error"], "No track loaded on this deck")

        resp = await self.client.post(f"{base}/tracks/A", json={"track_id": "t1", "track_title": "Strobe"})
        body = await resp.json()
        self.assertEqual(body["action"], "track_loaded")
        self.assertEqual(body["track_data"]["track"]["id"], "t1")

        resp = await self.client.post(f"{base}/playback/A", json={"action": "play"})
        body = await resp.json()
        self.assertEqual(body["action"], "playback_play")
        self.assertTrue(body["deck_state"]["playing"])

    async def test_deck_and_action_validation(self):
        session_id = (await self._create())["id"]
        base = f"/api/dj/sessions/{session_id}"

        resp = await self.client.post(f"{base}/tracks/C", json={})
        self.assertEqual(resp.status, 400)
        self.assertEqual((await resp.json())["error"], 'Deck must be "A" or "B"')

        resp = await self.client.post(f"{base}/playback/A", json={"action": "scratch"})
        self.assertEqual(resp.status, 400)

        # Deck is validated before the session lookup
        resp = await self.client.post("/api/dj/sessions/nope/playback/X", json={"action": "play"})
        self.assertEqual(resp.status, 400)

    async def test_mixer(self):
        session_id = (await self._create())["id"]
        base = f"/api/dj/sessions/{session_id}/mixer"

        resp = await self.client.post(base, json={"crossfader": -0.3})
        self.assertEqual((await resp.json())["mixer_state"]["crossfader"], -0.3)

        resp = await self.client.patch(base, json={"master_volume": 0.9})
        state = (await resp.json())["mixer_state"]
        self.assertEqual(state["master_volume"], 0.9)
        self.assertEqual(state["crossfader"], -0.3)

        resp = await self.client.get(base)
        self.assertEqual((await resp.json())["mixer_state"], state)

        resp = await self.client.post(base, json={"crossfader": 2})
        self.assertEqual(resp.status, 400)

    async def test_deck_update(self):
        session_id = (await self._create())["id"]
        resp = await self.client.post(f"/api/dj/sessions/{session_id}/decks/B", json={"volume": 0.4})
        body = await resp.json()
        self.assertEqual(body["deck"], "B")
        self.assertEqual(body["deck_state"]["volume"], 0.4)

    async def test_bpm(self):
        session_id = (await self._create())["id"]
        resp = await self.client.post(
            f"/api/dj/sessions/{session_id}/bpm/A",
            json={"bpm": 128, "sync_enabled": True},
        )
        body = await resp.json()
        self.assertEqual(body["bpm_data"], {"bpm": 128, "synced": True, "beat_position": None})

    async def test_audio_levels_and_stats(self):
        session_id = (await self._create())["id"]
        resp = await self.client.post(
            f"/api/dj/sessions/{session_id}/audio-levels",
            json={"master_left": 0.5, "channel_b_right": 0.25},
        )
        self.assertEqual(await resp.json(), {"success": True, "action": "audio_levels_updated"})

        resp = await self.client.get(f"/api/dj/sessions/{session_id}/stats")
        stats = (await resp.json())["stats"]
        self.assertEqual(stats["session_id"], session_id)
        self.assertEqual(stats["audio_levels"]["master_left"], 0.5)
        self.assertEqual(stats["audio_levels"]["channel_b_right"], 0.25)
        self.assertEqual(stats["performance"]["total_tracks_played"], 0)

    async def test_health_and_endpoints(self):
        resp = await self.client.get("/api/health")
        body = await resp.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["version"], "1.0.0")

        resp = await self.client.get("/api/endpoints")
        endpoints = (await resp.json())["endpoints"]
        self.assertIn("POST /api/dj/sessions", endpoints)
        self.assertIn("GET /ws", endpoints)

    async def test_unknown_route(self):
        resp = await self.client.get("/api/nothing-here")
        self.assertEqual(resp.status, 404)
        body = await resp.json()
        self.assertEqual(body["error"], "Endpoint not found")
        self.assertEqual(body["message"], "GET /api/nothing-here is not a valid endpoint")

    async def test_cors(self):
        resp = await self.client.options(
            "/api/dj/sessions",
            headers={"Origin": ORIGIN, "Access-Control-Request-Method": "POST"},
        )
        self.assertEqual(resp.status, 204)
        self.assertEqual(resp.headers["Access-Control-Allow-Origin"], ORIGIN)

        resp = await self.client.get("/api/health", headers={"Origin": ORIGIN})
        self.assertEqual(resp.headers["Access-Control-Allow-Origin"], ORIGIN)

        resp = await self.client.get("/api/health", headers={"Origin": "http://evil.example"})
        self.assertNotIn("Access-Control-Allow-Origin", resp.headers)

    async def test_out_of_range_number(self):
        created = await self._create()
        resp = await self.client.post(
            f"/api/dj/sessions/{created['id']}/mixer",
            data='{"master_volume": 1' + "0" * 400 + "}",
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(resp.status, 400)
        body = await resp.json()
        self.assertFalse(body["success"])
        self.assertIn("master_volume", body["error"])


class TestInjectedState(AioHTTPTestCase):

    async def get_application(self):
        self.store = SessionStore()
        self.registry = ConnectionRegistry()
        return create_app(store=self.store, registry=self.registry)

    async def test_uses_injected_store(self):
        resp = await self.client.post("/api/dj/sessions", json={"session_name": "Injected"})
        self.assertEqual(resp.status, 200)
        session_id = (await resp.json())["session"]["id"]
        self.assertIn(session_id, self.store)
        self.assertIs(self.app[COORDINATOR].registry, self.registry)
