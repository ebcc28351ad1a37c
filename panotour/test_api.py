import io
import os
import tempfile
import unittest

from PIL import Image

from panotour.app import create_app


def make_jpeg(width, height):
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (40, 90, 160)).save(buf, "JPEG")
    buf.seek(0)
    return buf


class SceneApiTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.app = create_app({"DATA_DIR": self._tmp.name, "LOG_FILE": None, "TESTING": True})
        self.client = self.app.test_client()

    def tearDown(self):
        self._tmp.cleanup()

    def upload(self, scene_id, name=None, image_url=None):
        res = self.client.post(
            "/api/scenes/upload",
            json={"id": scene_id, "name": name or scene_id, "imageUrl": image_url or f"{scene_id.lower()}.jpg"},
        )
        self.assertEqual(res.status_code, 201)
        return res.get_json()["scene"]

    def test_upload_missing_fields(self):
        res = self.client.post("/api/scenes/upload", json={"imageUrl": "a.jpg"})
        self.assertEqual(res.status_code, 400)
        res = self.client.post("/api/scenes/upload", json={"id": "a", "imageUrl": "a.jpg"})
        self.assertEqual(res.status_code, 400)
        res = self.client.post("/api/scenes/upload", json={"name": "A"})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "imageUrl is required")

    def test_upload_accepts_non_string_name(self):
        res = self.client.post("/api/scenes/upload", json={"name": 42, "imageUrl": "a.jpg"})
        self.assertEqual(res.status_code, 201)
        self.assertEqual(res.get_json()["scene"]["name"], "42")
        self.assertEqual(res.get_json()["scene"]["id"], "42")

    def test_oversized_angles_default_to_zero(self):
        huge = int("1" + "0" * 400)
        res = self.client.post(
            "/api/scenes/upload", json={"id": "A", "name": "A", "imageUrl": "a.jpg", "initialView": {"yaw": huge}}
        )
        self.assertEqual(res.status_code, 201)
        self.assertEqual(res.get_json()["scene"]["initialView"]["yaw"], 0.0)
        self.upload("B")
        res = self.client.post(
            "/api/scenes/link", json={"sourceSceneId": "A", "targetSceneId": "B", "label": "Go", "yaw": huge}
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["hotspot"]["yaw"], 0.0)

    def test_link_validation_and_unknown_scene(self):
        self.upload("A")
        res = self.client.post("/api/scenes/link", json={"sourceSceneId": "A", "label": "Go"})
        self.assertEqual(res.status_code, 400)
        res = self.client.post("/api/scenes/link", json={"sourceSceneId": "A", "targetSceneId": "A"})
        self.assertEqual(res.status_code, 400)
        res = self.client.post("/api/scenes/link", json={"sourceSceneId": "A", "targetSceneId": "Z", "label": "Go"})
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.get_json()["code"], "not_found")

    def test_publish_flow(self):
        res = self.client.get("/api/tour/publish")
        self.assertEqual(res.status_code, 200)
        self.assertIsNone(res.get_json()["manifest"])

        res = self.client.post("/api/tour/publish", json={})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["code"], "empty_graph")

        self.upload("A", image_url="a.jpg")
        self.upload("B", image_url="b.jpg")
        res = self.client.post(
            "/api/scenes/link",
            json={"sourceSceneId": "A", "targetSceneId": "B", "label": "Go to B", "bidirectional": True, "yaw": 90},
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["hotspot"]["targetSceneId"], "B")

        res = self.client.post("/api/tour/publish", json={"initialSceneId": "nope"})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["code"], "validation_error")

        res = self.client.post("/api/tour/publish", json={"initialSceneId": "A"})
        self.assertEqual(res.status_code, 200)
        manifest = res.get_json()["manifest"]
        self.assertEqual(manifest["initialSceneId"], "A")
        self.assertEqual(len(manifest["navigationGraph"]["A"]), 1)
        self.assertEqual(len(manifest["navigationGraph"]["B"]), 1)

        listing = self.client.get("/api/scenes/list").get_json()
        self.assertEqual([s["id"] for s in listing["scenes"]], ["A", "B"])
        self.assertEqual(listing["manifest"]["version"], 1)
        self.assertEqual(listing["status"], "published")

    def test_hotspot_patch_and_delete(self):
        self.upload("A")
        self.upload("B")
        hotspot = self.client.post(
            "/api/scenes/link", json={"sourceSceneId": "A", "targetSceneId": "B", "label": "Go"}
        ).get_json()["hotspot"]
        res = self.client.patch(f"/api/hotspots/{hotspot['id']}", json={"pitch": -120})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["hotspot"]["pitch"], -90.0)
        self.assertEqual(self.client.delete(f"/api/hotspots/{hotspot['id']}").status_code, 200)
        self.assertEqual(self.client.delete(f"/api/hotspots/{hotspot['id']}").status_code, 404)

    def test_scene_delete_and_initial_scene(self):
        self.upload("A")
        self.upload("B")
        res = self.client.post("/api/tour/initial-scene", json={"initialSceneId": "B"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["tour"]["initialSceneId"], "B")
        self.assertEqual(self.client.post("/api/tour/initial-scene", json={}).status_code, 400)
        self.assertEqual(self.client.delete("/api/scenes/A").status_code, 200)
        self.assertEqual(self.client.get("/api/scenes/A").status_code, 404)

    def test_tour_query_param_scopes_requests(self):
        self.upload("A")
        res = self.client.get("/api/scenes/list?tour=annex")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["scenes"], [])
        res = self.client.get("/api/scenes/list?tour=bad%20id")
        self.assertEqual(res.status_code, 400)

    def test_property_metadata(self):
        res = self.client.put("/api/tour/property", json={"id": "prop-7", "title": "Canal House"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(self.client.get("/api/scenes/list").get_json()["title"], "Canal House")
        res = self.client.put("/api/tour/property", json={"title": "No id"})
        self.assertEqual(res.status_code, 400)

    def test_multipart_upload_probes_image(self):
        res = self.client.post(
            "/api/scenes/upload",
            data={"name": "Roof Deck", "tags": "outdoor,view", "file": (make_jpeg(64, 32), "roof deck.jpg")},
            content_type="multipart/form-data",
        )
        self.assertEqual(res.status_code, 201)
        scene = res.get_json()["scene"]
        self.assertEqual(scene["id"], "roof-deck")
        self.assertEqual((scene["width"], scene["height"]), (64, 32))
        self.assertEqual(scene["imageUrl"], "/uploads/default/roof-deck/roof_deck.jpg")
        self.assertEqual(scene["processing"]["warnings"], ["Depth data not provided"])
        self.assertTrue(os.path.exists(os.path.join(self._tmp.name, "raw_uploads", "default", "roof-deck", "roof_deck.jpg")))
        self.assertEqual(self.client.get(scene["imageUrl"]).status_code, 200)

    def test_multipart_upload_warns_on_non_equirect(self):
        res = self.client.post(
            "/api/scenes/upload",
            data={"name": "Closet", "file": (make_jpeg(40, 40), "closet.jpg")},
            content_type="multipart/form-data",
        )
        self.assertEqual(res.status_code, 201)
        warnings = res.get_json()["scene"]["processing"]["warnings"]
        self.assertEqual(len(warnings), 2)
        self.assertIn("2:1", warnings[1])

    def test_multipart_upload_rejects_bad_files(self):
        res = self.client.post(
            "/api/scenes/upload",
            data={"name": "Doc", "file": (io.BytesIO(b"hello"), "notes.txt")},
            content_type="multipart/form-data",
        )
        self.assertEqual(res.status_code, 400)
        res = self.client.post(
            "/api/scenes/upload",
            data={"name": "Broken", "file": (io.BytesIO(b"not really a jpeg"), "broken.jpg")},
            content_type="multipart/form-data",
        )
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "Uploaded file is not a readable image")

    def test_analytics_events(self):
        self.upload("A")
        res = self.client.get("/api/analytics/events")
        self.assertEqual(res.status_code, 200)
        self.assertEqual([e["event"] for e in res.get_json()["events"]], ["scene_uploaded", "scene_processed"])


if __name__ == "__main__":
    unittest.main()
