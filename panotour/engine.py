import contextlib

from panotour import linker, publisher, scenes
from panotour.analytics import AnalyticsLog
from panotour.config import DEFAULT_TOUR_ID
from panotour.db import connect, init_db, transaction
from panotour.manifests import ManifestStore
from panotour.snapshot import get_scene_engine_snapshot


class SceneEngine:
    """Entry point for the scene graph operations of one tour.

    Each call opens its own short-lived SQLite connection; writes run inside a
    single BEGIN IMMEDIATE transaction so readers never see half an operation.
    """

    def __init__(self, db_path, manifest_folder=None, analytics=None, tour_id=DEFAULT_TOUR_ID, manifests=None, create_schema=True):
        self.db_path = db_path
        self.manifests = manifests or ManifestStore(manifest_folder)
        self.analytics = analytics
        self.tour_id = tour_id
        self.manifests.path_for(tour_id)
        if create_schema:
            init_db(db_path)

    @classmethod
    def from_config(cls, config):
        return cls(
            config["DB_PATH"],
            config["MANIFEST_FOLDER"],
            analytics=AnalyticsLog(config["ANALYTICS_LOG"]),
            tour_id=config["TOUR_ID"],
        )

    def for_tour(self, tour_id):
        if tour_id == self.tour_id:
            return self
        return SceneEngine(
            self.db_path, analytics=self.analytics, tour_id=tour_id, manifests=self.manifests, create_schema=False
        )

    @contextlib.contextmanager
    def _db(self):
        db = connect(self.db_path)
        try:
            yield db
        finally:
            db.close()

    def _write(self, fn, *args):
        with self._db() as db:
            with transaction(db):
                return fn(db, self.tour_id, *args)

    def _record(self, event, payload):
        if self.analytics is not None:
            self.analytics.record(event, payload)

    def upload_scene(self, payload):
        scene = self._write(scenes.upload_scene, payload)
        self._record("scene_uploaded", {"scene_id": scene["id"], "tour_id": self.tour_id, "scene_type": scene["sceneType"]})
        self._record(
            "scene_processed",
            {
                "scene_id": scene["id"],
                "tour_id": self.tour_id,
                "status": scene["processing"].get("status"),
                "accuracy": publisher.accuracy_score(scene),
            },
        )
        return scene

    def link_scenes(self, payload):
        hotspot = self._write(linker.link_scenes, payload)
        self._record(
            "hotspot_created",
            {
                "hotspot_id": hotspot["id"],
                "source_scene": hotspot["sourceSceneId"],
                "target_scene": hotspot["targetSceneId"],
                "tour_id": self.tour_id,
            },
        )
        return hotspot

    def update_hotspot(self, hotspot_id, changes):
        return self._write(linker.update_hotspot, hotspot_id, changes)

    def delete_hotspot(self, hotspot_id):
        self._write(linker.delete_hotspot, hotspot_id)

    def delete_scene(self, scene_id):
        self._write(scenes.delete_scene, scene_id)

    def set_initial_scene(self, scene_id):
        return self._write(scenes.set_initial_scene, scene_id)

    def upsert_property_metadata(self, metadata):
        return self._write(scenes.upsert_property_metadata, metadata)

    def get_scene(self, scene_id):
        with self._db() as db:
            return scenes.get_scene(db, self.tour_id, scene_id)

    def get_snapshot(self):
        with self._db() as db:
            with transaction(db, immediate=False):
                return get_scene_engine_snapshot(db, self.manifests, self.tour_id)

    get_scene_engine_snapshot = get_snapshot

    def publish_tour(self, initial_scene_id=None):
        manifest = self._write(lambda db, tour_id: publisher.publish_tour(db, self.manifests, tour_id, initial_scene_id))
        self._record(
            "tour_published",
            {
                "tour_id": self.tour_id,
                "version": manifest["version"],
                "scene_count": len(manifest["scenes"]),
                "hotspot_count": len(manifest["hotspots"]),
            },
        )
        return manifest

    def get_published_manifest(self):
        return publisher.get_published_manifest(self.manifests, self.tour_id)

    def recent_events(self, limit=100):
        return self.analytics.read(limit) if self.analytics is not None else []
