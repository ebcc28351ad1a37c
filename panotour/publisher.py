"""Manifest publisher: freezes the editable scene graph into the live tour manifest.

The manifest is rebuilt from scratch on every publish and replaces the previous
one as a whole. Edits made after publishing never reach viewers until the next
publish.
"""
import copy
import logging

from panotour.db import now_iso
from panotour.errors import EmptyGraphError, ValidationError
from panotour.scenes import ensure_tour, list_scenes, serialize_tour

logger = logging.getLogger(__name__)

ANALYTICS_HOOKS = [
    "scene_uploaded",
    "scene_processed",
    "hotspot_created",
    "tour_published",
    "transition_started",
    "transition_completed",
]


def compile_navigation_graph(scenes):
    # Every scene gets a key, even without outbound hotspots.
    return {scene["id"]: [h["id"] for h in scene["hotspots"]] for scene in scenes}


def choose_initial_scene(scenes, requested=None, configured=None):
    scene_ids = [s["id"] for s in scenes]
    if requested:
        if requested not in scene_ids:
            raise ValidationError(f"Initial scene {requested} does not exist")
        return requested
    if configured and configured in scene_ids:
        return configured
    return scene_ids[0]


def validate_graph(scenes, initial_scene_id):
    if not scenes:
        raise EmptyGraphError("No scenes available to publish")
    known = {s["id"] for s in scenes}
    if initial_scene_id not in known:
        raise ValidationError(f"Initial scene {initial_scene_id} does not exist")
    for scene in scenes:
        for hotspot in scene["hotspots"]:
            if hotspot["targetSceneId"] not in known:
                raise ValidationError(
                    f"Hotspot {hotspot['id']} in scene {scene['id']} targets missing scene {hotspot['targetSceneId']}"
                )


def accuracy_score(scene):
    return "high" if (scene.get("processing") or {}).get("depthEnabled") else "medium"


def access_controls(prop):
    privacy = prop.get("privacy") or "private"
    controls = {"privacy": privacy}
    if privacy == "private":
        # Share tokens are issued outside the engine; a private tour starts with none.
        controls["tokens"] = []
    return controls


def build_manifest(tour, scenes, initial_scene_id, version, published_at):
    scenes = copy.deepcopy(scenes)
    prop = dict(tour["property"], updatedAt=published_at)
    hotspots = [dict(h, sceneId=scene["id"]) for scene in scenes for h in scene["hotspots"]]
    return {
        "id": f"{tour['id']}-tour",
        "tourId": tour["id"],
        "version": version,
        "title": tour["title"],
        "property": prop,
        "initialSceneId": initial_scene_id,
        "createdAt": prop.get("createdAt") or tour["createdAt"],
        "publishedAt": published_at,
        "scenes": scenes,
        "hotspots": hotspots,
        "navigationGraph": compile_navigation_graph(scenes),
        "accuracyScores": {scene["id"]: accuracy_score(scene) for scene in scenes},
        "accessControls": access_controls(prop),
        "analyticsHooks": {"events": list(ANALYTICS_HOOKS)},
    }


def publish_tour(db, manifests, tour_id, initial_scene_id=None):
    """Compile and store the live manifest for `tour_id`.

    Must run inside a write transaction: the graph read, the version bump and
    the manifest write form one critical section. The manifest file is
    replaced before the transaction commits, so a failed write leaves both the
    old manifest and the old version in place. A failed commit after a
    successful write leaves the live file one version ahead of the tour row;
    the next version is therefore counted from whichever of the two is higher.
    """
    tour = serialize_tour(ensure_tour(db, tour_id))
    scenes = list_scenes(db, tour_id)
    if not scenes:
        raise EmptyGraphError("No scenes available to publish")
    chosen = choose_initial_scene(scenes, initial_scene_id, tour["initialSceneId"])
    validate_graph(scenes, chosen)

    live = manifests.load(tour_id)
    version = max(int(tour["manifestVersion"]), int(live["version"]) if live else 0) + 1
    published_at = now_iso()
    manifest = build_manifest(tour, scenes, chosen, version, published_at)
    db.execute(
        "UPDATE tours SET status = 'published', manifest_version = ?, updated_at = ? WHERE id = ?",
        (version, published_at, tour_id),
    )
    manifests.save(tour_id, manifest)
    logger.info(
        "Published tour %s v%d (%d scenes, %d hotspots)", tour_id, version, len(scenes), len(manifest["hotspots"])
    )
    return manifest


def get_published_manifest(manifests, tour_id):
    return manifests.load(tour_id)
