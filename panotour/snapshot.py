from panotour.scenes import get_tour, list_scenes


def get_scene_engine_snapshot(db, manifests, tour_id):
    """Current editable graph plus the live manifest, built fresh on every call."""
    tour = get_tour(db, tour_id)
    scenes = list_scenes(db, tour_id)
    initial = tour["initialSceneId"]
    if initial not in {s["id"] for s in scenes}:
        initial = scenes[0]["id"] if scenes else ""
    return {
        "title": tour["title"],
        "initialSceneId": initial,
        "property": tour["property"],
        "status": tour["status"],
        "scenes": scenes,
        "manifest": manifests.load(tour_id),
    }
