"""Scene repository: scene records, their owned hotspots and tour metadata.

Hotspots are stored as children of their source scene and always read back in
insertion order. Nothing in here knows about manifests.
"""
import json
import logging
import re

from panotour.db import now_iso
from panotour.errors import NotFoundError, ValidationError
from panotour.geometry import safe_float

logger = logging.getLogger(__name__)

SCENE_TYPES = ("interior", "exterior")
PRIVACY_LEVELS = ("public", "private")
MEASUREMENT_UNITS = ("imperial", "metric")
DEFAULT_INITIAL_VIEW = {"yaw": 0.0, "pitch": 0.0, "fov": 90.0}
EQUIRECT_ASPECT = 2.0


def slugify(value):
    return re.sub(r"[^a-z0-9]+", "-", (value or "").strip().lower()).strip("-")


def normalize_scene_type(val):
    val = (val or "").strip().lower() if isinstance(val, str) else ""
    return val if val in SCENE_TYPES else "interior"


def parse_tags(tags):
    if not tags:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    if not isinstance(tags, (list, tuple)):
        return []
    return [str(t).strip() for t in tags if str(t).strip()]


def parse_initial_view(value):
    if not isinstance(value, dict):
        return dict(DEFAULT_INITIAL_VIEW)
    return {k: safe_float(value.get(k), default) for k, default in DEFAULT_INITIAL_VIEW.items()}


def _text(val):
    if val is None:
        return None
    val = str(val).strip()
    return val or None


def asset_path(property_id, scene_id, variant):
    return f"/properties/{property_id}/scenes/{scene_id}/processed/{variant}/{scene_id}.jpg"


def default_property(tour_id, title):
    ts = now_iso()
    return {
        "id": tour_id,
        "title": title,
        "address": "",
        "ownerId": "",
        "ownerName": "",
        "privacy": "private",
        "defaultLanguage": "en",
        "defaultUnits": "imperial",
        "timezone": "UTC",
        "tags": [],
        "createdAt": ts,
        "updatedAt": ts,
    }


def ensure_tour(db, tour_id, title="Untitled Tour"):
    row = db.execute("SELECT * FROM tours WHERE id = ?", (tour_id,)).fetchone()
    if row is not None:
        return row
    ts = now_iso()
    db.execute(
        """
        INSERT OR IGNORE INTO tours (id, title, initial_scene_id, property_json, status, manifest_version, created_at, updated_at)
        VALUES (?, ?, NULL, ?, 'draft', 0, ?, ?)
        """,
        (tour_id, title, json.dumps(default_property(tour_id, title)), ts, ts),
    )
    return db.execute("SELECT * FROM tours WHERE id = ?", (tour_id,)).fetchone()


def serialize_tour(row):
    return {
        "id": row["id"],
        "title": row["title"],
        "initialSceneId": row["initial_scene_id"] or "",
        "property": json.loads(row["property_json"] or "{}"),
        "status": row["status"],
        "manifestVersion": row["manifest_version"],
        "createdAt": row["created_at"],
        "updatedAt": row["updated_at"],
    }


def get_tour(db, tour_id):
    return serialize_tour(ensure_tour(db, tour_id))


def serialize_hotspot(row):
    out = {
        "id": row["id"],
        "sourceSceneId": row["from_scene_id"],
        "targetSceneId": row["to_scene_id"],
        "yaw": row["yaw"],
        "pitch": row["pitch"],
        "x": row["x"],
        "y": row["y"],
        "label": row["label"],
        "createdAt": row["created_at"],
    }
    if row["auto_alignment_yaw"] is not None:
        out["autoAlignmentYaw"] = row["auto_alignment_yaw"]
    if row["auto_alignment_pitch"] is not None:
        out["autoAlignmentPitch"] = row["auto_alignment_pitch"]
    return out


def serialize_scene(row, hotspots=None):
    scene = {
        "id": row["id"],
        "name": row["name"],
        "imageUrl": row["image_url"],
        "thumbnailUrl": row["thumbnail_url"],
        "sceneType": row["scene_type"],
        "floor": row["floor"],
        "orientationHint": row["orientation_hint"] or "",
        "tags": json.loads(row["tags_json"] or "[]"),
        "initialView": {
            "yaw": row["initial_yaw"],
            "pitch": row["initial_pitch"],
            "fov": row["initial_fov"],
        },
        "hotspots": list(hotspots or []),
        "assets": json.loads(row["assets_json"] or "{}"),
        "processing": json.loads(row["processing_json"] or "{}"),
        "orderIndex": row["order_index"],
        "createdAt": row["created_at"],
        "updatedAt": row["updated_at"],
    }
    for key, col in (("description", "description"), ("ambientSound", "ambient_sound")):
        if row[col] is not None:
            scene[key] = row[col]
    if row["width"] is not None and row["height"] is not None:
        scene["width"] = row["width"]
        scene["height"] = row["height"]
    return scene


def find_scene_row(db, tour_id, scene_id):
    row = db.execute("SELECT * FROM scenes WHERE tour_id = ? AND id = ?", (tour_id, scene_id)).fetchone()
    if row is None:
        raise NotFoundError(f"Scene {scene_id} not found")
    return row


def list_scenes(db, tour_id):
    scene_rows = db.execute(
        "SELECT * FROM scenes WHERE tour_id = ? ORDER BY order_index ASC",
        (tour_id,),
    ).fetchall()
    hotspot_rows = db.execute(
        "SELECT * FROM hotspots WHERE tour_id = ? ORDER BY seq ASC",
        (tour_id,),
    ).fetchall()
    grouped = {}
    for h in hotspot_rows:
        grouped.setdefault(h["from_scene_id"], []).append(serialize_hotspot(h))
    return [serialize_scene(r, grouped.get(r["id"], [])) for r in scene_rows]


def get_scene(db, tour_id, scene_id):
    row = find_scene_row(db, tour_id, scene_id)
    hotspot_rows = db.execute(
        "SELECT * FROM hotspots WHERE tour_id = ? AND from_scene_id = ? ORDER BY seq ASC",
        (tour_id, scene_id),
    ).fetchall()
    return serialize_scene(row, [serialize_hotspot(h) for h in hotspot_rows])


def _processing(depth_enabled, width, height):
    warnings = [] if depth_enabled else ["Depth data not provided"]
    if width and height and abs(width / float(height) - EQUIRECT_ASPECT) > 0.05:
        warnings.append(f"Panorama is {width}x{height}; equirectangular images should be 2:1")
    return {"status": "READY", "depthEnabled": depth_enabled, "warnings": warnings}


def _dimension(val):
    if isinstance(val, bool) or not isinstance(val, int):
        return None
    return val if val > 0 else None


def resolve_upload(payload):
    """Validate an upload payload and return (scene_id, fields) ready for storage."""
    if not isinstance(payload, dict):
        raise ValidationError("Scene payload must be an object")
    name = _text(payload.get("name"))
    scene_id = _text(payload.get("id")) or (slugify(name) if name else None)
    if not scene_id:
        raise ValidationError("Scene id or name is required")
    if not name:
        raise ValidationError("Scene name is required")
    image_url = _text(payload.get("imageUrl"))
    if not image_url:
        raise ValidationError("imageUrl is required")
    width = _dimension(payload.get("width"))
    height = _dimension(payload.get("height"))
    fields = {
        "name": name,
        "image_url": image_url,
        "thumbnail_url": _text(payload.get("thumbnailUrl")) or image_url,
        "description": _text(payload.get("description")),
        "ambient_sound": _text(payload.get("ambientSound")),
        "scene_type": normalize_scene_type(payload.get("sceneType")),
        "floor": _text(payload.get("floor")),
        "orientation_hint": _text(payload.get("orientationHint")),
        "tags": parse_tags(payload.get("tags")) if payload.get("tags") is not None else None,
        "initial_view": parse_initial_view(payload.get("initialView")),
        "depth_map_url": _text(payload.get("depthMapUrl")),
        "point_cloud_url": _text(payload.get("pointCloudUrl")),
        "width": width,
        "height": height,
    }
    return scene_id, fields


def upload_scene(db, tour_id, payload):
    """Create or replace a scene. Caller owns the transaction."""
    scene_id, f = resolve_upload(payload)
    tour = ensure_tour(db, tour_id)
    prop = json.loads(tour["property_json"] or "{}")
    property_id = prop.get("id") or tour_id
    ts = now_iso()
    existing = db.execute("SELECT * FROM scenes WHERE tour_id = ? AND id = ?", (tour_id, scene_id)).fetchone()

    base_assets = json.loads(existing["assets_json"] or "{}") if existing is not None else {}
    assets = {
        "raw": f["image_url"],
        "preview": base_assets.get("preview") or asset_path(property_id, scene_id, "preview"),
        "web": base_assets.get("web") or asset_path(property_id, scene_id, "web"),
        "print": base_assets.get("print") or asset_path(property_id, scene_id, "print"),
    }
    depth_map = f["depth_map_url"] or base_assets.get("depthMap")
    point_cloud = f["point_cloud_url"] or base_assets.get("pointCloud")
    if depth_map:
        assets["depthMap"] = depth_map
    if point_cloud:
        assets["pointCloud"] = point_cloud
    processing = _processing(bool(depth_map or point_cloud), f["width"], f["height"])
    view = f["initial_view"]

    if existing is not None:
        logger.warning("Scene %s in tour %s overwritten by a new upload", scene_id, tour_id)
        tags = f["tags"] if f["tags"] is not None else json.loads(existing["tags_json"] or "[]")
        db.execute(
            """
            UPDATE scenes SET name = ?, description = ?, ambient_sound = ?, image_url = ?, thumbnail_url = ?,
                scene_type = ?, floor = ?, orientation_hint = ?, tags_json = ?, initial_yaw = ?, initial_pitch = ?,
                initial_fov = ?, assets_json = ?, processing_json = ?, width = ?, height = ?, updated_at = ?
            WHERE tour_id = ? AND id = ?
            """,
            (
                f["name"], f["description"], f["ambient_sound"], f["image_url"], f["thumbnail_url"],
                f["scene_type"], f["floor"] or existing["floor"], f["orientation_hint"] or existing["orientation_hint"],
                json.dumps(tags), view["yaw"], view["pitch"], view["fov"], json.dumps(assets), json.dumps(processing),
                f["width"], f["height"], ts, tour_id, scene_id,
            ),
        )
    else:
        order_row = db.execute(
            "SELECT COALESCE(MAX(order_index), -1) + 1 AS next_index FROM scenes WHERE tour_id = ?",
            (tour_id,),
        ).fetchone()
        db.execute(
            """
            INSERT INTO scenes (tour_id, id, name, description, ambient_sound, image_url, thumbnail_url, scene_type,
                floor, orientation_hint, tags_json, initial_yaw, initial_pitch, initial_fov, assets_json,
                processing_json, width, height, order_index, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                tour_id, scene_id, f["name"], f["description"], f["ambient_sound"], f["image_url"], f["thumbnail_url"],
                f["scene_type"], f["floor"] or "1", f["orientation_hint"] or "orientation not set",
                json.dumps(f["tags"] or []), view["yaw"], view["pitch"], view["fov"], json.dumps(assets),
                json.dumps(processing), f["width"], f["height"], int(order_row["next_index"]), ts, ts,
            ),
        )
        if not tour["initial_scene_id"]:
            db.execute("UPDATE tours SET initial_scene_id = ? WHERE id = ?", (scene_id, tour_id))
        logger.info("Scene %s added to tour %s", scene_id, tour_id)
    db.execute("UPDATE tours SET updated_at = ? WHERE id = ?", (ts, tour_id))
    return get_scene(db, tour_id, scene_id)


def delete_scene(db, tour_id, scene_id):
    find_scene_row(db, tour_id, scene_id)
    db.execute(
        "DELETE FROM hotspots WHERE tour_id = ? AND (from_scene_id = ? OR to_scene_id = ?)",
        (tour_id, scene_id, scene_id),
    )
    db.execute("DELETE FROM scenes WHERE tour_id = ? AND id = ?", (tour_id, scene_id))
    tour = ensure_tour(db, tour_id)
    initial = tour["initial_scene_id"]
    if initial == scene_id:
        first = db.execute(
            "SELECT id FROM scenes WHERE tour_id = ? ORDER BY order_index ASC LIMIT 1",
            (tour_id,),
        ).fetchone()
        initial = first["id"] if first is not None else None
    db.execute(
        "UPDATE tours SET initial_scene_id = ?, updated_at = ? WHERE id = ?",
        (initial, now_iso(), tour_id),
    )
    logger.info("Scene %s removed from tour %s", scene_id, tour_id)


def set_initial_scene(db, tour_id, scene_id):
    ensure_tour(db, tour_id)
    find_scene_row(db, tour_id, scene_id)
    db.execute(
        "UPDATE tours SET initial_scene_id = ?, updated_at = ? WHERE id = ?",
        (scene_id, now_iso(), tour_id),
    )
    return get_tour(db, tour_id)


def upsert_property_metadata(db, tour_id, metadata):
    if not isinstance(metadata, dict):
        raise ValidationError("Property metadata must be an object")
    prop_id = _text(metadata.get("id"))
    title = _text(metadata.get("title"))
    if not prop_id or not title:
        raise ValidationError("Property id and title are required")
    privacy = metadata.get("privacy") or "private"
    if privacy not in PRIVACY_LEVELS:
        raise ValidationError(f"privacy must be one of {', '.join(PRIVACY_LEVELS)}")
    units = metadata.get("defaultUnits") or "imperial"
    if units not in MEASUREMENT_UNITS:
        raise ValidationError(f"defaultUnits must be one of {', '.join(MEASUREMENT_UNITS)}")

    tour = ensure_tour(db, tour_id)
    current = json.loads(tour["property_json"] or "{}")
    ts = now_iso()
    created_at = current.get("createdAt") if current.get("id") == prop_id else None
    prop = {
        "id": prop_id,
        "title": title,
        "address": _text(metadata.get("address")) or "",
        "ownerId": _text(metadata.get("ownerId")) or "",
        "ownerName": _text(metadata.get("ownerName")) or "",
        "privacy": privacy,
        "defaultLanguage": _text(metadata.get("defaultLanguage")) or "en",
        "defaultUnits": units,
        "timezone": _text(metadata.get("timezone")) or "UTC",
        "tags": parse_tags(metadata.get("tags")),
        "createdAt": created_at or _text(metadata.get("createdAt")) or ts,
        "updatedAt": ts,
    }
    owner_email = _text(metadata.get("ownerEmail"))
    if owner_email:
        prop["ownerEmail"] = owner_email
    contact = metadata.get("primaryContact")
    if isinstance(contact, dict) and contact.get("name"):
        prop["primaryContact"] = {k: str(v) for k, v in contact.items() if k in ("name", "email", "phone") and v}
    db.execute(
        "UPDATE tours SET title = ?, property_json = ?, updated_at = ? WHERE id = ?",
        (title, json.dumps(prop), ts, tour_id),
    )
    return get_tour(db, tour_id)
