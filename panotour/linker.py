"""Hotspot linker: directional navigation edges between scenes.

Linking is additive. Calling link_scenes twice with the same input produces two
hotspots with different ids, so operators can place parallel hotspots.
"""
import logging
import uuid

from panotour.db import now_iso
from panotour.errors import NotFoundError, ValidationError
from panotour.geometry import (
    clamp_pitch,
    normalize_yaw,
    opposite_yaw,
    percentage_to_yaw_pitch,
    safe_float,
    yaw_pitch_to_percentage,
)
from panotour.scenes import ensure_tour, find_scene_row, serialize_hotspot

logger = logging.getLogger(__name__)


def _label(val):
    return str(val).strip() if val is not None else ""


def resolve_placement(payload):
    """yaw/pitch from the payload; falls back to the x/y overlay, then to 0."""
    yaw, pitch = payload.get("yaw"), payload.get("pitch")
    if yaw is None and pitch is None and payload.get("x") is not None and payload.get("y") is not None:
        return percentage_to_yaw_pitch(safe_float(payload.get("x"), 50.0), safe_float(payload.get("y"), 50.0))
    return normalize_yaw(safe_float(yaw)), clamp_pitch(safe_float(pitch))


def insert_hotspot(db, tour_id, source_id, target_id, yaw, pitch, label, align_yaw=None, align_pitch=None):
    x, y = yaw_pitch_to_percentage(yaw, pitch)
    hid = str(uuid.uuid4())
    ts = now_iso()
    db.execute(
        """
        INSERT INTO hotspots (id, tour_id, from_scene_id, to_scene_id, yaw, pitch, x, y, label,
            auto_alignment_yaw, auto_alignment_pitch, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (hid, tour_id, source_id, target_id, yaw, pitch, x, y, label, align_yaw, align_pitch, ts, ts),
    )
    db.execute(
        "UPDATE scenes SET updated_at = ? WHERE tour_id = ? AND id = ?",
        (ts, tour_id, source_id),
    )
    return hid


def find_hotspot_row(db, tour_id, hotspot_id):
    row = db.execute(
        "SELECT * FROM hotspots WHERE tour_id = ? AND id = ?",
        (tour_id, hotspot_id),
    ).fetchone()
    if row is None:
        raise NotFoundError(f"Hotspot {hotspot_id} not found")
    return row


def link_scenes(db, tour_id, payload):
    """Create a hotspot from source to target, optionally with its reciprocal.

    Returns the source-side hotspot; the reciprocal is stored but not returned.
    Caller owns the transaction, so both edges land together or not at all.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Link payload must be an object")
    source_id = _label(payload.get("sourceSceneId"))
    target_id = _label(payload.get("targetSceneId"))
    if not source_id or not target_id:
        raise ValidationError("sourceSceneId and targetSceneId are required")
    label = _label(payload.get("label"))
    if not label:
        raise ValidationError("Hotspot label is required")

    ensure_tour(db, tour_id)
    source = find_scene_row(db, tour_id, source_id)
    target = find_scene_row(db, tour_id, target_id)
    if source_id == target_id:
        logger.warning("Hotspot in scene %s links the scene to itself", source_id)

    yaw, pitch = resolve_placement(payload)
    auto_align = bool(payload.get("autoAlign"))
    align_yaw = target["initial_yaw"] if auto_align else None
    align_pitch = target["initial_pitch"] if auto_align else None
    hid = insert_hotspot(db, tour_id, source_id, target_id, yaw, pitch, label, align_yaw, align_pitch)

    if payload.get("bidirectional"):
        reverse_yaw = payload.get("reverseYaw")
        reverse_pitch = payload.get("reversePitch")
        back_yaw = normalize_yaw(safe_float(reverse_yaw)) if reverse_yaw is not None else normalize_yaw(yaw + 180.0)
        back_pitch = clamp_pitch(safe_float(reverse_pitch)) if reverse_pitch is not None else clamp_pitch(-pitch)
        back_label = _label(payload.get("reverseLabel")) or f"Back to {source['name']}"
        insert_hotspot(
            db,
            tour_id,
            target_id,
            source_id,
            back_yaw,
            back_pitch,
            back_label,
            opposite_yaw(yaw) if auto_align else None,
            clamp_pitch(-pitch) if auto_align else None,
        )

    logger.info("Linked %s -> %s in tour %s (bidirectional=%s)", source_id, target_id, tour_id, bool(payload.get("bidirectional")))
    return serialize_hotspot(find_hotspot_row(db, tour_id, hid))


def update_hotspot(db, tour_id, hotspot_id, changes):
    row = find_hotspot_row(db, tour_id, hotspot_id)
    changes = changes if isinstance(changes, dict) else {}
    yaw = normalize_yaw(safe_float(changes.get("yaw"), row["yaw"]))
    pitch = clamp_pitch(safe_float(changes.get("pitch"), row["pitch"]))
    label = _label(changes["label"]) if "label" in changes else row["label"]
    if not label:
        raise ValidationError("Hotspot label is required")
    align_yaw = row["auto_alignment_yaw"]
    align_pitch = row["auto_alignment_pitch"]
    if "autoAlignmentYaw" in changes:
        align_yaw = None if changes["autoAlignmentYaw"] is None else safe_float(changes["autoAlignmentYaw"]) % 360.0
    if "autoAlignmentPitch" in changes:
        align_pitch = None if changes["autoAlignmentPitch"] is None else clamp_pitch(safe_float(changes["autoAlignmentPitch"]))
    x, y = yaw_pitch_to_percentage(yaw, pitch)
    db.execute(
        """
        UPDATE hotspots SET yaw = ?, pitch = ?, x = ?, y = ?, label = ?, auto_alignment_yaw = ?,
            auto_alignment_pitch = ?, updated_at = ?
        WHERE tour_id = ? AND id = ?
        """,
        (yaw, pitch, x, y, label, align_yaw, align_pitch, now_iso(), tour_id, hotspot_id),
    )
    return serialize_hotspot(find_hotspot_row(db, tour_id, hotspot_id))


def delete_hotspot(db, tour_id, hotspot_id):
    find_hotspot_row(db, tour_id, hotspot_id)
    db.execute("DELETE FROM hotspots WHERE tour_id = ? AND id = ?", (tour_id, hotspot_id))
