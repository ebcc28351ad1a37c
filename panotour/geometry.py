"""Yaw/pitch helpers shared by the linker and the scene repository.

Yaw is expressed in degrees with 0 facing the centre of the equirectangular
image; placement yaws are kept in (-180, 180]. Pitch is clamped to [-90, 90].
The editor overlay uses x/y percentages of the image (0..100).
"""
import math


def safe_float(val, default=0.0):
    if isinstance(val, bool):
        return default
    try:
        num = float(val)
    except (TypeError, ValueError, OverflowError):
        return default
    return num if math.isfinite(num) else default


def clamp(value, lo, hi):
    return min(max(value, lo), hi)


def normalize_yaw(yaw):
    wrapped = yaw % 360.0
    return wrapped - 360.0 if wrapped > 180.0 else wrapped


def clamp_pitch(pitch):
    return clamp(pitch, -90.0, 90.0)


def opposite_yaw(yaw):
    """Bearing facing back along `yaw`, in [0, 360)."""
    return (yaw + 180.0) % 360.0


def percentage_to_yaw_pitch(x, y):
    x = clamp(x, 0.0, 100.0)
    y = clamp(y, 0.0, 100.0)
    yaw = normalize_yaw((x / 100.0) * 360.0 - 180.0)
    pitch = clamp_pitch(90.0 - (y / 100.0) * 180.0)
    return yaw, pitch


def yaw_pitch_to_percentage(yaw, pitch):
    yaw = normalize_yaw(yaw)
    pitch = clamp_pitch(pitch)
    x = ((yaw + 180.0) / 360.0) * 100.0
    y = ((90.0 - pitch) / 180.0) * 100.0
    return round(x, 1), round(y, 1)
