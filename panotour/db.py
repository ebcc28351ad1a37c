import contextlib
import datetime
import os
import sqlite3

SCHEMA = """
PRAGMA foreign_keys = ON;
CREATE TABLE IF NOT EXISTS tours (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    initial_scene_id TEXT,
    property_json TEXT NOT NULL DEFAULT '{}',
    status TEXT NOT NULL DEFAULT 'draft' CHECK(status IN ('draft','published')),
    manifest_version INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS scenes (
    tour_id TEXT NOT NULL,
    id TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    ambient_sound TEXT,
    image_url TEXT NOT NULL,
    thumbnail_url TEXT NOT NULL,
    scene_type TEXT NOT NULL DEFAULT 'interior',
    floor TEXT NOT NULL DEFAULT '1',
    orientation_hint TEXT,
    tags_json TEXT NOT NULL DEFAULT '[]',
    initial_yaw REAL NOT NULL DEFAULT 0,
    initial_pitch REAL NOT NULL DEFAULT 0,
    initial_fov REAL NOT NULL DEFAULT 90,
    assets_json TEXT NOT NULL DEFAULT '{}',
    processing_json TEXT NOT NULL DEFAULT '{}',
    order_index INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (tour_id, id),
    FOREIGN KEY (tour_id) REFERENCES tours(id) ON DELETE CASCADE
);
CREATE TABLE IF NOT EXISTS hotspots (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    tour_id TEXT NOT NULL,
    from_scene_id TEXT NOT NULL,
    to_scene_id TEXT NOT NULL,
    yaw REAL NOT NULL,
    pitch REAL NOT NULL,
    x REAL NOT NULL,
    y REAL NOT NULL,
    label TEXT NOT NULL,
    auto_alignment_yaw REAL,
    auto_alignment_pitch REAL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (tour_id, from_scene_id) REFERENCES scenes(tour_id, id) ON DELETE CASCADE,
    FOREIGN KEY (tour_id, to_scene_id) REFERENCES scenes(tour_id, id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_scenes_tour ON scenes(tour_id, order_index);
CREATE INDEX IF NOT EXISTS idx_hotspots_scene ON hotspots(tour_id, from_scene_id);
CREATE INDEX IF NOT EXISTS idx_hotspots_target ON hotspots(tour_id, to_scene_id);
"""


def now_iso():
    return datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0, tzinfo=None).isoformat() + "Z"


def connect(db_path):
    # Autocommit mode: writers open their own BEGIN IMMEDIATE via transaction().
    db = sqlite3.connect(db_path, timeout=10.0, isolation_level=None)
    db.row_factory = sqlite3.Row
    db.execute("PRAGMA foreign_keys = ON")
    return db


@contextlib.contextmanager
def transaction(db, immediate=True):
    db.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
    try:
        yield db
    except BaseException:
        db.execute("ROLLBACK")
        raise
    db.execute("COMMIT")


def init_db(db_path):
    os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
    db = sqlite3.connect(db_path)
    try:
        db.executescript(SCHEMA)
        # Databases created before uploaded-file probing lack the size columns.
        scene_cols = [r[1] for r in db.execute("PRAGMA table_info(scenes)").fetchall()]
        if "width" not in scene_cols:
            db.execute("ALTER TABLE scenes ADD COLUMN width INTEGER")
        if "height" not in scene_cols:
            db.execute("ALTER TABLE scenes ADD COLUMN height INTEGER")
        db.commit()
    finally:
        db.close()
