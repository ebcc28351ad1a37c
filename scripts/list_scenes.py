#!/usr/bin/env python3
import argparse
import csv
import json
import sqlite3
import sys
from pathlib import Path


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="List scenes and hotspots from a panotour database"
    )
    parser.add_argument(
        "--db",
        default="data/panotour.db",
        help="Path to SQLite DB (default: data/panotour.db)",
    )
    parser.add_argument(
        "--tour",
        default="default",
        help="Tour id (default: default)",
    )
    parser.add_argument(
        "--csv",
        action="store_true",
        help="Print CSV instead of table",
    )
    parser.add_argument(
        "--hotspots",
        action="store_true",
        help="List hotspots instead of scenes",
    )
    parser.add_argument(
        "--manifest",
        metavar="FOLDER",
        help="Summarise the live manifest stored in FOLDER",
    )
    return parser.parse_args(argv)


SCENE_QUERY = """
    SELECT
        s.id,
        s.name,
        s.scene_type,
        s.floor,
        (SELECT COUNT(*) FROM hotspots h WHERE h.tour_id = s.tour_id AND h.from_scene_id = s.id) AS hotspot_count,
        s.created_at
    FROM scenes s
    WHERE s.tour_id = ?
    ORDER BY s.order_index ASC
"""

HOTSPOT_QUERY = """
    SELECT id, from_scene_id, to_scene_id, yaw, pitch, label, auto_alignment_yaw
    FROM hotspots
    WHERE tour_id = ?
    ORDER BY seq ASC
"""

SCENE_COLUMNS = ["id", "name", "scene_type", "floor", "hotspot_count", "created_at"]
HOTSPOT_COLUMNS = ["id", "from_scene_id", "to_scene_id", "yaw", "pitch", "label", "auto_alignment_yaw"]


def fmt(value):
    if value is None:
        return ""
    if isinstance(value, float):
        return f"{value:.1f}"
    return str(value)


def print_table(rows, headers, empty_message):
    if not rows:
        print(empty_message)
        return
    widths = {h: len(h) for h in headers}
    mapped_rows = []
    for r in rows:
        mapped = {h: fmt(r[h]) for h in headers}
        mapped_rows.append(mapped)
        for h in headers:
            widths[h] = max(widths[h], len(mapped[h]))

    print(" | ".join(h.ljust(widths[h]) for h in headers))
    print("-+-".join("-" * widths[h] for h in headers))
    for r in mapped_rows:
        print(" | ".join(r[h].ljust(widths[h]) for h in headers))
    print(f"\nTotal: {len(mapped_rows)}")


def print_csv(rows, headers):
    writer = csv.writer(sys.stdout)
    writer.writerow(headers)
    for r in rows:
        writer.writerow([r[h] for h in headers])


def print_manifest_summary(folder, tour_id):
    path = Path(folder).expanduser() / f"{tour_id}.json"
    if not path.exists():
        print(f"No published manifest for tour {tour_id}")
        return 1
    with open(path, "r", encoding="utf-8") as f:
        manifest = json.load(f)
    print(f"Tour:          {manifest.get('tourId')} (v{manifest.get('version')})")
    print(f"Published at:  {manifest.get('publishedAt')}")
    print(f"Initial scene: {manifest.get('initialSceneId')}")
    for scene_id, hotspot_ids in (manifest.get("navigationGraph") or {}).items():
        print(f"  {scene_id}: {len(hotspot_ids)} hotspot(s)")
    return 0


def main(argv=None):
    args = parse_args(argv)
    if args.manifest:
        return print_manifest_summary(args.manifest, args.tour)
    db_path = Path(args.db).expanduser().resolve()
    if not db_path.exists():
        print(f"DB not found: {db_path}", file=sys.stderr)
        return 1
    con = sqlite3.connect(str(db_path))
    con.row_factory = sqlite3.Row
    try:
        if args.hotspots:
            rows = con.execute(HOTSPOT_QUERY, (args.tour,)).fetchall()
            headers, empty = HOTSPOT_COLUMNS, "No hotspots found."
        else:
            rows = con.execute(SCENE_QUERY, (args.tour,)).fetchall()
            headers, empty = SCENE_COLUMNS, "No scenes found."
        if args.csv:
            print_csv(rows, headers)
        else:
            print_table(rows, headers, empty)
        return 0
    finally:
        con.close()


if __name__ == "__main__":
    raise SystemExit(main())
