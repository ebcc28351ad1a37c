"""Live manifest slot: one JSON file per tour, replaced atomically."""
import json
import os
import re
import tempfile

from panotour.errors import ValidationError

_SAFE_ID = re.compile(r"^[A-Za-z0-9._-]+$")


class ManifestStore:
    def __init__(self, folder):
        self.folder = folder

    def path_for(self, tour_id):
        if not tour_id or not _SAFE_ID.match(tour_id) or tour_id in (".", ".."):
            raise ValidationError(f"Invalid tour id: {tour_id!r}")
        return os.path.join(self.folder, f"{tour_id}.json")

    def load(self, tour_id):
        try:
            with open(self.path_for(tour_id), "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None

    def save(self, tour_id, manifest):
        # Write beside the target and swap it in, so readers see the old file or the new one.
        path = self.path_for(tour_id)
        os.makedirs(self.folder, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=f".{tour_id}.", suffix=".tmp", dir=self.folder)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(manifest, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        return path
