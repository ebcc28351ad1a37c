import os

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DATA_DIR = os.getenv("PANOTOUR_DATA_DIR") or os.path.join(BASE_DIR, "..", "data")

DEFAULT_TOUR_ID = os.getenv("PANOTOUR_TOUR_ID") or "default"
ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}
MAX_CONTENT_LENGTH = 1024 * 1024 * 1024


def default_config(data_dir=None):
    """Paths and limits used by the app factory; everything hangs off DATA_DIR."""
    data_dir = data_dir or DATA_DIR
    return {
        "DATA_DIR": data_dir,
        "DB_PATH": os.path.join(data_dir, "panotour.db"),
        "MANIFEST_FOLDER": os.path.join(data_dir, "manifests"),
        "UPLOAD_FOLDER": os.path.join(data_dir, "raw_uploads"),
        "ANALYTICS_LOG": os.path.join(data_dir, "analytics-events.jsonl"),
        "LOG_FILE": os.getenv("PANOTOUR_LOG_FILE") or os.path.join(BASE_DIR, "panotour.log"),
        "TOUR_ID": DEFAULT_TOUR_ID,
        "MAX_CONTENT_LENGTH": MAX_CONTENT_LENGTH,
    }
