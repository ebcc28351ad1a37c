import json
import logging
import os

from flask import Flask, current_app, jsonify, request, send_from_directory
from flask_cors import CORS
from PIL import Image, UnidentifiedImageError
from werkzeug.exceptions import HTTPException
from werkzeug.utils import secure_filename

from panotour.config import ALLOWED_EXTENSIONS, default_config
from panotour.engine import SceneEngine
from panotour.errors import SceneEngineError, ValidationError
from panotour.scenes import slugify

LOG_FORMAT = "%(asctime)s %(levelname)s: %(message)s"


def allowed_file(filename):
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


def setup_logging(app):
    log_file = app.config.get("LOG_FILE")
    if not log_file:
        return
    pkg_logger = logging.getLogger("panotour")
    pkg_logger.setLevel(logging.DEBUG)
    app.logger.setLevel(logging.DEBUG)
    known = {getattr(h, "baseFilename", None) for h in pkg_logger.handlers}
    if os.path.abspath(log_file) in known:
        return
    handler = logging.FileHandler(log_file)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    pkg_logger.addHandler(handler)
    # app.logger is "panotour.app" when imported, "__main__" when run directly.
    if not app.logger.name.startswith("panotour"):
        app.logger.addHandler(handler)


def get_engine():
    engine = current_app.extensions["panotour"]
    tour_id = (request.args.get("tour") or "").strip()
    return engine.for_tour(tour_id) if tour_id else engine


def json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def probe_image(path):
    with Image.open(path) as img:
        return img.width, img.height


def upload_payload_from_form(engine):
    """Save a multipart panorama upload and build the scene payload pointing at it."""
    file = request.files.get("file")
    data = request.form.to_dict()
    if file is None or not file.filename:
        raise ValidationError("No file uploaded")
    if not allowed_file(file.filename):
        raise ValidationError(f"Unsupported file type; allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}")
    scene_id = (data.get("id") or "").strip() or slugify(data.get("name"))
    if not scene_id:
        raise ValidationError("Scene id or name is required")
    if not (data.get("name") or "").strip():
        raise ValidationError("Scene name is required")

    rel_dir = os.path.join(secure_filename(engine.tour_id), secure_filename(scene_id))
    raw_dir = os.path.join(current_app.config["UPLOAD_FOLDER"], rel_dir)
    os.makedirs(raw_dir, exist_ok=True)
    fn = secure_filename(file.filename)
    path = os.path.join(raw_dir, fn)
    file.save(path)
    try:
        width, height = probe_image(path)
    except (UnidentifiedImageError, OSError):
        os.remove(path)
        raise ValidationError("Uploaded file is not a readable image")

    if data.get("initialView"):
        try:
            data["initialView"] = json.loads(data["initialView"])
        except ValueError:
            raise ValidationError("initialView must be a JSON object")
    elif any(k in data for k in ("yaw", "pitch", "fov")):
        data["initialView"] = {k: data.get(k) for k in ("yaw", "pitch", "fov")}
    data["imageUrl"] = "/uploads/" + "/".join([rel_dir.replace(os.sep, "/"), fn])
    data["width"] = width
    data["height"] = height
    data["id"] = scene_id
    return data


def register_routes(app):
    @app.errorhandler(SceneEngineError)
    def handle_engine_error(e):
        app.logger.info(f"{type(e).__name__}: {e.message}")
        return jsonify(e.to_dict()), e.status

    @app.errorhandler(413)
    def request_entity_too_large(_error):
        return jsonify({"error": "File too large", "code": "too_large"}), 413

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        if isinstance(e, HTTPException):
            return e
        app.logger.error(f"Unhandled error on {request.method} {request.path}: {e}", exc_info=True)
        return jsonify({"error": "Internal server error", "code": "internal_error"}), 500

    @app.route("/healthz")
    def healthz():
        return jsonify({"status": "ok"}), 200

    @app.route("/api/scenes/upload", methods=["POST"])
    def scenes_upload():
        engine = get_engine()
        if request.files:
            payload = upload_payload_from_form(engine)
        else:
            payload = json_body()
        scene = engine.upload_scene(payload)
        return jsonify({"scene": scene}), 201

    @app.route("/api/scenes/link", methods=["POST"])
    def scenes_link():
        data = json_body()
        if not data.get("sourceSceneId") or not data.get("targetSceneId"):
            return jsonify({"error": "sourceSceneId and targetSceneId are required", "code": "validation_error"}), 400
        if not data.get("label"):
            return jsonify({"error": "Hotspot label is required", "code": "validation_error"}), 400
        hotspot = get_engine().link_scenes(data)
        return jsonify({"hotspot": hotspot}), 200

    @app.route("/api/scenes/list", methods=["GET"])
    def scenes_list():
        return jsonify(get_engine().get_snapshot()), 200

    @app.route("/api/scenes/<scene_id>", methods=["GET"])
    def scenes_get(scene_id):
        return jsonify({"scene": get_engine().get_scene(scene_id)}), 200

    @app.route("/api/scenes/<scene_id>", methods=["DELETE"])
    def scenes_delete(scene_id):
        get_engine().delete_scene(scene_id)
        return jsonify({"message": "Scene deleted"}), 200

    @app.route("/api/hotspots/<hotspot_id>", methods=["PATCH"])
    def hotspots_patch(hotspot_id):
        hotspot = get_engine().update_hotspot(hotspot_id, json_body())
        return jsonify({"hotspot": hotspot}), 200

    @app.route("/api/hotspots/<hotspot_id>", methods=["DELETE"])
    def hotspots_delete(hotspot_id):
        get_engine().delete_hotspot(hotspot_id)
        return jsonify({"message": "Hotspot deleted"}), 200

    @app.route("/api/tour/initial-scene", methods=["POST"])
    def tour_initial_scene():
        scene_id = json_body().get("initialSceneId")
        if not scene_id:
            return jsonify({"error": "initialSceneId is required", "code": "validation_error"}), 400
        return jsonify({"tour": get_engine().set_initial_scene(scene_id)}), 200

    @app.route("/api/tour/property", methods=["PUT"])
    def tour_property():
        return jsonify({"tour": get_engine().upsert_property_metadata(json_body())}), 200

    @app.route("/api/tour/publish", methods=["POST"])
    def tour_publish():
        manifest = get_engine().publish_tour(json_body().get("initialSceneId") or None)
        return jsonify({"manifest": manifest}), 200

    @app.route("/api/tour/publish", methods=["GET"])
    def tour_manifest():
        return jsonify({"manifest": get_engine().get_published_manifest()}), 200

    @app.route("/api/analytics/events", methods=["GET"])
    def analytics_events():
        limit = request.args.get("limit", type=int) or 100
        return jsonify({"events": get_engine().recent_events(limit)}), 200

    @app.route("/uploads/<path:filename>")
    def serve_upload(filename):
        resp = send_from_directory(app.config["UPLOAD_FOLDER"], filename)
        # Upload paths are stable per scene, but a re-upload may reuse the name.
        resp.headers["Cache-Control"] = "no-cache"
        return resp


def create_app(overrides=None):
    app = Flask(__name__)
    CORS(app)
    config = default_config((overrides or {}).get("DATA_DIR"))
    config.update(overrides or {})
    app.config.update(config)
    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)
    os.makedirs(app.config["MANIFEST_FOLDER"], exist_ok=True)
    setup_logging(app)
    app.extensions["panotour"] = SceneEngine.from_config(app.config)
    register_routes(app)
    return app


if __name__ == "__main__":
    create_app().run(debug=True, host="0.0.0.0", port=5000)
