from __future__ import annotations

import logging
from dataclasses import fields

from flask import Flask, jsonify, request

from .config import configure_logging
from .errors import CommitFailure, EncodeFailure, LoadFailure
from .infrastructure.api import StudioApiClient
from .infrastructure.network import FETCHER
from .infrastructure.responses import send_png
from .processing.geometry import CropRotate
from .processing.overlay import element_from_dict, number, vector
from .processing.paint import export_mask
from .processing.source import RasterSource
from .session import EditSession, SessionRegistry

APP_VERSION = "1.0.0"

log = logging.getLogger(__name__)


def _payload() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValueError("Expected a JSON object")
    return payload


def _point(value, name: str):
    try:
        x, y = value
        return float(x), float(y)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an [x, y] pair") from None


def _element_patch(element, payload: dict) -> dict:
    allowed = {f.name for f in fields(element)} - {"id"}
    patch = {}
    for key, value in payload.items():
        if key not in allowed:
            raise ValueError(f"{element.type} elements have no field {key!r}")
        if key in ("pos", "size"):
            patch[key] = vector(value, key)
        elif key in ("rotation", "font_size"):
            patch[key] = number(value, key)
        else:
            patch[key] = str(value)
    return patch


def _crop_rotate(options) -> CropRotate:
    options = options or {}
    if not isinstance(options, dict):
        raise ValueError("crop_rotate must be an object")
    try:
        box = tuple(float(v) for v in options.get("crop", (0.0, 0.0, 1.0, 1.0)))
        rotation = int(options.get("rotation", 0))
    except (TypeError, ValueError):
        raise ValueError("crop must be [x, y, width, height] and rotation an integer") from None
    if len(box) != 4:
        raise ValueError("crop must be [x, y, width, height]")
    return CropRotate(rotation=rotation, crop=box)


def default_registry() -> SessionRegistry:
    api = StudioApiClient()
    source = RasterSource(fetcher=FETCHER)
    return SessionRegistry(lambda item_id, ref: EditSession(item_id, ref, api, raster_source=source))


def create_app(registry: SessionRegistry | None = None) -> Flask:
    configure_logging()
    app = Flask(__name__)
    sessions = registry if registry is not None else default_registry()

    @app.errorhandler(LoadFailure)
    def load_failed(exc):
        log.warning("Load failed: %s", exc)
        return jsonify(error=str(exc)), 502

    @app.errorhandler(EncodeFailure)
    def encode_failed(exc):
        log.error("Encode failed: %s", exc)
        return jsonify(error=str(exc)), 500

    @app.errorhandler(CommitFailure)
    def commit_failed(exc):
        return jsonify(error=str(exc)), 502

    @app.errorhandler(KeyError)
    def not_found(exc):
        return jsonify(error=f"Unknown id: {exc.args[0] if exc.args else ''}"), 404

    @app.errorhandler(ValueError)
    def bad_request(exc):
        return jsonify(error=str(exc)), 400

    @app.route("/health")
    def health():
        return jsonify(ok=True, version=APP_VERSION, sessions=len(sessions))

    @app.route("/sessions", methods=["POST"])
    def open_session():
        payload = _payload()
        item_id = payload.get("item_id")
        source_url = payload.get("source_url")
        if not item_id or not source_url:
            raise ValueError("item_id and source_url are required")
        session = sessions.open(str(item_id), str(source_url))
        return jsonify(session.summary()), 201

    @app.route("/sessions/<sid>", methods=["GET", "DELETE"])
    def session_view(sid: str):
        if request.method == "DELETE":
            sessions.close(sid)
            return "", 204
        session = sessions.get(sid)
        with session.lock:
            return jsonify(session.summary())

    @app.route("/sessions/<sid>/switch", methods=["POST"])
    def switch_image(sid: str):
        session = sessions.get(sid)
        ref = _payload().get("source_url")
        if not ref:
            raise ValueError("source_url is required")
        with session.lock:
            session.switch_image(str(ref))
            return jsonify(session.summary())

    @app.route("/sessions/<sid>/adjustments", methods=["GET", "PATCH"])
    def adjustments(sid: str):
        session = sessions.get(sid)
        with session.lock:
            if request.method == "PATCH":
                session.update_adjustments(_payload())
            return jsonify(session.adjustments.to_dict())

    @app.route("/sessions/<sid>/filters", methods=["GET", "POST"])
    def filters(sid: str):
        session = sessions.get(sid)
        with session.lock:
            if request.method == "POST":
                payload = _payload()
                entry = session.filters.add(payload.get("kind"), payload.get("amount", 100))
                return jsonify(entry.to_dict()), 201
            return jsonify(session.filters.to_list())

    @app.route("/sessions/<sid>/filters/<eid>", methods=["PATCH", "DELETE"])
    def filter_entry(sid: str, eid: str):
        session = sessions.get(sid)
        with session.lock:
            if request.method == "DELETE":
                session.filters.remove(eid)
                return jsonify(session.filters.to_list())
            amount = _payload().get("amount")
            if amount is None:
                raise ValueError("amount is required")
            return jsonify(session.filters.set_amount(eid, amount).to_dict())

    @app.route("/sessions/<sid>/filters/<eid>/move", methods=["POST"])
    def move_filter(sid: str, eid: str):
        session = sessions.get(sid)
        direction = _payload().get("direction")
        with session.lock:
            if direction == "up":
                moved = session.filters.move_up(eid)
            elif direction == "down":
                moved = session.filters.move_down(eid)
            else:
                raise ValueError("direction must be 'up' or 'down'")
            return jsonify(moved=moved, filters=session.filters.to_list())

    @app.route("/sessions/<sid>/preview")
    def preview(sid: str):
        session = sessions.get(sid)
        layer = (request.args.get("layer", "edits") or "edits").lower()
        with session.lock:
            if layer == "overlays":
                return send_png(session.render_overlay_preview())
            if layer != "edits":
                raise ValueError("layer must be 'edits' or 'overlays'")
            return send_png(session.render_preview())

    @app.route("/sessions/<sid>/paint", methods=["POST", "DELETE"])
    def paint(sid: str):
        session = sessions.get(sid)
        with session.lock:
            if request.method == "DELETE":
                session.paint.clear()
                return jsonify(has_paint=False)
            payload = _payload()
            points = [_point(p, "points[]") for p in payload.get("points") or []]
            source = payload.get("source")
            display = payload.get("display_size")
            applied = session.paint_stroke(
                points,
                tool=payload.get("tool"),
                brush_size=payload.get("brush_size"),
                color=payload.get("color"),
                opacity=payload.get("opacity"),
                source=_point(source, "source") if source is not None else None,
                display_size=_point(display, "display_size") if display is not None else None,
            )
            return jsonify(applied=applied, has_paint=session.paint.has_paint)

    @app.route("/sessions/<sid>/paint/mask")
    def paint_mask(sid: str):
        session = sessions.get(sid)
        with session.lock:
            return send_png(export_mask(session.paint.overlay, session.paint.mask_threshold))

    @app.route("/sessions/<sid>/overlays", methods=["GET", "POST"])
    def overlays(sid: str):
        session = sessions.get(sid)
        with session.lock:
            if request.method == "POST":
                element = session.overlays.add(element_from_dict(_payload()))
                return jsonify(element.to_dict()), 201
            return jsonify([element.to_dict() for element in session.overlays.elements])

    @app.route("/sessions/<sid>/overlays/<oid>", methods=["PATCH", "DELETE"])
    def overlay_element(sid: str, oid: str):
        session = sessions.get(sid)
        with session.lock:
            if request.method == "DELETE":
                session.overlays.remove(oid)
                return "", 204
            patch = _element_patch(session.overlays.get(oid), _payload())
            return jsonify(session.overlays.update(oid, **patch).to_dict())

    @app.route("/sessions/<sid>/gesture", methods=["POST"])
    def gesture(sid: str):
        session = sessions.get(sid)
        payload = _payload()
        action = payload.get("action")
        with session.lock:
            compositor = session.overlays
            if action == "begin":
                begin = {
                    "drag": compositor.begin_drag,
                    "resize": compositor.begin_resize,
                    "rotate": compositor.begin_rotate,
                }.get(payload.get("kind"))
                if begin is None:
                    raise ValueError("kind must be drag, resize or rotate")
                started = begin(str(payload.get("element_id")), _point(payload.get("pointer"), "pointer"))
                return jsonify(started=started), 200 if started else 409
            if action == "move":
                element = compositor.pointer_move(_point(payload.get("pointer"), "pointer"))
                return jsonify(element=element.to_dict() if element else None)
            if action == "end":
                compositor.release()
                return jsonify(idle=True)
            raise ValueError("action must be begin, move or end")

    @app.route("/sessions/<sid>/commit", methods=["POST"])
    def commit(sid: str):
        session = sessions.get(sid)
        payload = _payload()
        crop_rotate = _crop_rotate(payload["crop_rotate"]) if "crop_rotate" in payload else None
        # The session takes its own lock around the snapshot and the install;
        # rendering and uploading run without it.
        result = session.commit(
            payload.get("mode", ""),
            element_id=payload.get("element_id"),
            prompt=payload.get("prompt"),
            crop_rotate=crop_rotate,
        )
        with session.lock:
            return jsonify(result=result.to_dict(), session=session.summary())

    @app.route("/sessions/<sid>/versions/<int:version_num>", methods=["DELETE"])
    def remove_version(sid: str, version_num: int):
        session = sessions.get(sid)
        with session.lock:
            session.remove_version(version_num)
            return jsonify([v.to_dict() for v in session.versions])

    return app


# Expose a module-level Flask application for Gunicorn import paths like ``studio_engine.app:app``
# and provide a conventional ``application`` alias for WSGI servers that default to that name.
app = create_app()
application = app
