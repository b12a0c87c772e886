"""Service-level endpoints: health, banner and Prometheus metrics."""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, Response, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from ..metrics import latest_metrics

system_bp = Blueprint("system_bp", __name__)


@system_bp.get("/")
def index():
    return jsonify(
        {
            "name": current_app.config.get("APP_NAME"),
            "version": current_app.config.get("APP_VERSION"),
            "status": "ok",
        }
    )


@system_bp.get("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - depends on a broken database
        current_app.logger.error("Health check failed: %s", exc)
        return jsonify({"status": "error", "database": "unavailable"}), HTTPStatus.SERVICE_UNAVAILABLE
    scheduler = current_app.extensions.get("reconciliation_scheduler")
    return jsonify(
        {
            "status": "ok",
            "database": "ok",
            "reconciliation_scheduler": bool(scheduler and scheduler.running),
        }
    )


@system_bp.get("/metrics")
def metrics():
    payload, content_type = latest_metrics()
    return Response(payload, mimetype=content_type)
