"""Registration endpoint: one insert, then a best-effort confirmation email."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from flask import Blueprint, current_app, jsonify, request

from countries import get_countries
from notifications import Notifier, build_notifier
from settings import WORKSHOPS_SEPARATOR
from storage import StorageError, insert_inscription

logger = logging.getLogger(__name__)

inscriptions_bp = Blueprint("inscriptions", __name__)

TEXT_FIELDS = ("nom", "prenom", "email", "telephone", "poste", "startup", "pays", "adresse")


class PayloadError(ValueError):
    """The request body is not a registration object."""


def _s(x: Any) -> str | None:
    if x is None:
        return None
    x = str(x).strip()
    return x or None


def _workshops(body: Dict[str, Any]) -> List[str]:
    raw = body.get("ateliers")
    if not isinstance(raw, list) or not all(isinstance(w, str) for w in raw):
        raise PayloadError("'ateliers' must be a list of strings")
    workshops = [w.strip() for w in raw if w.strip()]
    if not workshops:
        raise PayloadError("'ateliers' must not be empty")
    return workshops


def build_row(body: Dict[str, Any], now: datetime | None = None) -> Dict[str, Any]:
    """Copy the known fields, join the workshops and stamp the creation time."""
    if not isinstance(body, dict):
        raise PayloadError("Request body must be a JSON object")
    row: Dict[str, Any] = {name: _s(body.get(name)) for name in TEXT_FIELDS}
    row["ateliers"] = WORKSHOPS_SEPARATOR.join(_workshops(body))
    row["created_at"] = now or datetime.now(timezone.utc)
    return row


def _notifier() -> Notifier:
    notifier = current_app.extensions.get("registration_notifier")
    if notifier is None:
        notifier = build_notifier()
        current_app.extensions["registration_notifier"] = notifier
    return notifier


def _send_confirmation(body: Dict[str, Any], workshops: List[str], details: Dict[str, Any]) -> None:
    recipient = _s(body.get("email"))
    display_name = " ".join(v for v in (_s(body.get("prenom")), _s(body.get("nom"))) if v)
    try:
        _notifier().send(recipient, display_name, workshops, details=details)
    except Exception:
        logger.exception("Confirmation email failed for %s (non-fatal)", recipient)


@inscriptions_bp.post("/inscriptions")
def create_inscription():
    logger.info("Registration request received")
    try:
        body = request.get_json(force=True, silent=False)
        row = build_row(body)
        workshops = _workshops(body)
    except Exception as exc:
        logger.exception("Invalid registration payload")
        return jsonify({"error": "Erreur serveur", "details": str(exc)}), 500

    try:
        inserted = insert_inscription(row)
    except StorageError as exc:
        logger.error("Registration insert failed: %s", exc)
        return jsonify({"error": "Erreur lors de la sauvegarde", "details": str(exc)}), 500

    logger.info("Registration %s stored for %s", inserted.get("id"), inserted.get("email"))
    _send_confirmation(body, workshops, {name: row[name] for name in TEXT_FIELDS})

    return jsonify({"success": True, "data": inserted}), 200


@inscriptions_bp.get("/countries")
def countries():
    return jsonify({"countries": get_countries()}), 200
