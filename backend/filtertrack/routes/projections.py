# backend/filtertrack/routes/projections.py
"""
Replacement projection routes.

- GET /api/projections?client=ACME

Admins and superadmins only. An admin is always pinned to their own client;
a superadmin sees every client unless ?client= narrows it.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..actors import ROLE_ADMIN, ROLE_SUPERADMIN
from ..services import projection_service
from ..services.ledger_service import StoreUnavailableError
from ..decorators import require_actor, require_role
from .scans import RETRY_MESSAGE


projections_bp = Blueprint("projections", __name__, url_prefix="/api/projections")


@projections_bp.get("")
@require_actor
@require_role(ROLE_ADMIN, ROLE_SUPERADMIN)
def get_projections_route():
    client = (request.args.get("client") or "").strip()
    if not g.actor.is_superadmin:
        if not g.actor.client_key:
            return jsonify({"error": "Client assignment required"}), 403
        client = g.actor.client_hint

    try:
        result = projection_service.project(client or None)
    except StoreUnavailableError:
        current_app.logger.error("Projection failed: ledger unavailable", exc_info=True)
        return jsonify({"error": RETRY_MESSAGE}), 503

    return jsonify(result.to_dict()), 200
