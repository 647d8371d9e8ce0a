# backend/filtertrack/routes/records.py
"""
Record read routes.

- GET /api/records/recent?limit=10&client=ACME - most recent records in scope
- GET /api/records/stats?client=ACME           - per-state counts + today

Scope: superadmins may read any client's ledger; everyone else may only pass
their own client (X-Actor-Client). Without ?client= the scope follows the
actor's role (see reporting_service).
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..actors import normalize_client
from ..services import reporting_service
from ..services.ledger_service import StoreUnavailableError
from ..validation import ValidationError, parse_limit
from ..decorators import require_actor
from .scans import RETRY_MESSAGE


records_bp = Blueprint("records", __name__, url_prefix="/api/records")


def _requested_client():
    client = (request.args.get("client") or "").strip()
    if client and not g.actor.is_superadmin and normalize_client(client) != g.actor.client_key:
        return client, False
    return client, True


@records_bp.get("/recent")
@require_actor
def list_recent_records_route():
    client, allowed = _requested_client()
    if not allowed:
        return jsonify({"error": "Client access denied"}), 403

    try:
        limit = parse_limit(
            request.args.get("limit"),
            default=current_app.config["RECENT_RECORDS_DEFAULT_LIMIT"],
            maximum=current_app.config["RECENT_RECORDS_MAX_LIMIT"],
        )
        items = reporting_service.list_recent_records(g.actor, client=client or None, limit=limit)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except StoreUnavailableError:
        return jsonify({"error": RETRY_MESSAGE}), 503
    except reporting_service.ReportError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"items": items, "limit": limit}), 200


@records_bp.get("/stats")
@require_actor
def compute_stats_route():
    client, allowed = _requested_client()
    if not allowed:
        return jsonify({"error": "Client access denied"}), 403

    try:
        stats = reporting_service.compute_stats(g.actor, client=client or None)
    except StoreUnavailableError:
        return jsonify({"error": RETRY_MESSAGE}), 503
    except reporting_service.ReportError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(stats), 200
