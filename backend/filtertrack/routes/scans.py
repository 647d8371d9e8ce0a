# backend/filtertrack/routes/scans.py
"""
Scan API Routes

- POST /api/scans - apply one scan of a REFERENCE|SERIAL code

The same code is scanned once per stage. The response "action" tells the
client what happened:
- CREATED            first scan, unit is STORED (201)
- ADVANCED           moved to DISPATCHED / INSTALLED / UNINSTALLED
- NEEDS_DATA         collect the listed fields and resend the same code
- ALREADY_COMPLETED  unit already UNINSTALLED, nothing changed

SECURITY:
- The actor comes from the trusted X-Actor-* headers, NOT from the body.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import lifecycle_service
from ..services.code_parser import InvalidCodeFormat
from ..services.ledger_service import StoreUnavailableError
from ..services.lifecycle_service import LifecycleError, MissingClientError, OUTCOME_CREATED
from ..decorators import require_actor


scans_bp = Blueprint("scans", __name__, url_prefix="/api/scans")

RETRY_MESSAGE = "The ledger is temporarily unavailable, please try again"


@scans_bp.post("")
@require_actor
def scan_code_route():
    """
    Apply one scan.

    Request body:
        {
            "code": "OG971390|202630010002",
            "install": {"plate": "...", "odometer": "...", "installer_name": "..."},  // optional
            "uninstall": {"odometer": "..."}                                         // optional
        }

    Error responses:
        400: Malformed code, or dispatch without a client
        401: Missing actor headers
        409: Stored unit row is not in a known state
        503: Ledger unavailable (safe to retry)
    """
    payload = request.get_json(silent=True) or {}
    code = payload.get("code")

    try:
        result = lifecycle_service.advance(
            code,
            g.actor,
            lifecycle_service.payload_from_dict(payload),
        )
    except InvalidCodeFormat as e:
        return jsonify({"error": str(e)}), 400
    except MissingClientError as e:
        return jsonify({"error": str(e), "warnings": e.warnings}), 400
    except LifecycleError as e:
        return jsonify({"error": str(e)}), 409
    except StoreUnavailableError:
        return jsonify({"error": RETRY_MESSAGE}), 503
    except Exception:
        current_app.logger.exception("Failed to apply scan")
        return jsonify({"error": "Internal server error"}), 500

    status = 201 if result.outcome == OUTCOME_CREATED else 200
    return jsonify(result.to_dict()), status
