# backend/filtertrack/routes/clients.py
"""
Client directory routes.

- GET    /api/clients          - list clients (any actor)
- POST   /api/clients          - register a client (superadmin)
- PUT    /api/clients/<name>   - rename a client (superadmin)
- DELETE /api/clients/<name>   - delete a client with no records (superadmin)
"""

from flask import Blueprint, request, jsonify, current_app

from ..actors import ROLE_SUPERADMIN
from ..models import Client
from ..services import client_service
from ..services.client_service import ClientHasRecordsError, ClientNotFoundError
from ..services.ledger_service import StoreUnavailableError
from ..validation import ModelValidationPolicy, validate_payload, ValidationError, ConflictError
from ..decorators import require_actor, require_role
from .scans import RETRY_MESSAGE


clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")

CLIENT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name"},
    required_on_create={"name"},
)


@clients_bp.get("")
@require_actor
def list_clients_route():
    try:
        clients = client_service.list_clients()
    except StoreUnavailableError:
        return jsonify({"error": RETRY_MESSAGE}), 503
    return jsonify({"items": [c.to_dict() for c in clients]}), 200


@clients_bp.post("")
@require_actor
@require_role(ROLE_SUPERADMIN)
def create_client_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=Client,
            payload=payload,
            policy=CLIENT_CREATE_POLICY,
            partial=False,
        )
        client = client_service.create_client(patch["name"])
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except StoreUnavailableError:
        return jsonify({"error": RETRY_MESSAGE}), 503

    return jsonify({"client": client.to_dict()}), 201


@clients_bp.put("/<name>")
@require_actor
@require_role(ROLE_SUPERADMIN)
def rename_client_route(name: str):
    payload = request.get_json(silent=True) or {}

    try:
        client = client_service.rename_client(name, payload.get("name"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ClientNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except StoreUnavailableError:
        return jsonify({"error": RETRY_MESSAGE}), 503
    except Exception:
        current_app.logger.exception("Failed to rename client")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"client": client.to_dict()}), 200


@clients_bp.delete("/<name>")
@require_actor
@require_role(ROLE_SUPERADMIN)
def delete_client_route(name: str):
    try:
        client_service.delete_client(name)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ClientNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ClientHasRecordsError as e:
        return jsonify({"error": str(e), "records": e.count}), 409
    except StoreUnavailableError:
        return jsonify({"error": RETRY_MESSAGE}), 503

    return jsonify({"message": f"Client '{name.strip()}' deleted"}), 200
