# Overview: Request decorators for API routes (trusted actor context, role gate).

from functools import wraps
from flask import request, jsonify, g

from .actors import ActorContext, UnknownRoleError

"""
Authentication happens upstream. The gateway in front of this service
forwards the already-verified actor in three headers:

- X-Actor-Identity: user identity (e-mail or username)
- X-Actor-Role:     mechanic | dispatcher | admin | superadmin
- X-Actor-Client:   the actor's client, or the client picked for a dispatch
"""

IDENTITY_HEADER = "X-Actor-Identity"
ROLE_HEADER = "X-Actor-Role"
CLIENT_HEADER = "X-Actor-Client"


def require_actor(f):
    """
    Build the ActorContext for this request.

    Sets g.actor. Returns 401 if the identity or role header is missing or
    the role is unknown.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        identity = (request.headers.get(IDENTITY_HEADER) or "").strip()
        role = request.headers.get(ROLE_HEADER)

        if not identity or not role:
            return jsonify({"error": "Actor identity and role are required"}), 401

        try:
            g.actor = ActorContext.build(identity, role, request.headers.get(CLIENT_HEADER))
        except UnknownRoleError as e:
            return jsonify({"error": str(e)}), 401

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require the actor's role to be one of `roles` (use after @require_actor)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Actor identity and role are required"}), 401

            if actor.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": sorted(roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
