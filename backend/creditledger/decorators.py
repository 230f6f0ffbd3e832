# Overview: Request decorators for API routes; actor resolution, role checks and ledger error mapping.

from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import LedgerError
from .extensions import db
from .services.audit_service import Actor, ROLE_STAFF, ROLE_SUPER_ADMIN, VALID_ROLES
from .services.concurrency import commit_with_retry
from .validation import ALL_BRANCHES, configured_branches


def with_actor(f):
    """
    Establish who is performing the request.

    Sets g.actor from headers:
    - X-User-Id: required
    - X-User-Role: SUPER_ADMIN, BRANCH_ADMIN or STAFF (default STAFF)
    - X-Branch: a configured branch; ALL only for SUPER_ADMIN
      (default ALL for SUPER_ADMIN, DEFAULT_BRANCH otherwise)

    Identity is taken as given; session handling sits in front of this API.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = (request.headers.get("X-User-Id") or "").strip()
        if not user_id:
            return jsonify({"error": "X-User-Id header is required"}), 401

        role = (request.headers.get("X-User-Role") or ROLE_STAFF).strip().upper()
        if role not in VALID_ROLES:
            return jsonify({"error": f"X-User-Role must be one of {VALID_ROLES}"}), 400

        default_branch = ALL_BRANCHES if role == ROLE_SUPER_ADMIN else current_app.config["DEFAULT_BRANCH"]
        branch = (request.headers.get("X-Branch") or default_branch).strip().upper()
        if branch == ALL_BRANCHES and role != ROLE_SUPER_ADMIN:
            return jsonify({"error": "Only SUPER_ADMIN may act across ALL branches"}), 403
        if branch != ALL_BRANCHES and branch not in configured_branches():
            return jsonify({"error": f"Unknown branch {branch}"}), 400

        g.actor = Actor(user_id=user_id, role=role, branch=branch)
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Restrict a route to the given actor roles. Must run after with_actor."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Actor required"}), 401
            if actor.role not in roles:
                return jsonify({"error": f"Requires role: {', '.join(roles)}"}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def ledger_endpoint(f):
    """
    Run a route as one unit of work.

    - Mutating methods commit (with retry) after the view returns.
    - LedgerError -> rollback + {"error": message} with the error's status.
    - Anything else -> rollback, logged, 500.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            response = f(*args, **kwargs)
            if request.method != "GET":
                commit_with_retry()
            return response
        except LedgerError as e:
            db.session.rollback()
            return jsonify({"error": str(e)}), e.status_code
        except Exception as e:
            db.session.rollback()
            current_app.logger.exception("Unhandled error in %s %s", request.method, request.path)
            return jsonify({"error": f"Unexpected error: {e}"}), 500

    return decorated_function


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
