# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .permissions import role_has_permission
from .services.branch_scope_service import Actor, VALID_ROLES, branch_has_feature, resolve_scope


def _is_authenticated() -> bool:
    return hasattr(g, 'actor') and hasattr(g, 'branch_scope')


def _header_int(name: str):
    raw = request.headers.get(name)
    if raw is None or not raw.strip():
        return None
    raw = raw.strip()
    if not raw.isdigit():
        raise ValueError(f"{name} must be a positive integer")
    return int(raw)


def require_actor(f):
    """
    Establish the caller and their effective branch.

    Identity is supplied by the upstream authentication layer as headers:
    - X-Actor-Role: admin, manager, cashier, processor (required)
    - X-Actor-Id / X-Actor-Name: who is acting (audit attribution)
    - X-Actor-Branch-Id: the user's fixed branch
    - X-Branch-Id: branch pin, honored for admins only

    Sets:
    - g.actor: Actor
    - g.branch_scope: BranchScope for this request
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        role = (request.headers.get("X-Actor-Role") or "").strip().lower()
        if not role:
            return jsonify({"error": "Authentication required"}), 401
        if role not in VALID_ROLES:
            return jsonify({"error": f"Unknown role: {role}"}), 401

        try:
            actor = Actor(
                role=role,
                id=_header_int("X-Actor-Id"),
                name=(request.headers.get("X-Actor-Name") or "").strip() or None,
                fixed_branch_id=_header_int("X-Actor-Branch-Id"),
                pinned_branch_id=_header_int("X-Branch-Id"),
            )
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        g.actor = actor
        g.branch_scope = resolve_scope(actor)
        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """Require the caller's role to grant a permission."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_actor was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if not role_has_permission(g.actor.role, permission_code):
                current_app.logger.info(
                    "Permission %s denied for role %s on %s", permission_code, g.actor.role, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                    "message": f"Role '{g.actor.role}' lacks {permission_code}",
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_branch_feature(feature_key: str):
    """
    Require a capability to be enabled for the caller's effective branch.

    Admins bypass the check.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if g.actor.is_admin:
                return f(*args, **kwargs)

            if not branch_has_feature(g.branch_scope.branch_id, feature_key):
                return jsonify({
                    "error": "Feature not enabled for this branch",
                    "feature": feature_key,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
