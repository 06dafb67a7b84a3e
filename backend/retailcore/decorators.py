# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


def _header_int(name: str):
    raw = request.headers.get(name)
    if raw is None or not raw.strip():
        return None
    raw = raw.strip()
    if not raw.isdigit():
        raise ValueError(name)
    return int(raw)


def require_identity(f):
    """
    Establish tenant and actor context from the upstream gateway.

    Identity is authenticated before requests reach this service; the gateway
    forwards it as headers. Sets the following Flask g attributes:
    - g.tenant_id: X-Tenant-Id (REQUIRED)
    - g.actor_id: X-Actor-Id (may be None for system callers)
    - g.branch_id: X-Branch-Id (may be None for tenant-level callers)

    Returns 401 if X-Tenant-Id is missing, 400 if any identity header is not
    a positive integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            tenant_id = _header_int("X-Tenant-Id")
            actor_id = _header_int("X-Actor-Id")
            branch_id = _header_int("X-Branch-Id")
        except ValueError as e:
            return jsonify({"error": f"Invalid {e} header", "code": "validation_error", "details": {}}), 400

        if not tenant_id:
            return jsonify({"error": "Tenant context required", "code": "unauthorized", "details": {}}), 401

        g.tenant_id = tenant_id
        g.actor_id = actor_id
        g.branch_id = branch_id
        return f(*args, **kwargs)

    return decorated_function
