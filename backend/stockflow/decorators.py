# Overview: Request scope decorator for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import ScopeError
from .services.tenant_service import resolve_scope

ORG_HEADER = "X-Org-Id"
BRANCH_HEADER = "X-Branch-Id"


def require_scope(f=None, *, branch: bool = True):
    """
    Establish tenant context from request headers.

    Sets g.scope (a tenant_service.Scope). The branch may also be supplied as
    a ``branch_id`` query argument for read routes.

    Returns 400 if:
    - X-Org-Id is missing, malformed or names an unknown organization
    - X-Branch-Id is missing (when branch=True), malformed, or names a branch
      of another organization
    """
    def decorator(view):
        @wraps(view)
        def decorated_function(*args, **kwargs):
            org_id = request.headers.get(ORG_HEADER)
            branch_id = request.headers.get(BRANCH_HEADER) or request.args.get("branch_id")
            try:
                g.scope = resolve_scope(org_id, branch_id, require_branch=branch)
            except ScopeError as e:
                return jsonify(e.to_dict()), e.status_code
            return view(*args, **kwargs)

        return decorated_function

    if f is not None:
        return decorator(f)
    return decorator
