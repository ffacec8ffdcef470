from functools import wraps
from flask import abort, request, jsonify
from flask_login import current_user
from vayam.models.user import ADMIN_ROLES, ROLE_ADMIN

_ERRORS = {401: "Not authenticated", 403: "Forbidden", 404: "Not found"}

def login_required_json(fn):
    @wraps(fn)
    def _wrap(*args, **kwargs):
        if not current_user.is_authenticated:
            return _abort_smart(401)
        return fn(*args, **kwargs)
    return _wrap

def role_required(*roles):
    def deco(fn):
        @wraps(fn)
        def _wrap(*args, **kwargs):
            if not current_user.is_authenticated:
                return _abort_smart(401)
            if current_user.role not in roles:
                return _abort_smart(403)
            return fn(*args, **kwargs)
        return _wrap
    return deco

admin_required = role_required(*ADMIN_ROLES)
platform_admin_required = role_required(ROLE_ADMIN)

def _abort_smart(code: int):
    # Everything under /api and /webhooks speaks JSON
    accept = (request.headers.get("Accept") or "").lower()
    if "application/json" in accept or request.path.startswith(("/api/", "/webhooks/")):
        return jsonify({"error": _ERRORS[code], "code": code}), code
    abort(code)
