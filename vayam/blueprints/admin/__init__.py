from flask import Blueprint
from flask_login import current_user
from vayam.services.access import is_admin
from vayam.services.policy import _abort_smart

bp = Blueprint("admin", __name__)

@bp.before_request
def _require_admin():
    if not current_user.is_authenticated:
        return _abort_smart(401)
    if not is_admin(current_user):
        return _abort_smart(403)
    return None


# Import submodules so their routes register on the same bp
from . import company_users, question_access, batches  # noqa: E402,F401
