from flask import Blueprint

bp = Blueprint("organizations", __name__)

from . import routes, access_links  # noqa: E402,F401
