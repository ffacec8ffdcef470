from flask import Blueprint

bp = Blueprint("api", __name__)

from . import profile, forms  # noqa: E402,F401
