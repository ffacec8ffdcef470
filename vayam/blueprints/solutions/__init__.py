from flask import Blueprint

bp = Blueprint("solutions", __name__)

from . import routes  # noqa: E402,F401
