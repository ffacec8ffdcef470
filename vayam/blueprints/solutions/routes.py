from flask import request, jsonify
from flask_login import current_user
from vayam.extensions import db
from vayam.models import Con, Pro, Question
from vayam.services.access import can_view_question
from vayam.services.engagement import get_solution, record_participation
from vayam.services.policy import login_required_json
from vayam.utils.validators import parse_id, text_length_error
from . import bp

MAX_POINT_LEN = 1000


def _add_point(solution_id: str, model, label: str):
    sid = parse_id(solution_id)
    if sid is None:
        return jsonify({"error": "Invalid solution ID"}), 400

    data = request.get_json(silent=True) or {}
    err = text_length_error("Content", data.get("content"), 1, MAX_POINT_LEN)
    if err:
        return jsonify({"success": False, "error": "Validation Error", "errors": {"content": [err]}}), 400

    sol = get_solution(sid)
    if sol is None:
        return jsonify({"error": "Solution not found"}), 404
    if not sol.is_active:
        return jsonify({"error": "Solution is not active"}), 403

    q = db.session.get(Question, sol.question_id)
    if q is None or not can_view_question(current_user, q):
        return jsonify({"error": "You don't have access to this question"}), 403

    point = model(solution_id=sol.id, user_id=current_user.id, content=data["content"].strip())
    db.session.add(point)
    db.session.commit()

    record_participation(q.id, current_user.id)
    return jsonify({"success": True, "message": f"{label} added successfully", "data": point.to_dict()}), 201


@bp.post("/<solution_id>/pros")
@login_required_json
def add_pro(solution_id: str):
    return _add_point(solution_id, Pro, "Pro")


@bp.post("/<solution_id>/cons")
@login_required_json
def add_con(solution_id: str):
    return _add_point(solution_id, Con, "Con")
