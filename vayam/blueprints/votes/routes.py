from flask import request, jsonify
from flask_login import current_user
from vayam.models.vote import TARGET_TYPES
from vayam.services.access import can_view_question
from vayam.services.engagement import cast_vote, record_participation, resolve_target, vote_total
from vayam.services.policy import login_required_json
from vayam.utils.validators import parse_id
from . import bp


def _validate(data) -> list[str]:
    errors = []
    if not isinstance(data, dict):
        return ["payload: must be a JSON object"]
    if data.get("type") not in TARGET_TYPES:
        errors.append("type: must be one of solution, pro, con")
    target_id = data.get("id")
    if not isinstance(target_id, int) or isinstance(target_id, bool) or target_id <= 0:
        errors.append("id: must be a positive integer")
    vote = data.get("vote")
    if isinstance(vote, bool) or vote not in (1, -1):
        errors.append("vote: must be 1 (like) or -1 (dislike)")
    return errors


@bp.post("/vote")
@login_required_json
def vote():
    data = request.get_json(silent=True)
    errors = _validate(data)
    if errors:
        return jsonify({"success": False, "message": "Invalid input", "errors": errors}), 400

    target_type, target_id = data["type"], data["id"]
    target, solution, question = resolve_target(target_type, target_id)
    if target is None or question is None:
        return jsonify({"success": False, "message": f"{target_type.capitalize()} not found"}), 404
    if not solution.is_active:
        return jsonify({"success": False, "message": "Solution is not active"}), 403
    if not can_view_question(current_user, question):
        return jsonify({"success": False, "message": "You don't have access to this question"}), 403

    count, first = cast_vote(current_user.id, target_type, target_id, int(data["vote"]), question.id)
    if first:
        record_participation(question.id, current_user.id)

    return jsonify({
        "success": True,
        "message": "Vote recorded successfully",
        "data": {"voteCount": count},
    }), 200


@bp.get("/votes/<item_id>")
@login_required_json
def vote_count(item_id: str):
    tid = parse_id(item_id)
    if tid is None:
        return jsonify({"success": False, "message": "Invalid ID"}), 400
    target_type = request.args.get("type")
    if target_type not in TARGET_TYPES:
        return jsonify({"success": False, "message": "Invalid or missing type parameter"}), 400
    return jsonify({"success": True, "data": {"voteCount": vote_total(target_type, tid)}}), 200
