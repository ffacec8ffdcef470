import json
from flask import request, jsonify, current_app
from flask_login import current_user
from sqlalchemy import or_
from vayam.extensions import db
from vayam.models import Question, Solution
from vayam.services import access
from vayam.services.access import can_contribute, can_view_question, is_hidden_from
from vayam.services.email import send_new_solution_notification, send_sme_invitation
from vayam.services.engagement import delete_question, question_detail, record_participation
from vayam.services.policy import admin_required, login_required_json
from vayam.utils.validators import parse_id
from . import bp
from .validators import validate_question_create, validate_question_update, validate_solution


def _validation_error(errors):
    return jsonify({"success": False, "error": "Validation Error", "errors": errors}), 400

def _clean_emails(emails) -> list[str]:
    out: list[str] = []
    for e in emails or []:
        e = e.strip().lower()
        if e not in out:
            out.append(e)
    return out

def _load(question_id: int):
    """(question, error_response) honoring the hidden-inactive rule."""
    q = db.session.get(Question, question_id)
    if q is None or is_hidden_from(current_user, q):
        return None, (jsonify({"error": "Question not found"}), 404)
    return q, None


@bp.get("")
@login_required_json
def list_questions():
    try:
        if access.is_platform_admin(current_user):
            rows = Question.query.order_by(Question.created_at.desc(), Question.id.desc()).all()
        elif access.is_admin(current_user):
            org_id = access.admin_org_id(current_user)
            cond = Question.owner_id == current_user.id
            if org_id:
                cond = or_(cond, Question.organization_id == org_id)
            rows = Question.query.filter(cond).order_by(Question.created_at.desc(), Question.id.desc()).all()
        else:
            granted = access.granted_question_ids(current_user)
            candidates = (
                Question.query.filter(Question.is_active.is_(True))
                .order_by(Question.created_at.desc(), Question.id.desc())
                .all()
            )
            rows = [
                q for q in candidates
                if q.id in granted or can_view_question(current_user, q)
            ]
        return jsonify({"success": True, "data": [q.to_dict() for q in rows]}), 200
    except Exception:
        current_app.logger.exception("GET /api/questions failed")
        return jsonify({"success": False, "error": "Internal Server Error", "message": "Failed to fetch questions"}), 500


@bp.post("")
@admin_required
def create_question():
    data = request.get_json(silent=True)
    errors = validate_question_create(data)
    if errors:
        return _validation_error(errors)

    q = Question(
        title=data["title"].strip(),
        description=data["description"].strip(),
        tags=[t.strip() for t in (data.get("tags") or []) if t.strip()],
        allowed_emails=_clean_emails(data.get("allowedEmails")),
        owner_id=current_user.id,
        is_active=data.get("isActive", True),
        is_public=data.get("isPublic", False),
        organization_id=access.admin_org_id(current_user),
        participant_count=0,
    )
    db.session.add(q)
    db.session.commit()

    # Invitation failures are recorded in EmailLog and never fail the request
    sent = 0
    for email in q.allowed_emails:
        if send_sme_invitation(email, q).status == "sent":
            sent += 1

    current_app.logger.info(json.dumps({
        "event": "question_created",
        "question_id": q.id,
        "owner_id": current_user.id,
        "invites_sent": sent,
        "invites_total": len(q.allowed_emails),
    }))
    return jsonify({"success": True, "data": q.to_dict(), "message": "Question created successfully"}), 201


@bp.get("/<question_id>")
@login_required_json
def get_question(question_id: str):
    qid = parse_id(question_id)
    if qid is None:
        return jsonify({"error": "Invalid question ID"}), 400
    q, err = _load(qid)
    if err:
        return err
    if not can_view_question(current_user, q):
        return jsonify({"error": "You don't have access to this question"}), 403
    return jsonify({"success": True, "data": question_detail(q, current_user.id)}), 200


@bp.put("/<question_id>")
@admin_required
def update_question(question_id: str):
    qid = parse_id(question_id)
    if qid is None:
        return jsonify({"error": "Invalid question ID"}), 400
    q = db.session.get(Question, qid)
    if q is None:
        return jsonify({"error": "Question not found"}), 404
    if not access.can_manage_question(current_user, q):
        return jsonify({"error": "You can only edit your own questions"}), 403

    data = request.get_json(silent=True)
    errors = validate_question_update(data)
    if errors:
        return _validation_error(errors)

    q.title = data["title"].strip()
    q.description = data["description"].strip()
    if "tags" in data:
        q.tags = [t.strip() for t in (data.get("tags") or []) if t.strip()]
    if "allowedEmails" in data:
        q.allowed_emails = _clean_emails(data.get("allowedEmails"))
    if "isActive" in data:
        q.is_active = data["isActive"]
    if "isPublic" in data:
        q.is_public = data["isPublic"]
    db.session.commit()

    return jsonify({"success": True, "data": q.to_dict(), "message": "Question updated successfully"}), 200


@bp.delete("/<question_id>")
@admin_required
def remove_question(question_id: str):
    qid = parse_id(question_id)
    if qid is None:
        return jsonify({"error": "Invalid question ID"}), 400
    q = db.session.get(Question, qid)
    if q is None:
        return jsonify({"error": "Question not found"}), 404
    if not access.can_manage_question(current_user, q):
        return jsonify({"error": "You can only delete your own questions"}), 403

    try:
        delete_question(q)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("DELETE /api/questions/%s failed", qid)
        return jsonify({"success": False, "error": "Internal Server Error", "message": "Failed to delete question"}), 500

    current_app.logger.info(json.dumps({"event": "question_deleted", "question_id": qid, "by": current_user.id}))
    return jsonify({"success": True, "message": "Question deleted successfully"}), 200


@bp.post("/<question_id>/solutions")
@login_required_json
def add_solution(question_id: str):
    qid = parse_id(question_id)
    if qid is None:
        return jsonify({"error": "Invalid question ID"}), 400
    q, err = _load(qid)
    if err:
        return err
    if not q.is_active:
        return jsonify({"error": "This question is no longer accepting solutions"}), 403
    if not can_contribute(current_user, q):
        return jsonify({"error": "You are not allowed to add solutions to this question"}), 403

    data = request.get_json(silent=True)
    errors = validate_solution(data)
    if errors:
        return _validation_error(errors)

    sol = Solution(
        question_id=q.id,
        user_id=current_user.id,
        title=data["title"].strip(),
        content=data["content"].strip(),
        is_active=True,
    )
    db.session.add(sol)
    db.session.commit()

    record_participation(q.id, current_user.id)

    if q.owner_id != current_user.id and q.owner is not None:
        send_new_solution_notification(q.owner, q, sol, current_user)

    return jsonify({"success": True, "data": sol.to_dict()}), 201
