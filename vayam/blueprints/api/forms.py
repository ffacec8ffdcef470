import json
from flask import request, jsonify, current_app
from flask_login import current_user
from vayam.extensions import db, limiter
from vayam.models import Feedback, Question, SmeSubmission
from vayam.services.access import within_admin_boundary
from vayam.services.email import send_contact_message, send_sme_invitation
from vayam.services.policy import admin_required, login_required_json
from vayam.utils.validators import clean_str, is_valid_email, normalize_email, parse_id
from . import bp

FEEDBACK_MAX = 2000
INVITE_SME_MAX = 50


@bp.post("/feedback")
@login_required_json
@limiter.limit("10 per minute")
def submit_feedback():
    data = request.get_json(silent=True) or {}
    comment = data.get("comment")
    if not isinstance(comment, str) or not comment.strip():
        return jsonify({"error": "Comment is required"}), 400
    if len(comment) > FEEDBACK_MAX:
        return jsonify({"error": f"Comment is too long (max {FEEDBACK_MAX} characters)"}), 400

    fb = Feedback(
        user_id=current_user.id,
        org_id=current_user.organization_id,
        path=clean_str(data.get("path"), 255),
        message=comment.strip(),
    )
    db.session.add(fb)
    db.session.commit()

    current_app.logger.info(json.dumps({"event": "feedback_submitted", "user_id": current_user.id, "feedback_id": fb.id}))
    return jsonify({
        "success": True,
        "message": "Feedback submitted successfully",
        "data": {
            "id": fb.id,
            "comment": fb.message,
            "createdAt": fb.created_at.isoformat() if fb.created_at else None,
        },
    }), 201


@bp.post("/sme")
@limiter.limit("5 per minute; 30 per hour")
def submit_sme():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    role = clean_str(data.get("role"), 255)
    background = clean_str(data.get("background"), 5000)
    areas = data.get("areas")
    if isinstance(areas, str):
        areas = [areas]
    areas = [a.strip() for a in (areas or []) if isinstance(a, str) and a.strip()]

    if not email or not role or not background or not areas:
        return jsonify({"error": "All fields are required"}), 400
    if not is_valid_email(email):
        return jsonify({"error": "Invalid email format"}), 400

    sub = SmeSubmission(
        user_id=current_user.id if current_user.is_authenticated else None,
        email=email,
        role=role,
        background=background,
        areas=json.dumps(areas),
    )
    db.session.add(sub)
    db.session.commit()

    current_app.logger.info(json.dumps({"event": "sme_submission", "id": sub.id, "areas": len(areas)}))
    return jsonify({"success": True, "message": "Submission saved successfully"}), 200


@bp.post("/contact")
@limiter.limit("5 per minute; 30 per hour")
def contact():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    description = clean_str(data.get("description"), 5000)
    if not email or not description:
        return jsonify({"error": "All fields are required"}), 400
    if not is_valid_email(email):
        return jsonify({"error": "Invalid email format"}), 400

    elog = send_contact_message(email, description)
    if elog.status != "sent":
        return jsonify({"success": False, "error": "Failed to send message"}), 200
    return jsonify({"success": True}), 200


@bp.post("/invite-sme")
@admin_required
def invite_sme():
    data = request.get_json(silent=True) or {}
    emails = data.get("emails")
    if not isinstance(emails, list) or not emails:
        return jsonify({"error": "Valid email addresses are required"}), 400
    if len(emails) > INVITE_SME_MAX:
        return jsonify({"error": f"At most {INVITE_SME_MAX} emails per request"}), 400

    qid = parse_id(data.get("questionId"))
    if qid is None:
        return jsonify({"error": "Question ID is required"}), 400
    question = db.session.get(Question, qid)
    if question is None or not within_admin_boundary(current_user, question):
        return jsonify({"error": "Question not found"}), 404

    successful = failed = 0
    for raw in emails:
        email = normalize_email(raw) if isinstance(raw, str) else None
        if not email or not is_valid_email(email):
            failed += 1
            continue
        if send_sme_invitation(email, question).status == "sent":
            successful += 1
        else:
            failed += 1

    current_app.logger.info(json.dumps({
        "event": "sme_invites", "question_id": question.id, "by": current_user.id,
        "successful": successful, "failed": failed,
    }))
    if failed:
        return jsonify({
            "success": False,
            "message": f"{successful} invitation(s) sent successfully, {failed} failed",
            "details": {"successful": successful, "failed": failed},
        }), 200
    return jsonify({
        "success": True,
        "message": f"Invitations sent successfully to {successful} SME(s)",
    }), 200
