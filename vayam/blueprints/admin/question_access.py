import json
from flask import request, jsonify, current_app
from flask_login import current_user
from vayam.extensions import db
from vayam.models import Question
from vayam.services import ServiceError
from vayam.services.access import admin_org_id, within_admin_boundary
from vayam.services.invites import (
    DEFAULT_BODY,
    DEFAULT_SUBJECT,
    TEMPLATE_VARIABLES,
    get_email_template,
    grant_many,
    list_access,
    revoke_access,
    send_invites,
    upsert_email_template,
)
from vayam.services.roster import get_company_user
from vayam.utils.validators import parse_id
from . import bp


def _question(raw_id):
    """Question inside the caller's ownership/org boundary, or an error response."""
    qid = parse_id(raw_id)
    if qid is None:
        return None, (jsonify({"error": "Invalid question ID"}), 400)
    q = db.session.get(Question, qid)
    if q is None:
        return None, (jsonify({"error": "Question not found"}), 404)
    if not within_admin_boundary(current_user, q):
        return None, (jsonify({"error": "You don't have access to this question"}), 403)
    return q, None


@bp.get("/questions/<question_id>/access")
def get_question_access(question_id: str):
    q, err = _question(question_id)
    if err:
        return err
    return jsonify({"success": True, "data": list_access(q.id)}), 200


@bp.post("/questions/<question_id>/access")
def grant_question_access(question_id: str):
    q, err = _question(question_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    ids = data.get("companyUserIds")
    if not isinstance(ids, list) or not ids:
        return jsonify({"error": "Provide companyUserIds array"}), 400
    parsed = [parse_id(i) for i in ids]
    if any(i is None for i in parsed):
        return jsonify({"error": "companyUserIds must be positive integers"}), 400

    org_id = admin_org_id(current_user)
    if not org_id:
        return jsonify({"error": "No organization found. Create one first."}), 404

    granted, skipped = grant_many(q, org_id, parsed, current_user.id)
    current_app.logger.info(json.dumps({
        "event": "access_granted_bulk", "question_id": q.id, "by": current_user.id,
        "granted": granted, "skipped": skipped,
    }))
    return jsonify({"success": True, "granted": granted, "skipped": skipped}), 200


@bp.delete("/questions/<question_id>/access")
def revoke_question_access(question_id: str):
    q, err = _question(question_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    cid = parse_id(data.get("companyUserId"))
    if cid is None:
        return jsonify({"error": "companyUserId required"}), 400
    org_id = admin_org_id(current_user)
    cu = get_company_user(org_id, cid) if org_id else None
    if cu is None:
        return jsonify({"error": "Company user not found"}), 404
    revoke_access(q, cu)
    return jsonify({"success": True}), 200


@bp.get("/questions/<question_id>/email-template")
def get_question_email_template(question_id: str):
    q, err = _question(question_id)
    if err:
        return err
    tpl = get_email_template(q.id)
    return jsonify({
        "success": True,
        "data": tpl.to_dict() if tpl else None,
        "defaults": {"subject": DEFAULT_SUBJECT, "body": DEFAULT_BODY},
        "variables": TEMPLATE_VARIABLES,
    }), 200


@bp.put("/questions/<question_id>/email-template")
def put_question_email_template(question_id: str):
    q, err = _question(question_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    subject, body = data.get("subject"), data.get("body")
    if (subject is not None and not isinstance(subject, str)) or (body is not None and not isinstance(body, str)):
        return jsonify({"error": "subject and body must be strings"}), 400
    try:
        tpl = upsert_email_template(q.id, current_user.id, subject=subject, body=body)
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status
    current_app.logger.info(json.dumps({"event": "email_template_updated", "question_id": q.id, "by": current_user.id}))
    return jsonify({"success": True, "data": tpl.to_dict()}), 200


@bp.post("/questions/<question_id>/send-invites")
def send_question_invites(question_id: str):
    q, err = _question(question_id)
    if err:
        return err
    try:
        result = send_invites(q, current_user.id)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("POST send-invites failed question=%s", q.id)
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(result), 200
