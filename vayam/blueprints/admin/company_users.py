import io
import json
from flask import request, jsonify, current_app
from flask_login import current_user
from sqlalchemy import case, func, or_
from vayam.extensions import db
from vayam.models import CompanyUser, Question, QuestionAccess
from vayam.services import ServiceError
from vayam.services.access import admin_org_id, within_admin_boundary
from vayam.services.invites import grant_access, revoke_access
from vayam.services.roster import add_company_users, get_company_user, import_excel
from vayam.utils.validators import clean_str, parse_id
from . import bp

EXCEL_EXTENSIONS = (".xlsx", ".xls")


def _org_or_404():
    org_id = admin_org_id(current_user)
    if not org_id:
        return None, (jsonify({"error": "No organization found. Create one first."}), 404)
    return org_id, None

def _roster_entry(org_id: int, raw_id):
    cid = parse_id(raw_id)
    if cid is None:
        return None, (jsonify({"error": "Invalid ID"}), 400)
    cu = get_company_user(org_id, cid)
    if cu is None:
        return None, (jsonify({"error": "Company user not found"}), 404)
    return cu, None

def _search(query, term: str):
    like = f"%{term.lower()}%"
    return query.filter(or_(
        func.lower(CompanyUser.name).like(like),
        func.lower(CompanyUser.email).like(like),
        func.lower(func.coalesce(CompanyUser.department, "")).like(like),
    ))


@bp.get("/company-users")
def list_company_users():
    org_id, err = _org_or_404()
    if err:
        return err
    q = CompanyUser.query.filter_by(organization_id=org_id)
    term = (request.args.get("search") or "").strip()
    if term:
        q = _search(q, term)
    rows = q.order_by(CompanyUser.created_at.desc(), CompanyUser.id.desc()).all()
    return jsonify({"success": True, "data": [r.to_dict() for r in rows]}), 200


@bp.post("/company-users")
def create_company_users():
    org_id, err = _org_or_404()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    try:
        inserted, skipped = add_company_users(org_id, data.get("users"))
    except ServiceError as e:
        body = {"error": e.message}
        if e.details is not None:
            body["details"] = e.details
        return jsonify(body), e.status

    current_app.logger.info(json.dumps({
        "event": "roster_added", "org_id": org_id, "by": current_user.id,
        "inserted": inserted, "skipped": skipped,
    }))
    return jsonify({"success": True, "inserted": inserted, "skipped": skipped}), 200


@bp.post("/company-users/import")
def import_company_users():
    org_id, err = _org_or_404()
    if err:
        return err
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return jsonify({"error": "No file uploaded"}), 400
    if not upload.filename.lower().endswith(EXCEL_EXTENSIONS):
        return jsonify({"error": "Upload an .xlsx or .xls file"}), 400
    try:
        result = import_excel(org_id, io.BytesIO(upload.read()))
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status
    return jsonify(result.to_dict()), 200


@bp.patch("/company-users/<company_user_id>")
def update_company_user(company_user_id: str):
    org_id, err = _org_or_404()
    if err:
        return err
    cu, err = _roster_entry(org_id, company_user_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    if "name" in data:
        name = clean_str(data.get("name"), 255)
        if not name:
            return jsonify({"error": "Name cannot be blank"}), 400
        cu.name = name
    if "department" in data:
        cu.department = clean_str(data.get("department"), 255)
    db.session.commit()
    return jsonify({"success": True, "data": cu.to_dict()}), 200


@bp.delete("/company-users/<company_user_id>")
def delete_company_user(company_user_id: str):
    org_id, err = _org_or_404()
    if err:
        return err
    cu, err = _roster_entry(org_id, company_user_id)
    if err:
        return err
    cid = cu.id
    QuestionAccess.query.filter_by(company_user_id=cid).delete(synchronize_session=False)
    db.session.delete(cu)
    db.session.commit()
    current_app.logger.info(json.dumps({"event": "roster_removed", "org_id": org_id, "company_user_id": cid}))
    return jsonify({"success": True}), 200


@bp.get("/company-users/with-access")
def company_users_with_access():
    org_id, err = _org_or_404()
    if err:
        return err
    q = CompanyUser.query.filter_by(organization_id=org_id)
    term = (request.args.get("search") or "").strip()
    if term:
        q = _search(q, term)
    users = q.order_by(CompanyUser.created_at.desc(), CompanyUser.id.desc()).all()

    counts = (
        db.session.query(
            QuestionAccess.company_user_id,
            func.count(QuestionAccess.id),
            func.sum(case((QuestionAccess.invite_status == "pending", 1), else_=0)),
            func.sum(case((QuestionAccess.invite_status == "sent", 1), else_=0)),
            func.sum(case((QuestionAccess.invite_status == "accepted", 1), else_=0)),
        )
        .join(CompanyUser, CompanyUser.id == QuestionAccess.company_user_id)
        .filter(CompanyUser.organization_id == org_id)
        .group_by(QuestionAccess.company_user_id)
        .all()
    )
    stats = {
        cid: {
            "totalAccess": int(total or 0),
            "pendingCount": int(pending or 0),
            "sentCount": int(sent or 0),
            "acceptedCount": int(accepted or 0),
        }
        for cid, total, pending, sent, accepted in counts
    }
    empty = {"totalAccess": 0, "pendingCount": 0, "sentCount": 0, "acceptedCount": 0}

    questions = (
        Question.query.filter(or_(Question.owner_id == current_user.id, Question.organization_id == org_id))
        .order_by(Question.created_at.desc(), Question.id.desc())
        .all()
    )
    departments = sorted({u.department for u in users if u.department})
    return jsonify({
        "success": True,
        "data": [{**u.to_dict(), "accessStats": stats.get(u.id, empty)} for u in users],
        "questions": [{"id": x.id, "title": x.title, "isActive": bool(x.is_active)} for x in questions],
        "departments": departments,
    }), 200


@bp.get("/company-users/<company_user_id>/access")
def company_user_access(company_user_id: str):
    org_id, err = _org_or_404()
    if err:
        return err
    cu, err = _roster_entry(org_id, company_user_id)
    if err:
        return err
    rows = (
        db.session.query(QuestionAccess, Question)
        .join(Question, Question.id == QuestionAccess.question_id)
        .filter(QuestionAccess.company_user_id == cu.id)
        .order_by(QuestionAccess.created_at.desc(), QuestionAccess.id.desc())
        .all()
    )
    data = [
        {
            "id": grant.id,
            "questionId": q.id,
            "questionTitle": q.title,
            "isActive": bool(q.is_active),
            "inviteStatus": grant.invite_status,
            "invitedAt": grant.invited_at.isoformat() if grant.invited_at else None,
        }
        for grant, q in rows
    ]
    return jsonify({"success": True, "data": data, "companyUser": cu.to_dict()}), 200


def _question_for_grant(raw_id):
    qid = parse_id(raw_id)
    if qid is None:
        return None, (jsonify({"error": "questionId is required"}), 400)
    q = db.session.get(Question, qid)
    if q is None or not within_admin_boundary(current_user, q):
        return None, (jsonify({"error": "Question not found"}), 404)
    return q, None


@bp.post("/company-users/<company_user_id>/access")
def grant_company_user_access(company_user_id: str):
    org_id, err = _org_or_404()
    if err:
        return err
    cu, err = _roster_entry(org_id, company_user_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    q, err = _question_for_grant(data.get("questionId"))
    if err:
        return err
    try:
        grant_access(q, cu, current_user.id)
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status

    current_app.logger.info(json.dumps({
        "event": "access_granted", "question_id": q.id, "company_user_id": cu.id, "by": current_user.id,
    }))
    return jsonify({"success": True}), 201


@bp.delete("/company-users/<company_user_id>/access")
def revoke_company_user_access(company_user_id: str):
    org_id, err = _org_or_404()
    if err:
        return err
    cu, err = _roster_entry(org_id, company_user_id)
    if err:
        return err
    q, err = _question_for_grant(request.args.get("questionId"))
    if err:
        return err
    revoke_access(q, cu)
    current_app.logger.info(json.dumps({
        "event": "access_revoked", "question_id": q.id, "company_user_id": cu.id, "by": current_user.id,
    }))
    return jsonify({"success": True}), 200
