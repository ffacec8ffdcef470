from flask import jsonify
from flask_login import current_user
from sqlalchemy import func
from vayam.extensions import db
from vayam.models import CompanyUser, Organization, Question
from vayam.services.access import admin_org_id
from vayam.services.invites import batch_status, invite_status_counts
from . import bp

RECENT_USERS = 5


@bp.get("/email-status/<batch_id>")
def email_status(batch_id: str):
    status = batch_status(batch_id)
    if status is None:
        return jsonify({"error": "Batch not found or expired"}), 404
    return jsonify({"success": True, "data": status}), 200


@bp.get("/stats")
def stats():
    org_id = admin_org_id(current_user)
    if not org_id:
        return jsonify({"error": "Admin access required"}), 403

    roster = CompanyUser.query.filter_by(organization_id=org_id)
    total_users = roster.count()
    registered = roster.filter(CompanyUser.is_registered.is_(True)).count()

    owned = Question.query.filter(Question.owner_id == current_user.id, Question.organization_id == org_id)
    total_q = owned.count()
    active_q = owned.filter(Question.is_active.is_(True)).count()

    my_question_ids = [r[0] for r in db.session.query(Question.id).filter(Question.owner_id == current_user.id).all()]
    participants = (
        db.session.query(func.coalesce(func.sum(Question.participant_count), 0))
        .filter(Question.owner_id == current_user.id)
        .scalar()
    )

    org = db.session.get(Organization, org_id)
    recent = roster.order_by(CompanyUser.created_at.desc(), CompanyUser.id.desc()).limit(RECENT_USERS).all()

    return jsonify({
        "success": True,
        "data": {
            "totalUsers": total_users,
            "registeredUsers": registered,
            "unregisteredUsers": total_users - registered,
            "totalQuestions": total_q,
            "activeQuestions": active_q,
            "inactiveQuestions": total_q - active_q,
            "inviteStats": invite_status_counts(my_question_ids),
            "totalParticipants": int(participants or 0),
            "organization": (
                {"name": org.name, "domain": org.domain, "isActive": bool(org.is_active)} if org else None
            ),
            "recentUsers": [u.to_dict() for u in recent],
        },
    }), 200
