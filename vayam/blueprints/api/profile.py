import json
from flask import request, jsonify, current_app
from flask_login import current_user
from sqlalchemy import func
from vayam.extensions import db
from vayam.models import User
from vayam.models.user import USER_TYPE_REGULAR
from vayam.services.email import send_personal_email_added
from vayam.services.policy import login_required_json
from vayam.utils.validators import is_valid_email, normalize_email, normalize_mobile
from . import bp


def _profile(user: User) -> dict:
    return {
        "uid": user.id,
        "email": user.email,
        "mobile": user.mobile,
        "provider": user.provider or "email",
        "isEmailVerified": bool(user.is_email_verified),
        "isMobileVerified": bool(user.is_mobile_verified),
        "createdAt": user.created_at.isoformat() if user.created_at else None,
        "updatedAt": user.updated_at.isoformat() if user.updated_at else None,
    }


@bp.get("/profile")
@login_required_json
def get_profile():
    return jsonify({"success": True, "data": _profile(current_user)}), 200


@bp.put("/profile")
@login_required_json
def update_profile():
    data = request.get_json(silent=True) or {}
    raw = data.get("mobile")
    if raw is not None and raw != "":
        mobile = normalize_mobile(raw) if isinstance(raw, str) else None
        if mobile is None:
            return jsonify({
                "success": False,
                "message": "Invalid data",
                "errors": {"mobile": ["Mobile must be a valid Indian mobile number"]},
            }), 400

        taken = User.query.filter(User.mobile == mobile, User.id != current_user.id).first()
        if taken is not None:
            return jsonify({"success": False, "message": "Mobile number is already registered"}), 400

        if mobile != current_user.mobile:
            current_user.mobile = mobile
            # A changed number has to be verified again
            current_user.is_mobile_verified = False
        db.session.commit()

    return jsonify({
        "success": True,
        "data": _profile(current_user),
        "message": "Profile updated successfully",
    }), 200


@bp.get("/users/personal-email")
@login_required_json
def get_personal_email():
    return jsonify({
        "email": current_user.email,
        "personalEmail": current_user.personal_email,
        "userType": current_user.user_type,
    }), 200


@bp.post("/users/personal-email")
@login_required_json
def set_personal_email():
    data = request.get_json(silent=True) or {}
    personal = normalize_email(data.get("personalEmail"))
    if not personal or not is_valid_email(personal):
        return jsonify({"error": "Valid personal email is required"}), 400

    if current_user.user_type == USER_TYPE_REGULAR:
        return jsonify({"error": "Personal email is only for private organization users"}), 400

    clash = User.query.filter(
        func.lower(User.email) == personal,
        User.id != current_user.id,
    ).first()
    if clash is not None:
        return jsonify({"error": "This email is already registered"}), 400

    current_user.personal_email = personal
    db.session.commit()

    elog = send_personal_email_added(current_user)
    current_app.logger.info(json.dumps({
        "event": "personal_email_added",
        "user_id": current_user.id,
        "mail_status": elog.status,
    }))
    return jsonify({
        "success": True,
        "user": {
            "uid": current_user.id,
            "email": current_user.email,
            "personalEmail": current_user.personal_email,
        },
    }), 200
