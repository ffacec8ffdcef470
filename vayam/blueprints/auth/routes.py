import json
from flask import request, jsonify, current_app
from flask_login import login_user, logout_user, current_user
from flask_wtf.csrf import generate_csrf
from sqlalchemy import func
from vayam.extensions import db, limiter
from vayam.models import User, Organization
from vayam.models.user import (
    PROVIDER_EMAIL,
    PROVIDER_GOOGLE,
    ROLE_COMPANY_ADMIN,
    USER_TYPE_DOMAIN,
)
from vayam.services import tokens
from vayam.services.access import generate_token
from vayam.services.email import send_verification_email, send_welcome_email
from vayam.services.roster import link_registered_user
from vayam.utils.validators import clean_str, is_valid_email, normalize_email, password_errors
from . import bp

GOOGLE_ACCOUNT_MSG = "An account with this email already exists. Please sign in with Google instead."


def _login_email_scope():
    data_json = request.get_json(silent=True) or {}
    email = (data_json.get("email") or "").strip().lower()
    # Keep a stable scope even if email is blank
    return f"login-email:{email or 'missing'}"

def _find_user(email: str):
    return db.session.execute(
        db.select(User).where(func.lower(User.email) == email.lower())
    ).scalar_one_or_none()

def _pick_username(data: dict, email: str):
    """Requested username if free, else one derived from the email. Returns (username, error_response)."""
    requested = clean_str(data.get("username"), 255)
    if not requested:
        return User.unique_username(email), None
    if User.username_taken(requested):
        return None, (jsonify({"error": "Username already taken"}), 409)
    return requested, None

def _check_credentials(data: dict):
    """Shared signup validation. Returns (email, password, error_response)."""
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""
    if not email or not password:
        return None, None, (jsonify({"error": "Email and password are required"}), 400)
    if not is_valid_email(email):
        return None, None, (jsonify({"error": "Invalid email format"}), 400)
    errors = password_errors(password)
    if errors:
        return None, None, (jsonify({"error": "Password validation failed", "details": errors}), 400)
    existing = _find_user(email)
    if existing is not None:
        if existing.provider == PROVIDER_GOOGLE:
            return None, None, (jsonify({"error": GOOGLE_ACCOUNT_MSG}), 409)
        return None, None, (jsonify({"error": "User with this email already exists"}), 409)
    return email, password, None


@bp.post("/signup")
@limiter.limit("5 per minute; 20 per hour")
def signup():
    data = request.get_json(silent=True) or {}
    email, password, err = _check_credentials(data)
    if err:
        return err
    username, err = _pick_username(data, email)
    if err:
        return err

    user = User(
        email=email,
        username=username,
        provider=PROVIDER_EMAIL,
    )
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    linked = link_registered_user(user)
    send_verification_email(user)

    current_app.logger.info(json.dumps({"event": "signup", "user_id": user.id, "roster_linked": linked}))
    return jsonify({
        "message": "Account created successfully. Please check your email to verify your account.",
        "email": user.email,
    }), 201


@bp.post("/admin-signup")
@limiter.limit("5 per minute; 20 per hour")
def admin_signup():
    data = request.get_json(silent=True) or {}
    company_name = clean_str(data.get("companyName"), 255)
    if not data.get("email") or not data.get("password") or not company_name:
        return jsonify({"error": "Email, password, and company name are required"}), 400

    email, password, err = _check_credentials(data)
    if err:
        return err
    username, err = _pick_username(data, email)
    if err:
        return err

    domain = normalize_email(data.get("companyDomain"))
    if domain and Organization.query.filter(func.lower(Organization.domain) == domain).first():
        return jsonify({"error": "An organization with this domain already exists"}), 409

    user = User(
        email=email,
        username=username,
        provider=PROVIDER_EMAIL,
        user_type=USER_TYPE_DOMAIN,
        role=ROLE_COMPANY_ADMIN,
    )
    user.set_password(password)
    db.session.add(user)
    db.session.flush()

    org = Organization(
        name=company_name,
        domain=domain,
        admin_user_id=user.id,
        access_link=generate_token(),
        is_active=True,
        is_link_access_enabled=True,
    )
    db.session.add(org)
    db.session.flush()
    user.organization_id = org.id
    db.session.commit()

    link_registered_user(user)
    send_verification_email(user)

    current_app.logger.info(json.dumps({"event": "admin_signup", "user_id": user.id, "org_id": org.id}))
    return jsonify({
        "message": "Admin account created successfully. Please check your email to verify your account.",
        "email": user.email,
        "organizationId": org.id,
    }), 201


@bp.get("/verify")
def verify_email():
    token = (request.args.get("token") or "").strip()
    # TTL must match the link lifetime quoted in the email: 30 minutes
    email = tokens.verify("verify", token, max_age_seconds=tokens.VERIFY_TTL_SECONDS)
    if not email:
        return jsonify({"error": "Invalid or expired verification link"}), 400

    user = _find_user(email)
    if user is None:
        return jsonify({"error": "Invalid or expired verification link"}), 400

    if not user.is_email_verified:
        user.is_email_verified = True
        db.session.commit()
        send_welcome_email(user)

    return jsonify({"success": True, "message": "Email verified"}), 200


@bp.post("/verify/resend")
@limiter.limit("3 per hour")
def resend_verification():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    if email:
        user = _find_user(email)
        if user is not None and not user.is_email_verified:
            send_verification_email(user)
    # Always respond the same way
    return jsonify({"success": True, "message": "If the account exists, a verification email has been sent."}), 200


@bp.post("/login")
@limiter.limit("10 per minute; 100 per hour")              # per-IP (anon → IP via _rate_limit_key)
@limiter.limit("5 per minute; 20 per hour", key_func=_login_email_scope)  # per-account
def login():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""
    if not email or not password:
        return jsonify({"error": "Email and password are required"}), 400

    user = _find_user(email)
    if user is not None and user.provider == PROVIDER_GOOGLE and not user.password_hash:
        return jsonify({"error": "This account uses Google sign-in"}), 403
    if user is None or not user.check_password(password):
        return jsonify({"error": "Invalid credentials"}), 401
    if not user.is_email_verified:
        return jsonify({"error": "Please verify your email before signing in"}), 403

    login_user(user)
    return jsonify({"success": True, "user": user.to_dict()}), 200


@bp.post("/logout")
def logout():
    if current_user.is_authenticated:
        logout_user()
    return jsonify({"success": True}), 200


@bp.get("/session")
def session_info():
    if not current_user.is_authenticated:
        return jsonify({"error": "Not authenticated"}), 401
    return jsonify({"user": current_user.to_dict()}), 200


@bp.get("/csrf-token")
def csrf_token():
    return jsonify({"csrfToken": generate_csrf()}), 200
