import json
from flask import request, jsonify, current_app
from flask_login import current_user
from sqlalchemy import func
from vayam.extensions import db
from vayam.models import AccessLink, Organization
from vayam.models.user import ROLE_COMPANY_ADMIN, ROLE_USER
from vayam.services import access
from vayam.services.policy import admin_required, login_required_json
from vayam.utils.validators import clean_str, is_valid_email, normalize_email, parse_id
from . import bp

ACCESS_METHODS = (access.ACCESS_METHOD_DOMAIN, access.ACCESS_METHOD_WHITELIST, access.ACCESS_METHOD_LINK)


def join_url(token: str) -> str:
    return f"{current_app.config['APP_BASE_URL'].rstrip('/')}/join/{token}"

def _owned_org(raw_id):
    """Org the caller administers, or None (reported as 404)."""
    oid = parse_id(raw_id)
    if oid is None:
        return None
    org = db.session.get(Organization, oid)
    if org is None:
        return None
    if org.admin_user_id != current_user.id and not access.is_platform_admin(current_user):
        return None
    return org


@bp.post("")
@login_required_json
def create_organization():
    data = request.get_json(silent=True) or {}
    name = clean_str(data.get("name"), 255)
    method = data.get("accessMethod")
    if not name or not method:
        return jsonify({"error": "Organization name and access method are required"}), 400
    if method not in ACCESS_METHODS:
        return jsonify({"error": "accessMethod must be one of domain, whitelist, link_qr"}), 400

    domain = normalize_email(data.get("domain"))
    if method == access.ACCESS_METHOD_DOMAIN and not domain:
        return jsonify({"error": "Domain is required for domain-based access"}), 400
    if domain and Organization.query.filter(func.lower(Organization.domain) == domain).first():
        return jsonify({"error": "An organization with this domain already exists"}), 409

    emails = data.get("whitelistedEmails") or []
    if not isinstance(emails, list):
        return jsonify({"error": "whitelistedEmails must be a list"}), 400
    emails = [normalize_email(e) for e in emails if isinstance(e, str)]
    emails = [e for e in dict.fromkeys(emails) if e]
    if method == access.ACCESS_METHOD_WHITELIST and not emails:
        return jsonify({"error": "Whitelisted emails are required for whitelist-based access"}), 400
    bad = [e for e in emails if not is_valid_email(e)]
    if bad:
        return jsonify({"error": "Invalid emails", "details": bad}), 400

    token = access.generate_token() if method == access.ACCESS_METHOD_LINK else None
    org = Organization(
        name=name,
        domain=domain,
        access_link=token,
        whitelisted_emails=emails,
        admin_user_id=current_user.id,
        is_active=True,
    )
    db.session.add(org)
    db.session.flush()
    current_user.organization_id = org.id
    if current_user.role == ROLE_USER:
        current_user.role = ROLE_COMPANY_ADMIN
    db.session.commit()

    current_app.logger.info(json.dumps({"event": "org_created", "org_id": org.id, "by": current_user.id, "method": method}))
    return jsonify({
        "success": True,
        "organization": org.to_dict(),
        "accessUrl": join_url(token) if token else None,
    }), 201


@bp.get("")
@login_required_json
def my_organization():
    org = db.session.get(Organization, current_user.organization_id) if current_user.organization_id else None
    return jsonify({"organization": org.to_dict() if org else None}), 200


@bp.get("/me")
@admin_required
def admin_organization():
    org_id = access.admin_org_id(current_user)
    org = db.session.get(Organization, org_id) if org_id else None
    if org is None:
        return jsonify({"error": "No organization found"}), 404
    return jsonify({"success": True, "data": org.to_dict()}), 200


@bp.patch("/<org_id>")
@login_required_json
def update_organization(org_id: str):
    if not access.is_admin(current_user):
        return jsonify({"error": "Only organization admins can update organizations"}), 403
    org = _owned_org(org_id)
    if org is None:
        return jsonify({"error": "Organization not found or unauthorized"}), 404

    data = request.get_json(silent=True) or {}
    if "name" in data:
        name = clean_str(data.get("name"), 255)
        if not name:
            return jsonify({"error": "Organization name cannot be blank"}), 400
        org.name = name
    if "domain" in data:
        domain = normalize_email(data.get("domain"))
        if domain and Organization.query.filter(
            func.lower(Organization.domain) == domain, Organization.id != org.id
        ).first():
            return jsonify({"error": "An organization with this domain already exists"}), 409
        org.domain = domain
    if "whitelistedEmails" in data:
        emails = data.get("whitelistedEmails") or []
        if not isinstance(emails, list):
            return jsonify({"error": "whitelistedEmails must be a list"}), 400
        org.whitelisted_emails = [e for e in dict.fromkeys(normalize_email(x) for x in emails if isinstance(x, str)) if e]
    for key, attr in (("isActive", "is_active"), ("isLinkAccessEnabled", "is_link_access_enabled")):
        if key in data:
            if not isinstance(data[key], bool):
                return jsonify({"error": f"{key} must be a boolean"}), 400
            setattr(org, attr, data[key])
    db.session.commit()
    return jsonify({"success": True, "organization": org.to_dict()}), 200


@bp.delete("/<org_id>")
@login_required_json
def delete_organization(org_id: str):
    if not access.is_admin(current_user):
        return jsonify({"error": "Only organization admins can delete organizations"}), 403
    org = _owned_org(org_id)
    if org is None:
        return jsonify({"error": "Organization not found or unauthorized"}), 404
    # Soft delete
    org.is_active = False
    db.session.commit()
    current_app.logger.info(json.dumps({"event": "org_deactivated", "org_id": org.id, "by": current_user.id}))
    return jsonify({"success": True, "message": "Organization deleted"}), 200


@bp.get("/validate/<access_link>")
def validate_access_link(access_link: str):
    org = Organization.query.filter_by(access_link=access_link).first()
    if org is None or not org.is_active:
        return jsonify({"valid": False, "error": "Invalid or inactive access link"}), 404
    return jsonify({"valid": True, "organization": {"id": org.id, "name": org.name}}), 200


@bp.post("/join")
@login_required_json
def join_organization():
    data = request.get_json(silent=True) or {}
    token = (data.get("accessLink") or "").strip() or None
    org_id = parse_id(data.get("organizationId")) if data.get("organizationId") is not None else None
    if not token and not org_id:
        return jsonify({"error": "accessLink or organizationId is required"}), 400

    result = None
    if token:
        if AccessLink.query.filter_by(token=token).first() is not None:
            result = access.validate_and_track_access_link(token)
    if result is None:
        result = access.validate_organization_access(current_user.email, organization_id=org_id, access_link=token)
    if not result.valid:
        return jsonify({"success": False, "error": result.error}), 403

    org = db.session.get(Organization, result.organization_id)
    if org is None or not org.is_active:
        return jsonify({"success": False, "error": "Organization not found or inactive"}), 403

    current_user.organization_id = org.id
    current_user.user_type = result.user_type
    if token:
        current_user.access_link_used = token
    db.session.commit()

    current_app.logger.info(json.dumps({
        "event": "org_joined",
        "org_id": org.id,
        "user_id": current_user.id,
        "method": result.access_method,
    }))
    return jsonify({"success": True, "organization": {"id": org.id, "name": org.name}, **result.to_dict()}), 200
