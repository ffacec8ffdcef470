"""
Who may see, contribute to, and join what.

Question visibility:
  - platform admins and the question owner always see it (even when inactive)
  - everybody else needs an active question plus one of: public flag, email in
    the question's allowed_emails, a QuestionAccess grant through a roster entry
    (linked by user id or by email), or membership of the question's org.
"""
from dataclasses import dataclass
from datetime import datetime
import secrets
from typing import Optional

from sqlalchemy import or_, func
from vayam.extensions import db
from vayam.models import (
    Organization,
    AccessLink,
    CompanyUser,
    Question,
    QuestionAccess,
)
from vayam.models.organization import ACCESS_TYPE_LINK
from vayam.models.user import (
    ADMIN_ROLES,
    ROLE_ADMIN,
    USER_TYPE_DOMAIN,
    USER_TYPE_WHITELIST,
    USER_TYPE_LINK,
)
from vayam.utils.validators import email_domain

ACCESS_METHOD_LINK = "link_qr"
ACCESS_METHOD_DOMAIN = "domain"
ACCESS_METHOD_WHITELIST = "whitelist"


@dataclass
class AccessValidationResult:
    valid: bool
    user_type: Optional[str] = None
    organization_id: Optional[int] = None
    access_method: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "userType": self.user_type,
            "organizationId": self.organization_id,
            "accessMethod": self.access_method,
            "error": self.error,
        }


# ---- roles -----------------------------------------------------------------

def is_admin(user) -> bool:
    return bool(user is not None and getattr(user, "role", None) in ADMIN_ROLES)

def is_platform_admin(user) -> bool:
    return bool(user is not None and getattr(user, "role", None) == ROLE_ADMIN)

def admin_org_id(user) -> Optional[int]:
    """The organization an admin manages: their own, else one they own."""
    if user is None:
        return None
    if user.organization_id:
        return user.organization_id
    org = (
        db.session.query(Organization.id)
        .filter(Organization.admin_user_id == user.id, Organization.is_active.is_(True))
        .order_by(Organization.id.asc())
        .first()
    )
    return org[0] if org else None


# ---- questions -------------------------------------------------------------

def _grant_filter(user):
    """Roster rows that belong to `user` (linked id or same email)."""
    return or_(
        CompanyUser.user_id == user.id,
        func.lower(CompanyUser.email) == (user.email or "").lower(),
    )

def has_grant(user, question_id: int) -> bool:
    q = (
        db.session.query(QuestionAccess.id)
        .join(CompanyUser, CompanyUser.id == QuestionAccess.company_user_id)
        .filter(QuestionAccess.question_id == question_id, _grant_filter(user))
    )
    return db.session.query(q.exists()).scalar()

def granted_question_ids(user) -> set[int]:
    rows = (
        db.session.query(QuestionAccess.question_id)
        .join(CompanyUser, CompanyUser.id == QuestionAccess.company_user_id)
        .filter(_grant_filter(user))
        .all()
    )
    return {r[0] for r in rows}

def can_view_question(user, question: Question) -> bool:
    if user is None or question is None:
        return False
    if is_platform_admin(user) or question.owner_id == user.id:
        return True
    if not question.is_active:
        return False
    if question.is_public:
        return True
    if question.allows_email(user.email):
        return True
    if question.organization_id and user.organization_id == question.organization_id:
        return True
    return has_grant(user, question.id)

def is_hidden_from(user, question: Question) -> bool:
    """Inactive questions are reported as missing to everyone but owner and platform admins."""
    if question.is_active:
        return False
    return not (is_platform_admin(user) or question.owner_id == user.id)

def can_contribute(user, question: Question) -> bool:
    if user is None or question is None or not question.is_active:
        return False
    if question.owner_id == user.id:
        return True
    if question.allows_email(user.email):
        return True
    return has_grant(user, question.id)

def can_manage_question(user, question: Question) -> bool:
    """Edit/delete: the owning admin or a platform admin."""
    if not is_admin(user):
        return False
    return is_platform_admin(user) or question.owner_id == user.id

def within_admin_boundary(user, question: Question) -> bool:
    """Access-management screens: owner, same org, or platform admin."""
    if not is_admin(user):
        return False
    if is_platform_admin(user) or question.owner_id == user.id:
        return True
    org_id = admin_org_id(user)
    return bool(org_id and question.organization_id == org_id)


# ---- organizations ---------------------------------------------------------

def validate_organization_access(
    email: str,
    organization_id: Optional[int] = None,
    access_link: Optional[str] = None,
) -> AccessValidationResult:
    """Check link/QR first, then company domain, then the whitelist."""
    email = (email or "").strip().lower()
    q = Organization.query.filter(Organization.is_active.is_(True))
    org = None
    if organization_id:
        org = q.filter(Organization.id == organization_id).first()
    elif access_link:
        org = q.filter(Organization.access_link == access_link).first()

    if org is None:
        return AccessValidationResult(False, error="Organization not found or inactive")

    if org.access_link and access_link == org.access_link:
        if not org.is_link_access_enabled:
            return AccessValidationResult(False, error="Link access has been disabled for this organization")
        if org.access_link_expires_at and org.access_link_expires_at < datetime.utcnow():
            return AccessValidationResult(False, error="This access link has expired")
        return AccessValidationResult(
            True,
            user_type=USER_TYPE_LINK,
            organization_id=org.id,
            access_method=ACCESS_METHOD_LINK,
        )

    if org.domain and email_domain(email) == org.domain.lower():
        return AccessValidationResult(
            True,
            user_type=USER_TYPE_DOMAIN,
            organization_id=org.id,
            access_method=ACCESS_METHOD_DOMAIN,
        )

    whitelist = {e.lower() for e in (org.whitelisted_emails or [])}
    if email and email in whitelist:
        return AccessValidationResult(
            True,
            user_type=USER_TYPE_WHITELIST,
            organization_id=org.id,
            access_method=ACCESS_METHOD_WHITELIST,
        )

    return AccessValidationResult(False, error="Email not authorized for this organization")


def validate_and_track_access_link(token: str) -> AccessValidationResult:
    """Validate a tracked link and count one use of it."""
    link = AccessLink.query.filter_by(token=token, is_active=True).first()
    if link is None:
        return AccessValidationResult(False, error="Invalid or inactive access link")
    if link.is_expired():
        return AccessValidationResult(False, error="This access link has expired")
    org = db.session.get(Organization, link.organization_id)
    if org is None or not org.is_active:
        return AccessValidationResult(False, error="Organization not found or inactive")

    stmt = AccessLink.__table__.update().where(AccessLink.id == link.id)
    if link.max_usage:
        # Cap enforced in the UPDATE so concurrent joins cannot overshoot it
        stmt = stmt.where(AccessLink.usage_count < link.max_usage)
    res = db.session.execute(
        stmt.values(usage_count=AccessLink.usage_count + 1, updated_at=func.now())
    )
    if res.rowcount == 0:
        db.session.rollback()
        return AccessValidationResult(False, error="This access link has reached its usage limit")
    db.session.commit()

    return AccessValidationResult(
        True,
        user_type=USER_TYPE_LINK,
        organization_id=link.organization_id,
        access_method=ACCESS_METHOD_LINK,
    )


def generate_token(nbytes: int = 16) -> str:
    return secrets.token_hex(nbytes)

def create_access_link(
    organization_id: int,
    created_by_user_id: int,
    max_usage: Optional[int] = None,
    expires_at: Optional[datetime] = None,
    access_type: str = ACCESS_TYPE_LINK,
) -> AccessLink:
    link = AccessLink(
        organization_id=organization_id,
        token=generate_token(),
        access_type=access_type,
        max_usage=max_usage,
        expires_at=expires_at,
        created_by_user_id=created_by_user_id,
        usage_count=0,
        is_active=True,
    )
    db.session.add(link)
    db.session.commit()
    return link

def get_organization_access_link(organization_id: int) -> dict:
    link = (
        AccessLink.query.filter_by(organization_id=organization_id, is_active=True)
        .order_by(AccessLink.id.desc())
        .first()
    )
    if link is None:
        return {"token": None, "isEnabled": False, "expiresAt": None, "usageCount": 0}
    return {
        "token": link.token,
        "accessType": link.access_type,
        "isEnabled": not link.is_expired(),
        "expiresAt": link.expires_at.isoformat() if link.expires_at else None,
        "usageCount": link.usage_count or 0,
        "maxUsage": link.max_usage,
    }

def revoke_access_link(organization_id: int) -> int:
    """Deactivate every tracked link of the org. Returns how many were active."""
    n = (
        AccessLink.query.filter_by(organization_id=organization_id, is_active=True)
        .update({"is_active": False}, synchronize_session=False)
    )
    db.session.commit()
    return n
