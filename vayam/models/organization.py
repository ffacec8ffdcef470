from datetime import datetime
from sqlalchemy import func
from vayam.extensions import db

ACCESS_TYPE_LINK = "public_link"
ACCESS_TYPE_QR = "qr_code"

class Organization(db.Model):
    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    domain = db.Column(db.String(255), unique=True, nullable=True)  # e.g. "companyname.com"
    access_link = db.Column(db.String(255), unique=True, nullable=True)
    whitelisted_emails = db.Column(db.JSON, nullable=False, default=list)
    # Plain id (no FK): the admin row is created before the org exists
    admin_user_id = db.Column(db.Integer, nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_link_access_enabled = db.Column(db.Boolean, nullable=False, default=True)
    access_link_expires_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "domain": self.domain,
            "accessLink": self.access_link,
            "whitelistedEmails": list(self.whitelisted_emails or []),
            "adminUserId": self.admin_user_id,
            "isActive": bool(self.is_active),
            "isLinkAccessEnabled": bool(self.is_link_access_enabled),
            "accessLinkExpiresAt": self.access_link_expires_at.isoformat() if self.access_link_expires_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class AccessLink(db.Model):
    """Tracked shareable join link (usage counted, optionally capped/expiring)."""
    __tablename__ = "access_links"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token = db.Column(db.String(255), unique=True, nullable=False)
    access_type = db.Column(db.String(50), nullable=False, default=ACCESS_TYPE_LINK)
    usage_count = db.Column(db.Integer, nullable=False, default=0)
    max_usage = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    expires_at = db.Column(db.DateTime, nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.utcnow()
        return bool(self.expires_at and self.expires_at < now)

    def __repr__(self) -> str:
        return f"<AccessLink id={self.id} org={self.organization_id} uses={self.usage_count}>"
