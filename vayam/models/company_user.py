from sqlalchemy import func, UniqueConstraint
from vayam.extensions import db

class CompanyUser(db.Model):
    """Roster entry managed by an org admin; linked to a User once they sign up."""
    __tablename__ = "company_users"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    department = db.Column(db.String(255), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)  # stored lowercased
    is_registered = db.Column(db.Boolean, nullable=False, default=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("organization_id", "email", name="uq_company_users_org_email"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organizationId": self.organization_id,
            "department": self.department,
            "name": self.name,
            "email": self.email,
            "isRegistered": bool(self.is_registered),
            "userId": self.user_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
