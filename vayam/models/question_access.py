from sqlalchemy import func, UniqueConstraint, CheckConstraint
from vayam.extensions import db

STATUS_PENDING = "pending"
STATUS_SENT = "sent"
STATUS_ACCEPTED = "accepted"
# Forward-only ordering of the invite lifecycle
STATUS_ORDER = (STATUS_PENDING, STATUS_SENT, STATUS_ACCEPTED)

class QuestionAccess(db.Model):
    """Grant of one question to one roster entry."""
    __tablename__ = "question_access"

    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(
        db.Integer,
        db.ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    company_user_id = db.Column(
        db.Integer,
        db.ForeignKey("company_users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    granted_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    invite_status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING)
    invited_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())

    company_user = db.relationship("CompanyUser", lazy="joined")

    __table_args__ = (
        UniqueConstraint("question_id", "company_user_id", name="uq_question_access_question_user"),
        CheckConstraint(
            "invite_status IN ('pending','sent','accepted')",
            name="ck_question_access_status_valid",
        ),
    )

    def advance(self, status: str) -> bool:
        """Move to `status` if it is later in the lifecycle. Returns True when changed."""
        if status not in STATUS_ORDER:
            raise ValueError(f"unknown invite status: {status}")
        if STATUS_ORDER.index(status) <= STATUS_ORDER.index(self.invite_status or STATUS_PENDING):
            return False
        self.invite_status = status
        return True

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "questionId": self.question_id,
            "companyUserId": self.company_user_id,
            "grantedBy": self.granted_by,
            "inviteStatus": self.invite_status,
            "invitedAt": self.invited_at.isoformat() if self.invited_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
        if self.company_user is not None:
            data.update({
                "name": self.company_user.name,
                "email": self.company_user.email,
                "department": self.company_user.department,
                "isRegistered": bool(self.company_user.is_registered),
            })
        return data
