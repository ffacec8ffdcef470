from sqlalchemy import func
from vayam.extensions import db

class Question(db.Model):
    __tablename__ = "questions"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.Text, nullable=False)
    description = db.Column(db.Text, nullable=False)
    tags = db.Column(db.JSON, nullable=False, default=list)
    participant_count = db.Column(db.Integer, nullable=False, default=0)
    # SME emails who may contribute solutions (lowercased)
    allowed_emails = db.Column(db.JSON, nullable=False, default=list)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_public = db.Column(db.Boolean, nullable=False, default=False)
    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    owner = db.relationship("User", lazy="joined")

    def allows_email(self, email: str | None) -> bool:
        if not email:
            return False
        return email.lower() in {e.lower() for e in (self.allowed_emails or [])}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "tags": list(self.tags or []),
            "participantCount": self.participant_count or 0,
            "allowedEmails": list(self.allowed_emails or []),
            "owner": self.owner_id,
            "ownerEmail": self.owner.email if self.owner else None,
            "ownerUsername": self.owner.username if self.owner else None,
            "isActive": bool(self.is_active),
            "isPublic": bool(self.is_public),
            "organizationId": self.organization_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class QuestionEmailTemplate(db.Model):
    """Admin-editable invite text, one per question."""
    __tablename__ = "question_email_templates"

    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(
        db.Integer,
        db.ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    subject = db.Column(db.String(500), nullable=True)
    body = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "questionId": self.question_id,
            "subject": self.subject,
            "body": self.body,
            "createdBy": self.created_by,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
