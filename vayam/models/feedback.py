from vayam.extensions import db

class Feedback(db.Model):
    __tablename__ = "feedback"
    id = db.Column(db.Integer, primary_key=True)
    # Ids only; feedback outlives the user/org rows
    org_id = db.Column(db.Integer, nullable=True, index=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)
    path = db.Column(db.String(255), nullable=True)
    message = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), server_default=db.func.now(), nullable=False)

    __table_args__ = (
        db.Index("ix_feedback_org_created_at", "org_id", "created_at"),
    )


class SmeSubmission(db.Model):
    """Subject-matter-expert interest form."""
    __tablename__ = "sme_submissions"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)
    email = db.Column(db.String(320), nullable=False)
    role = db.Column(db.String(255), nullable=False)
    background = db.Column(db.Text, nullable=False)
    areas = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), server_default=db.func.now(), nullable=False)
