from datetime import datetime
from vayam.extensions import db

class AuditLog(db.Model):
    """Application log lines persisted by observability.DatabaseLogHandler."""
    __tablename__ = "logs"

    id = db.Column(db.Integer, primary_key=True)
    level = db.Column(db.String(20), nullable=False, index=True)
    message = db.Column(db.Text, nullable=False)
    user_id = db.Column(db.String(255), nullable=False, default="anonymous", index=True)
    is_authenticated = db.Column(db.Boolean, nullable=False, default=False)
    extra_data = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<AuditLog id={self.id} level={self.level} message={self.message[:40]}>"
