import uuid
from datetime import datetime
from vayam.extensions import db

def _new_batch_id() -> str:
    return uuid.uuid4().hex

class EmailBatch(db.Model):
    """Progress counters for one send-invites run."""
    __tablename__ = "email_batches"

    id = db.Column(db.String(32), primary_key=True, default=_new_batch_id)
    question_id = db.Column(db.Integer, db.ForeignKey("questions.id", ondelete="CASCADE"), nullable=True, index=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    total = db.Column(db.Integer, nullable=False, default=0)
    completed = db.Column(db.Integer, nullable=False, default=0)
    failed = db.Column(db.Integer, nullable=False, default=0)
    started_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @property
    def pending(self) -> int:
        return max(0, (self.total or 0) - (self.completed or 0) - (self.failed or 0))

    @property
    def done(self) -> bool:
        return self.pending == 0

    @property
    def progress(self) -> int:
        if not self.total:
            return 0
        return round(((self.completed or 0) + (self.failed or 0)) / self.total * 100)
