from sqlalchemy import func, UniqueConstraint, CheckConstraint
from vayam.extensions import db

TARGET_SOLUTION = "solution"
TARGET_PRO = "pro"
TARGET_CON = "con"
TARGET_TYPES = (TARGET_SOLUTION, TARGET_PRO, TARGET_CON)

class Vote(db.Model):
    __tablename__ = "votes"

    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(
        db.Integer,
        db.ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    solution_id = db.Column(db.Integer, db.ForeignKey("solutions.id", ondelete="CASCADE"), nullable=True)
    pro_id = db.Column(db.Integer, db.ForeignKey("pros.id", ondelete="CASCADE"), nullable=True)
    con_id = db.Column(db.Integer, db.ForeignKey("cons.id", ondelete="CASCADE"), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    vote = db.Column(db.Integer, nullable=False)  # +1 / -1
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("vote IN (-1, 1)", name="ck_votes_value"),
        CheckConstraint(
            "(CASE WHEN solution_id IS NULL THEN 0 ELSE 1 END"
            " + CASE WHEN pro_id IS NULL THEN 0 ELSE 1 END"
            " + CASE WHEN con_id IS NULL THEN 0 ELSE 1 END) = 1",
            name="ck_votes_single_target",
        ),
        UniqueConstraint("user_id", "solution_id", name="uq_votes_user_solution"),
        UniqueConstraint("user_id", "pro_id", name="uq_votes_user_pro"),
        UniqueConstraint("user_id", "con_id", name="uq_votes_user_con"),
    )

    @staticmethod
    def target_column(target_type: str):
        return {
            TARGET_SOLUTION: Vote.solution_id,
            TARGET_PRO: Vote.pro_id,
            TARGET_CON: Vote.con_id,
        }[target_type]
