from typing import Optional

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from vayam.extensions import db
from vayam.models import (
    Con,
    Participant,
    Pro,
    Question,
    QuestionAccess,
    QuestionEmailTemplate,
    Solution,
    Vote,
)
from vayam.models.vote import TARGET_CON, TARGET_PRO, TARGET_SOLUTION


def record_participation(question_id: int, user_id: int) -> bool:
    """Add (question, user) to participants once and refresh the count. True if new."""
    exists = Participant.query.filter_by(question_id=question_id, user_id=user_id).first()
    if exists is not None:
        return False
    db.session.add(Participant(question_id=question_id, user_id=user_id))
    try:
        db.session.flush()
    except IntegrityError:
        # Lost a race with a concurrent insert for the same pair
        db.session.rollback()
        return False
    n = db.session.query(func.count(Participant.id)).filter(Participant.question_id == question_id).scalar()
    Question.query.filter_by(id=question_id).update({"participant_count": n}, synchronize_session=False)
    db.session.commit()
    return True


# ---- votes -----------------------------------------------------------------

def resolve_target(target_type: str, target_id: int):
    """Return (target, solution, question) or (None, None, None)."""
    if target_type == TARGET_SOLUTION:
        sol = db.session.get(Solution, target_id)
        target = sol
    elif target_type == TARGET_PRO:
        target = db.session.get(Pro, target_id)
        sol = db.session.get(Solution, target.solution_id) if target else None
    elif target_type == TARGET_CON:
        target = db.session.get(Con, target_id)
        sol = db.session.get(Solution, target.solution_id) if target else None
    else:
        return None, None, None
    if target is None or sol is None:
        return None, None, None
    return target, sol, db.session.get(Question, sol.question_id)

def vote_total(target_type: str, target_id: int) -> int:
    col = Vote.target_column(target_type)
    total = db.session.query(func.coalesce(func.sum(Vote.vote), 0)).filter(col == target_id).scalar()
    return int(total or 0)

def cast_vote(user_id: int, target_type: str, target_id: int, value: int, question_id: int) -> tuple[int, bool]:
    """
    Upsert the caller's vote on one target. Returns (net vote count, is_first_vote).
    """
    col = Vote.target_column(target_type)
    existing = Vote.query.filter(Vote.user_id == user_id, col == target_id).first()
    created = existing is None
    if existing is None:
        vote = Vote(user_id=user_id, vote=value, question_id=question_id)
        setattr(vote, col.key, target_id)
        db.session.add(vote)
    else:
        existing.vote = value
    db.session.commit()
    return vote_total(target_type, target_id), created

def _tallies(target_type: str, ids: list[int], user_id: int) -> dict[int, dict]:
    if not ids:
        return {}
    col = Vote.target_column(target_type)
    rows = (
        db.session.query(
            col,
            func.sum(case((Vote.vote == 1, 1), else_=0)),
            func.sum(case((Vote.vote == -1, 1), else_=0)),
            func.sum(Vote.vote),
            func.max(case((Vote.user_id == user_id, Vote.vote), else_=None)),
        )
        .filter(col.in_(ids))
        .group_by(col)
        .all()
    )
    return {
        tid: {
            "upvotes": int(up or 0),
            "downvotes": int(down or 0),
            "voteCount": int(net or 0),
            "userVote": mine,
        }
        for tid, up, down, net, mine in rows
    }

_EMPTY_TALLY = {"upvotes": 0, "downvotes": 0, "voteCount": 0, "userVote": None}


def _author(obj) -> dict:
    a = obj.author
    return {"id": obj.user_id, "email": a.email if a else None, "username": a.username if a else None}

def question_detail(question: Question, user_id: int) -> dict:
    """Question with active solutions, their pros/cons and vote tallies for `user_id`."""
    solutions = (
        Solution.query.filter_by(question_id=question.id, is_active=True)
        .order_by(Solution.created_at.asc(), Solution.id.asc())
        .all()
    )
    sol_ids = [s.id for s in solutions]
    pros = Pro.query.filter(Pro.solution_id.in_(sol_ids)).order_by(Pro.created_at.asc(), Pro.id.asc()).all() if sol_ids else []
    cons = Con.query.filter(Con.solution_id.in_(sol_ids)).order_by(Con.created_at.asc(), Con.id.asc()).all() if sol_ids else []

    sol_votes = _tallies(TARGET_SOLUTION, sol_ids, user_id)
    pro_votes = _tallies(TARGET_PRO, [p.id for p in pros], user_id)
    con_votes = _tallies(TARGET_CON, [c.id for c in cons], user_id)

    def _point(p, tallies):
        return {**p.to_dict(), "user": _author(p), **tallies.get(p.id, _EMPTY_TALLY)}

    out = []
    for s in solutions:
        tally = sol_votes.get(s.id, _EMPTY_TALLY)
        out.append({
            **s.to_dict(),
            "user": _author(s),
            "pros": [_point(p, pro_votes) for p in pros if p.solution_id == s.id],
            "cons": [_point(c, con_votes) for c in cons if c.solution_id == s.id],
            "voteCount": tally["voteCount"],
            "userVote": tally["userVote"],
        })
    return {"question": question.to_dict(), "solutions": out}


def delete_question(question: Question) -> None:
    """Remove a question and everything hanging off it, leaves first."""
    sol_ids = [r[0] for r in db.session.query(Solution.id).filter(Solution.question_id == question.id).all()]
    if sol_ids:
        pro_ids = [r[0] for r in db.session.query(Pro.id).filter(Pro.solution_id.in_(sol_ids)).all()]
        con_ids = [r[0] for r in db.session.query(Con.id).filter(Con.solution_id.in_(sol_ids)).all()]
        Vote.query.filter(Vote.solution_id.in_(sol_ids)).delete(synchronize_session=False)
        if pro_ids:
            Vote.query.filter(Vote.pro_id.in_(pro_ids)).delete(synchronize_session=False)
        if con_ids:
            Vote.query.filter(Vote.con_id.in_(con_ids)).delete(synchronize_session=False)
        Pro.query.filter(Pro.solution_id.in_(sol_ids)).delete(synchronize_session=False)
        Con.query.filter(Con.solution_id.in_(sol_ids)).delete(synchronize_session=False)
    Vote.query.filter(Vote.question_id == question.id).delete(synchronize_session=False)
    Participant.query.filter_by(question_id=question.id).delete(synchronize_session=False)
    Solution.query.filter_by(question_id=question.id).delete(synchronize_session=False)
    QuestionAccess.query.filter_by(question_id=question.id).delete(synchronize_session=False)
    QuestionEmailTemplate.query.filter_by(question_id=question.id).delete(synchronize_session=False)
    db.session.delete(question)
    db.session.commit()


def get_solution(solution_id: int) -> Optional[Solution]:
    return db.session.get(Solution, solution_id)
