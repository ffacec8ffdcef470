"""
Per-question access grants and invite batches.

send_invites() marks every unregistered grantee `sent`, records an EmailBatch,
and hands one job per recipient to a small thread pool. Each job sends through
services.email and bumps the batch counters with a single UPDATE.
"""
import json
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy import func
from vayam.extensions import db
from vayam.models import (
    CompanyUser,
    EmailBatch,
    EmailLog,
    Question,
    QuestionAccess,
    QuestionEmailTemplate,
)
from vayam.models.question_access import STATUS_ACCEPTED, STATUS_PENDING, STATUS_SENT
from . import ServiceError
from .email import invite_link, send_question_invite

DEFAULT_SUBJECT = "You're invited to join a conversation on Vayam"
DEFAULT_BODY = (
    "Hi {{name}},\n\n"
    "You have been invited to participate in \"{{questionTitle}}\" on Vayam.\n\n"
    "Click here to join: {{inviteLink}}\n\n"
    "Your perspective matters!"
)
TEMPLATE_VARIABLES = ["{{name}}", "{{questionTitle}}", "{{inviteLink}}", "{{platformUrl}}"]

_executor: Optional[ThreadPoolExecutor] = None


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    if _executor is None:
        workers = int(current_app.config.get("INVITE_WORKERS", 4))
        _executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="invite-mail")
    return _executor


# ---- templates -------------------------------------------------------------

def render_template_text(text: str, variables: dict) -> str:
    """Replace {{var}} placeholders; unknown placeholders are left as-is."""
    out = text or ""
    for key, val in variables.items():
        out = out.replace("{{" + key + "}}", str(val))
    return out

def get_email_template(question_id: int) -> Optional[QuestionEmailTemplate]:
    return QuestionEmailTemplate.query.filter_by(question_id=question_id).first()

def upsert_email_template(question_id: int, user_id: int, subject=None, body=None) -> QuestionEmailTemplate:
    if not subject and not body:
        raise ServiceError("Provide subject or body")
    tpl = get_email_template(question_id)
    if tpl is None:
        tpl = QuestionEmailTemplate(question_id=question_id, subject=subject, body=body, created_by=user_id)
        db.session.add(tpl)
    else:
        if subject is not None:
            tpl.subject = subject
        if body is not None:
            tpl.body = body
    db.session.commit()
    return tpl

def compose_invite(question: Question, name: Optional[str], email: str,
                   tpl: Optional[QuestionEmailTemplate] = None) -> tuple[str, str]:
    """Subject and plain-text body for one recipient."""
    variables = {
        "name": name or "there",
        "questionTitle": question.title,
        "questionId": question.id,
        "inviteLink": invite_link(email),
        "platformUrl": current_app.config["APP_BASE_URL"].rstrip("/"),
    }
    subject = render_template_text((tpl.subject if tpl else None) or DEFAULT_SUBJECT, variables)
    body = render_template_text((tpl.body if tpl else None) or DEFAULT_BODY, variables)
    return subject, body


# ---- grants ----------------------------------------------------------------

def _add_allowed_email(question: Question, email: str) -> None:
    emails = list(question.allowed_emails or [])
    if email.lower() not in {e.lower() for e in emails}:
        emails.append(email.lower())
        question.allowed_emails = emails

def _remove_allowed_email(question: Question, email: str) -> None:
    question.allowed_emails = [e for e in (question.allowed_emails or []) if e.lower() != email.lower()]

def grant_access(question: Question, company_user: CompanyUser, granted_by: int) -> QuestionAccess:
    """Grant one question to one roster entry. Raises ServiceError(409) on duplicates."""
    existing = QuestionAccess.query.filter_by(question_id=question.id, company_user_id=company_user.id).first()
    if existing is not None:
        raise ServiceError("Access already granted", status=409)
    grant = QuestionAccess(
        question_id=question.id,
        company_user_id=company_user.id,
        granted_by=granted_by,
        invite_status=STATUS_ACCEPTED if company_user.is_registered else STATUS_PENDING,
    )
    db.session.add(grant)
    _add_allowed_email(question, company_user.email)
    db.session.commit()
    return grant

def grant_many(question: Question, org_id: int, company_user_ids, granted_by: int) -> tuple[int, int]:
    """Bulk grant; ids outside the org or already granted are skipped. Returns (granted, skipped)."""
    ids = {int(i) for i in company_user_ids}
    roster = CompanyUser.query.filter(
        CompanyUser.organization_id == org_id,
        CompanyUser.id.in_(ids),
    ).all() if ids else []
    already = {
        r[0] for r in db.session.query(QuestionAccess.company_user_id)
        .filter(QuestionAccess.question_id == question.id).all()
    }
    granted = 0
    for cu in roster:
        if cu.id in already:
            continue
        db.session.add(QuestionAccess(
            question_id=question.id,
            company_user_id=cu.id,
            granted_by=granted_by,
            invite_status=STATUS_ACCEPTED if cu.is_registered else STATUS_PENDING,
        ))
        _add_allowed_email(question, cu.email)
        granted += 1
    db.session.commit()
    return granted, len(ids) - granted

def revoke_access(question: Question, company_user: CompanyUser) -> bool:
    grant = QuestionAccess.query.filter_by(question_id=question.id, company_user_id=company_user.id).first()
    if grant is None:
        return False
    db.session.delete(grant)
    _remove_allowed_email(question, company_user.email)
    db.session.commit()
    return True

def list_access(question_id: int) -> list[dict]:
    grants = (
        QuestionAccess.query.filter_by(question_id=question_id)
        .order_by(QuestionAccess.created_at.asc(), QuestionAccess.id.asc())
        .all()
    )
    return [g.to_dict() for g in grants]


# ---- batches ---------------------------------------------------------------

def _bump(batch_id: str, column: str) -> None:
    col = getattr(EmailBatch, column)
    db.session.execute(
        EmailBatch.__table__.update()
        .where(EmailBatch.id == batch_id)
        .values({column: col + 1})
    )
    db.session.commit()

def deliver_invite(batch_id: str, to_email: str, subject: str, body: str) -> bool:
    """Send one invite and record the outcome against its batch."""
    elog = send_question_invite(to_email, subject, body, batch_id=batch_id)
    ok = elog.status == "sent"
    _bump(batch_id, "completed" if ok else "failed")
    return ok

def _run_job(app, batch_id: str, to_email: str, subject: str, body: str) -> None:
    with app.app_context():
        try:
            deliver_invite(batch_id, to_email, subject, body)
        except Exception:
            db.session.rollback()
            _bump(batch_id, "failed")
            app.logger.exception("invite job failed batch=%s", batch_id)

def send_invites(question: Question, sender_id: int) -> dict:
    """Queue invites for every unregistered grantee of `question`."""
    rows = (
        db.session.query(QuestionAccess, CompanyUser)
        .join(CompanyUser, CompanyUser.id == QuestionAccess.company_user_id)
        .filter(QuestionAccess.question_id == question.id, CompanyUser.is_registered.is_(False))
        .order_by(QuestionAccess.id.asc())
        .all()
    )
    if not rows:
        return {"success": True, "queued": 0, "message": "All users with access are already registered"}

    tpl = get_email_template(question.id)
    batch = EmailBatch(question_id=question.id, created_by=sender_id, total=len(rows))
    db.session.add(batch)

    jobs = []
    now = datetime.utcnow()
    for grant, cu in rows:
        subject, body = compose_invite(question, cu.name, cu.email, tpl)
        jobs.append((cu.email, subject, body))
        grant.advance(STATUS_SENT)
        grant.invited_at = now
    db.session.commit()
    batch_id = batch.id

    current_app.logger.info(json.dumps({
        "event": "invites_queued",
        "question_id": question.id,
        "batch_id": batch_id,
        "queued": len(jobs),
    }))

    if current_app.config.get("INVITE_DISPATCH_INLINE"):
        for to_email, subject, body in jobs:
            deliver_invite(batch_id, to_email, subject, body)
    else:
        app = current_app._get_current_object()
        executor = _get_executor()
        for to_email, subject, body in jobs:
            executor.submit(_run_job, app, batch_id, to_email, subject, body)

    return {"success": True, "queued": len(jobs), "batchId": batch_id}

def batch_status(batch_id: str) -> Optional[dict]:
    """Progress snapshot, or None when unknown or past its TTL."""
    batch = db.session.get(EmailBatch, batch_id, populate_existing=True)
    if batch is None:
        return None
    ttl = int(current_app.config.get("INVITE_BATCH_TTL_SECONDS", 3600))
    if batch.started_at < datetime.utcnow() - timedelta(seconds=ttl):
        return None

    failed_emails = [
        r[0] for r in db.session.query(EmailLog.to_email)
        .filter(EmailLog.batch_id == batch_id, EmailLog.status == "failed")
        .order_by(EmailLog.id.asc())
        .all()
    ]
    return {
        "batchId": batch.id,
        "questionId": batch.question_id,
        "total": batch.total,
        "completed": batch.completed,
        "failed": batch.failed,
        "pending": batch.pending,
        "done": batch.done,
        "failedEmails": failed_emails,
        "startedAt": batch.started_at.isoformat(),
        "progress": batch.progress,
    }

def invite_status_counts(question_ids) -> dict:
    ids = list(question_ids)
    counts = {STATUS_PENDING: 0, STATUS_SENT: 0, STATUS_ACCEPTED: 0}
    if not ids:
        return counts
    rows = (
        db.session.query(QuestionAccess.invite_status, func.count(QuestionAccess.id))
        .filter(QuestionAccess.question_id.in_(ids))
        .group_by(QuestionAccess.invite_status)
        .all()
    )
    for status, n in rows:
        counts[status] = n
    return counts
