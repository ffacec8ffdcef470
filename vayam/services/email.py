from typing import Optional, Dict, Any
from urllib.parse import urljoin, urlencode
from datetime import datetime, timedelta
import json
import time

from flask import current_app, render_template
from flask_mail import Message
from vayam.extensions import db, mail
from vayam.models import EmailLog
from . import tokens

# Suppression lookback window
SUPPRESSION_WINDOW_DAYS = 90
SOLUTION_PREVIEW_CHARS = 150

def is_suppressed(to_email: str) -> bool:
    """
    Return True if the address should be suppressed due to a recent bounce/complaint.
    """
    cutoff = datetime.utcnow() - timedelta(days=SUPPRESSION_WINDOW_DAYS)
    q = EmailLog.query.filter(
        EmailLog.to_email == to_email.lower(),
        EmailLog.created_at >= cutoff,
        EmailLog.status.in_(("bounced", "complaint")),
    )
    return db.session.query(q.exists()).scalar()

def absolute_url(path: str) -> str:
    base = current_app.config["APP_BASE_URL"].rstrip("/") + "/"
    path = path.lstrip("/")
    return urljoin(base, path)

def invite_link(email: str) -> str:
    return absolute_url("signup?" + urlencode({"ref": "invite", "email": email}))

def _base_context() -> Dict[str, Any]:
    return {
        "product_name": current_app.config.get("PRODUCT_NAME", "Vayam"),
        "platform_url": current_app.config["APP_BASE_URL"].rstrip("/"),
        "support_email": current_app.config.get("SUPPORT_EMAIL"),
    }

def send_email(
    to_email: str,
    subject: str,
    template: str,
    context: Optional[Dict[str, Any]] = None,
    user_id: Optional[int] = None,
    batch_id: Optional[str] = None,
) -> EmailLog:
    """
    template: basename under templates/email/ without extension (e.g. 'verify').
    Renders both HTML and plaintext and records an EmailLog row; the returned
    entry's status is 'sent' or 'failed'. Never raises on transport errors.
    """
    to_email = to_email.strip().lower()
    ctx = {**_base_context(), **(context or {})}

    # Do-not-send suppression gate (derived from recent EmailLog events)
    if is_suppressed(to_email):
        elog = EmailLog(
            user_id=user_id,
            to_email=to_email,
            template=template,
            subject=subject,
            status="failed",
            batch_id=batch_id,
            meta={"reason": "suppressed"},
        )
        db.session.add(elog)
        db.session.commit()
        current_app.logger.warning(json.dumps({
            "event": "mail_send",
            "template": template,
            "to": to_email,
            "outcome": "suppressed",
        }))
        return elog

    msg = Message(recipients=[to_email], subject=subject)
    msg.body = render_template(f"email/{template}.txt", **ctx)
    msg.html = render_template(f"email/{template}.html", **ctx)

    elog = EmailLog(
        user_id=user_id,
        to_email=to_email,
        template=template,
        subject=subject,
        status="queued",
        batch_id=batch_id,
        meta={},
    )
    db.session.add(elog)
    db.session.commit()

    start = time.perf_counter()
    try:
        mail.send(msg)  # Flask-Mail returns None; no provider id over SMTP
    except Exception as ex:
        latency_ms = int((time.perf_counter() - start) * 1000)
        elog.status = "failed"
        elog.meta = {"error": str(ex)}
        db.session.commit()
        current_app.logger.warning(json.dumps({
            "event": "mail_send",
            "template": template,
            "to": to_email,
            "subject": subject,
            "outcome": "smtp_error",
            "latency_ms": latency_ms,
            "smtp_error": str(ex),
        }))
        return elog

    latency_ms = int((time.perf_counter() - start) * 1000)
    elog.status = "sent"
    db.session.commit()
    current_app.logger.info(json.dumps({
        "event": "mail_send",
        "template": template,
        "to": to_email,
        "subject": subject,
        "outcome": "sent",
        "batch_id": batch_id,
        "latency_ms": latency_ms,
    }))
    return elog

def send_verification_email(user, token_ttl_minutes: int = 30) -> EmailLog:
    token = tokens.generate("verify", user.email.lower())
    ctx = {
        "action_url": absolute_url(f"api/auth/verify?token={token}"),
        "user_name": user.username or user.email,
        "token_ttl_minutes": token_ttl_minutes,
    }
    return send_email(user.email, "Verify your email", "verify", ctx, user_id=user.id)

def send_welcome_email(user) -> EmailLog:
    ctx = {"user_name": user.username or user.email}
    return send_email(user.email, "Welcome to Vayam!", "welcome", ctx, user_id=user.id)

def send_sme_invitation(email: str, question, name: str | None = None) -> EmailLog:
    ctx = {
        "name": name or email.split("@")[0],
        "question_title": question.title,
        "question_description": question.description,
        "question_url": absolute_url(f"questions/{question.id}"),
        "invite_link": invite_link(email),
    }
    return send_email(
        email,
        f"Invitation to contribute as SME: {question.title}",
        "sme_invite",
        ctx,
    )

def send_new_solution_notification(owner, question, solution, author) -> EmailLog:
    preview = solution.content or ""
    if len(preview) > SOLUTION_PREVIEW_CHARS:
        preview = preview[:SOLUTION_PREVIEW_CHARS] + "..."
    ctx = {
        "question_title": question.title,
        "question_url": absolute_url(f"questions/{question.id}"),
        "solution_author": author.username or author.email,
        "solution_preview": preview,
    }
    return send_email(
        owner.email,
        f"New solution added to: {question.title}",
        "new_solution",
        ctx,
        user_id=owner.id,
    )

def send_question_invite(to_email: str, subject: str, body: str, batch_id: str | None = None) -> EmailLog:
    """Invite with an already-substituted subject/body (see services.invites)."""
    return send_email(to_email, subject, "question_invite", {"body": body}, batch_id=batch_id)

def send_contact_message(from_email: str, description: str) -> EmailLog:
    ctx = {"email": from_email, "description": description}
    return send_email(
        current_app.config["SUPPORT_EMAIL"],
        "New Message from Contact Form",
        "contact",
        ctx,
    )

def send_personal_email_added(user) -> EmailLog:
    ctx = {
        "user_name": user.username or "User",
        "personal_email": user.personal_email,
        "work_email": user.email,
    }
    return send_email(
        user.personal_email,
        "Personal Email Added to Your Vayam Account",
        "personal_email",
        ctx,
        user_id=user.id,
    )
