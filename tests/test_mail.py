import json
import hmac
import hashlib

from vayam.extensions import db
from vayam.models import EmailLog
from vayam.services.email import invite_link, is_suppressed, send_email
from vayam.services import tokens

def test_email_templates_render_include_action_url(app):
    with app.app_context():
        html = app.jinja_env.get_template("email/verify.html").render(
            action_url="http://example.test/verify?t=abc", user_name="Ann", token_ttl_minutes=30
        )
        txt = app.jinja_env.get_template("email/verify.txt").render(
            action_url="http://example.test/verify?t=abc", user_name="Ann", token_ttl_minutes=30
        )
        assert "http://example.test/verify?t=abc" in html
        assert "http://example.test/verify?t=abc" in txt
        assert "30 minutes" in txt


def test_question_invite_html_keeps_line_breaks_and_escapes(app):
    with app.app_context():
        html = app.jinja_env.get_template("email/question_invite.html").render(
            body="Hi <b>Ann</b>,\nline two\n\nnext paragraph"
        )
    assert "&lt;b&gt;Ann&lt;/b&gt;" in html
    assert "<br>" in html
    assert html.count("<p>") >= 2


def _sign(secret: str, timestamp: str, body: bytes) -> str:
    # HMAC(secret, f"{timestamp}." + raw_body)
    return hmac.new(secret.encode("utf-8"), (timestamp + ".").encode("utf-8") + body, hashlib.sha256).hexdigest()


def test_webhook_hmac_creates_emaillog_bounce(app, client):
    payload = {
        "event": "bounce",
        "email": "Bounced@example.com",
        "message_id": "abc123",
    }
    body = json.dumps(payload).encode("utf-8")
    ts = "1700000000"
    sig = _sign(app.config["EMAIL_WEBHOOK_SECRET"], ts, body)

    resp = client.post(
        "/webhooks/email",
        data=body,
        headers={
            "Content-Type": "application/json",
            "X-Timestamp": ts,
            "X-Signature": sig,
        },
    )
    assert resp.status_code == 200

    with app.app_context():
        row = EmailLog.query.filter_by(to_email="bounced@example.com").order_by(EmailLog.id.desc()).first()
        assert row is not None
        assert row.status == "bounced"
        assert is_suppressed("bounced@example.com") is True


def test_webhook_rejects_bad_signature(client):
    body = json.dumps({"event": "bounce", "email": "x@example.com"}).encode("utf-8")
    resp = client.post(
        "/webhooks/email",
        data=body,
        headers={"Content-Type": "application/json", "X-Timestamp": "1", "X-Signature": "deadbeef"},
    )
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Not authenticated"


def test_is_suppressed_true_for_recent_bounce(app):
    with app.app_context():
        db.session.add(EmailLog(
            user_id=None,
            to_email="toxic@example.com",
            template="unknown",
            subject="",
            status="bounced",
            meta={},
        ))
        db.session.commit()

        assert is_suppressed("toxic@example.com") is True
        assert is_suppressed("new@example.com") is False


def test_send_email_skips_suppressed_address(app):
    with app.app_context():
        db.session.add(EmailLog(to_email="gone@example.com", template="unknown", subject="", status="complaint", meta={}))
        db.session.commit()
        elog = send_email("gone@example.com", "Hello", "welcome", {"user_name": "Gone"})
        assert elog.status == "failed"
        assert elog.meta == {"reason": "suppressed"}


def test_send_email_records_transport_failure(app, monkeypatch):
    from vayam.services import email as email_service

    def _boom(msg):
        raise ConnectionRefusedError("smtp down")

    monkeypatch.setattr(email_service.mail, "send", _boom)
    with app.app_context():
        elog = send_email("someone@example.com", "Hello", "welcome", {"user_name": "S"})
        assert elog.status == "failed"
        assert "smtp down" in elog.meta["error"]


def test_invite_link(app):
    with app.app_context():
        assert invite_link("a+b@example.com") == "http://example.test/signup?ref=invite&email=a%2Bb%40example.com"


def test_token_ttl_expiry(app):
    with app.app_context():
        t = tokens.generate("verify", "user@example.com")
        # Should validate with generous max_age
        assert tokens.verify("verify", t, max_age_seconds=60) == "user@example.com"
        # Negative max_age treats every token as expired
        assert tokens.verify("verify", t, max_age_seconds=-1) is None
        # Kind is part of the signed payload
        assert tokens.verify("personal", t) is None
