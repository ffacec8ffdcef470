from datetime import datetime, timedelta

import pytest

from vayam.extensions import db, mail
from vayam.models import EmailBatch, EmailLog, Question, QuestionAccess
from vayam.models.question_access import STATUS_ACCEPTED, STATUS_PENDING, STATUS_SENT
from vayam.models.user import ROLE_COMPANY_ADMIN
from vayam.services.invites import DEFAULT_SUBJECT, compose_invite, render_template_text


@pytest.fixture()
def setup(make_user, make_org, make_question, make_roster):
    admin = make_user("owner@acme.io", role=ROLE_COMPANY_ADMIN)
    org = make_org(admin)
    qid = make_question(admin, title="Where should the new park go?", organization_id=org)
    member = make_user("member@acme.io")
    roster = {
        "member": make_roster(org, "member@acme.io", name="Member", user_id=member),
        "ann": make_roster(org, "ann@acme.io", name="Ann"),
        "raj": make_roster(org, "raj@acme.io", name="Raj"),
    }
    return {"admin": admin, "org": org, "qid": qid, "roster": roster, "member": member}


def _grant_all(client, setup):
    return client.post(
        f"/api/admin/questions/{setup['qid']}/access",
        json={"companyUserIds": list(setup["roster"].values()) + [999999]},
    )


def test_bulk_grant_reports_granted_and_skipped(app, client, login, setup):
    login(setup["admin"])
    resp = _grant_all(client, setup)
    assert resp.status_code == 200
    assert resp.get_json() == {"success": True, "granted": 3, "skipped": 1}

    again = _grant_all(client, setup).get_json()
    assert again["granted"] == 0

    listing = client.get(f"/api/admin/questions/{setup['qid']}/access").get_json()["data"]
    assert {row["email"]: row["inviteStatus"] for row in listing} == {
        "member@acme.io": STATUS_ACCEPTED,
        "ann@acme.io": STATUS_PENDING,
        "raj@acme.io": STATUS_PENDING,
    }
    with app.app_context():
        emails = set(db.session.get(Question, setup["qid"]).allowed_emails)
        assert {"member@acme.io", "ann@acme.io", "raj@acme.io"} <= emails


def test_bulk_grant_validation(client, login, setup):
    login(setup["admin"])
    url = f"/api/admin/questions/{setup['qid']}/access"
    assert client.post(url, json={}).status_code == 400
    assert client.post(url, json={"companyUserIds": ["x"]}).status_code == 400
    assert client.post("/api/admin/questions/abc/access", json={"companyUserIds": [1]}).status_code == 400
    assert client.post("/api/admin/questions/999999/access", json={"companyUserIds": [1]}).status_code == 404


def test_revoke_via_question_endpoint(app, client, login, setup):
    login(setup["admin"])
    _grant_all(client, setup)
    url = f"/api/admin/questions/{setup['qid']}/access"
    assert client.delete(url, json={}).status_code == 400
    assert client.delete(url, json={"companyUserId": setup["roster"]["ann"]}).status_code == 200
    with app.app_context():
        assert QuestionAccess.query.filter_by(company_user_id=setup["roster"]["ann"]).count() == 0
        assert "ann@acme.io" not in db.session.get(Question, setup["qid"]).allowed_emails


def test_other_admin_cannot_manage_question(client, make_user, make_org, login, setup):
    stranger = make_user("boss@other.io", role=ROLE_COMPANY_ADMIN)
    make_org(stranger, name="Other")
    login(stranger)
    resp = client.get(f"/api/admin/questions/{setup['qid']}/access")
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "You don't have access to this question"


def test_send_invites_tracks_batch(app, client, login, setup):
    login(setup["admin"])
    _grant_all(client, setup)

    with mail.record_messages() as outbox:
        resp = client.post(f"/api/admin/questions/{setup['qid']}/send-invites")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["queued"] == 2
    batch_id = body["batchId"]

    assert sorted(m.recipients[0] for m in outbox) == ["ann@acme.io", "raj@acme.io"]
    assert all(m.subject == DEFAULT_SUBJECT for m in outbox)
    assert "Hi Ann," in next(m.body for m in outbox if m.recipients[0] == "ann@acme.io")

    status = client.get(f"/api/admin/email-status/{batch_id}").get_json()["data"]
    assert status["total"] == 2
    assert status["completed"] == 2
    assert status["failed"] == 0
    assert status["pending"] == 0
    assert status["done"] is True
    assert status["progress"] == 100

    with app.app_context():
        grants = {g.company_user_id: g for g in QuestionAccess.query.filter_by(question_id=setup["qid"]).all()}
        assert grants[setup["roster"]["ann"]].invite_status == STATUS_SENT
        assert grants[setup["roster"]["ann"]].invited_at is not None
        assert grants[setup["roster"]["member"]].invite_status == STATUS_ACCEPTED
        assert EmailLog.query.filter_by(batch_id=batch_id).count() == 2


def test_send_invites_records_failures(app, client, login, setup):
    with app.app_context():
        db.session.add(EmailLog(to_email="raj@acme.io", template="unknown", subject="", status="bounced", meta={}))
        db.session.commit()
    login(setup["admin"])
    _grant_all(client, setup)

    batch_id = client.post(f"/api/admin/questions/{setup['qid']}/send-invites").get_json()["batchId"]
    status = client.get(f"/api/admin/email-status/{batch_id}").get_json()["data"]
    assert status["completed"] == 1
    assert status["failed"] == 1
    assert status["failedEmails"] == ["raj@acme.io"]


def test_send_invites_when_everyone_registered(client, login, setup):
    login(setup["admin"])
    client.post(
        f"/api/admin/questions/{setup['qid']}/access",
        json={"companyUserIds": [setup["roster"]["member"]]},
    )
    body = client.post(f"/api/admin/questions/{setup['qid']}/send-invites").get_json()
    assert body["queued"] == 0
    assert "batchId" not in body


def test_signup_after_invite_accepts_grant(app, client, login, setup):
    login(setup["admin"])
    _grant_all(client, setup)
    client.post(f"/api/admin/questions/{setup['qid']}/send-invites")
    client.post("/api/auth/logout")

    resp = client.post("/api/auth/signup", json={"email": "ann@acme.io", "password": "Str0ng!pass"})
    assert resp.status_code == 201
    with app.app_context():
        grant = QuestionAccess.query.filter_by(company_user_id=setup["roster"]["ann"]).one()
        assert grant.invite_status == STATUS_ACCEPTED


def test_batch_status_unknown_or_expired(app, client, login, setup):
    login(setup["admin"])
    assert client.get("/api/admin/email-status/doesnotexist").status_code == 404

    with app.app_context():
        batch = EmailBatch(
            question_id=setup["qid"],
            total=1,
            started_at=datetime.utcnow() - timedelta(seconds=app.config["INVITE_BATCH_TTL_SECONDS"] + 60),
        )
        db.session.add(batch)
        db.session.commit()
        old_id = batch.id
    resp = client.get(f"/api/admin/email-status/{old_id}")
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "Batch not found or expired"


def test_custom_email_template(app, client, login, setup):
    login(setup["admin"])
    url = f"/api/admin/questions/{setup['qid']}/email-template"

    empty = client.get(url).get_json()
    assert empty["data"] is None
    assert empty["defaults"]["subject"] == DEFAULT_SUBJECT
    assert "{{inviteLink}}" in empty["variables"]

    assert client.put(url, json={}).status_code == 400
    resp = client.put(url, json={
        "subject": "Join us on {{questionTitle}}",
        "body": "Dear {{name}},\n\nSign up here: {{inviteLink}}",
    })
    assert resp.status_code == 200
    assert client.get(url).get_json()["data"]["subject"] == "Join us on {{questionTitle}}"

    client.post(
        f"/api/admin/questions/{setup['qid']}/access",
        json={"companyUserIds": [setup["roster"]["ann"]]},
    )
    with mail.record_messages() as outbox:
        client.post(f"/api/admin/questions/{setup['qid']}/send-invites")
    assert len(outbox) == 1
    msg = outbox[0]
    assert msg.subject == "Join us on Where should the new park go?"
    assert "Dear Ann," in msg.body
    assert "http://example.test/signup?ref=invite&email=ann%40acme.io" in msg.body
    assert "<br>" not in msg.body
    assert "Dear Ann," in msg.html


def test_render_template_text_leaves_unknown_placeholders():
    out = render_template_text("Hi {{name}}, see {{other}}", {"name": "Ann"})
    assert out == "Hi Ann, see {{other}}"


def test_compose_invite_defaults(app, setup):
    with app.app_context():
        q = db.session.get(Question, setup["qid"])
        subject, body = compose_invite(q, None, "x@acme.io")
    assert subject == DEFAULT_SUBJECT
    assert body.startswith("Hi there,")
    assert '"Where should the new park go?"' in body


def test_invite_status_only_moves_forward():
    grant = QuestionAccess(invite_status=STATUS_PENDING)
    assert grant.advance(STATUS_SENT) is True
    assert grant.advance(STATUS_PENDING) is False
    assert grant.invite_status == STATUS_SENT
    assert grant.advance(STATUS_ACCEPTED) is True
    assert grant.advance(STATUS_SENT) is False
    assert grant.invite_status == STATUS_ACCEPTED
    with pytest.raises(ValueError):
        grant.advance("bogus")


def test_admin_stats(client, login, setup):
    login(setup["admin"])
    _grant_all(client, setup)
    client.post(f"/api/admin/questions/{setup['qid']}/send-invites")

    data = client.get("/api/admin/stats").get_json()["data"]
    assert data["totalUsers"] == 3
    assert data["registeredUsers"] == 1
    assert data["unregisteredUsers"] == 2
    assert data["totalQuestions"] == 1
    assert data["activeQuestions"] == 1
    assert data["inviteStats"] == {"pending": 0, "sent": 2, "accepted": 1}
    assert data["organization"]["name"] == "Acme"
    assert len(data["recentUsers"]) == 3


class _SyncExecutor:
    """Runs submitted jobs immediately, on the calling thread."""

    def __init__(self):
        self.submitted = []

    def submit(self, fn, *args):
        self.submitted.append(args)
        fn(*args)


def test_send_invites_through_worker_pool(app, client, login, setup, monkeypatch):
    from vayam.services import invites

    executor = _SyncExecutor()
    monkeypatch.setitem(app.config, "INVITE_DISPATCH_INLINE", False)
    monkeypatch.setattr(invites, "_get_executor", lambda: executor)

    login(setup["admin"])
    _grant_all(client, setup)
    with mail.record_messages() as outbox:
        body = client.post(f"/api/admin/questions/{setup['qid']}/send-invites").get_json()

    assert body["queued"] == 2
    assert len(executor.submitted) == 2
    # each job carries the app, the batch id and the rendered message
    assert all(args[0] is app and args[1] == body["batchId"] for args in executor.submitted)
    assert sorted(m.recipients[0] for m in outbox) == ["ann@acme.io", "raj@acme.io"]

    status = client.get(f"/api/admin/email-status/{body['batchId']}").get_json()["data"]
    assert status["completed"] == 2
    assert status["done"] is True


def test_worker_job_that_raises_counts_as_failed(app, client, login, setup, monkeypatch):
    from vayam.services import invites

    real_send = invites.send_question_invite

    def _send(to_email, subject, body, batch_id=None):
        if to_email == "raj@acme.io":
            raise RuntimeError("renderer exploded")
        return real_send(to_email, subject, body, batch_id=batch_id)

    monkeypatch.setitem(app.config, "INVITE_DISPATCH_INLINE", False)
    monkeypatch.setattr(invites, "_get_executor", lambda: _SyncExecutor())
    monkeypatch.setattr(invites, "send_question_invite", _send)

    login(setup["admin"])
    _grant_all(client, setup)
    resp = client.post(f"/api/admin/questions/{setup['qid']}/send-invites")
    assert resp.status_code == 200
    batch_id = resp.get_json()["batchId"]

    status = client.get(f"/api/admin/email-status/{batch_id}").get_json()["data"]
    assert status["completed"] == 1
    assert status["failed"] == 1
    assert status["pending"] == 0
    assert status["done"] is True


def test_worker_pool_is_created_once(app, monkeypatch):
    from vayam.services import invites

    monkeypatch.setattr(invites, "_executor", None)
    monkeypatch.setitem(app.config, "INVITE_WORKERS", 2)
    with app.app_context():
        pool = invites._get_executor()
        try:
            assert invites._get_executor() is pool
            assert pool._max_workers == 2
        finally:
            pool.shutdown(wait=True)
