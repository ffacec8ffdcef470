import json

from vayam.extensions import db, mail
from vayam.models import Feedback, SmeSubmission, User
from vayam.models.user import ROLE_COMPANY_ADMIN, USER_TYPE_DOMAIN


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}


def test_unknown_route_is_json_404(client):
    resp = client.get("/api/nope")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Not found", "code": 404}


def test_profile_requires_login(client):
    assert client.get("/api/profile").status_code == 401


def test_profile_roundtrip_and_mobile_normalization(app, client, login, make_user):
    uid = make_user("ann@example.com")
    login(uid)

    resp = client.get("/api/profile")
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["email"] == "ann@example.com"
    assert data["mobile"] is None
    assert data["provider"] == "email"

    resp = client.put("/api/profile", json={"mobile": "98765 43210"})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["mobile"] == "+919876543210"
    assert resp.get_json()["data"]["isMobileVerified"] is False


def test_profile_mobile_change_resets_verification(app, client, login, make_user):
    uid = make_user("ann@example.com")
    with app.app_context():
        u = db.session.get(User, uid)
        u.mobile = "+919876543210"
        u.is_mobile_verified = True
        db.session.commit()
    login(uid)

    # Same number keeps verification
    resp = client.put("/api/profile", json={"mobile": "+919876543210"})
    assert resp.get_json()["data"]["isMobileVerified"] is True

    resp = client.put("/api/profile", json={"mobile": "9123456789"})
    assert resp.get_json()["data"]["isMobileVerified"] is False


def test_profile_rejects_invalid_and_duplicate_mobile(app, client, login, make_user):
    other = make_user("bob@example.com")
    with app.app_context():
        db.session.get(User, other).mobile = "+919876543210"
        db.session.commit()
    login(make_user("ann@example.com"))

    resp = client.put("/api/profile", json={"mobile": "12345"})
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["message"] == "Invalid data"
    assert "mobile" in body["errors"]

    resp = client.put("/api/profile", json={"mobile": "919876543210"})
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Mobile number is already registered"


def test_personal_email_only_for_private_users(client, login, make_user):
    login(make_user("ann@example.com"))
    resp = client.post("/api/users/personal-email", json={"personalEmail": "ann@gmail.com"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Personal email is only for private organization users"


def test_personal_email_set_and_notified(app, client, login, make_user):
    make_user("taken@gmail.com")
    uid = make_user("ann@acme.io", user_type=USER_TYPE_DOMAIN)
    login(uid)

    resp = client.post("/api/users/personal-email", json={"personalEmail": "not-an-email"})
    assert resp.status_code == 400

    resp = client.post("/api/users/personal-email", json={"personalEmail": "taken@gmail.com"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "This email is already registered"

    with mail.record_messages() as outbox:
        resp = client.post("/api/users/personal-email", json={"personalEmail": "Ann@Gmail.com"})
    assert resp.status_code == 200
    assert resp.get_json()["user"]["personalEmail"] == "ann@gmail.com"
    assert [m.recipients for m in outbox] == [["ann@gmail.com"]]

    got = client.get("/api/users/personal-email").get_json()
    assert got == {"email": "ann@acme.io", "personalEmail": "ann@gmail.com", "userType": USER_TYPE_DOMAIN}


def test_feedback(app, client, login, make_user):
    assert client.post("/api/feedback", json={"comment": "hi"}).status_code == 401

    uid = make_user("ann@example.com")
    login(uid)
    assert client.post("/api/feedback", json={"comment": "   "}).status_code == 400
    assert client.post("/api/feedback", json={"comment": "x" * 2001}).status_code == 400

    resp = client.post("/api/feedback", json={"comment": "Love the voting UI", "path": "/questions/1"})
    assert resp.status_code == 201
    assert resp.get_json()["data"]["comment"] == "Love the voting UI"
    with app.app_context():
        fb = Feedback.query.one()
        assert fb.user_id == uid
        assert fb.path == "/questions/1"


def test_sme_submission(app, client):
    resp = client.post("/api/sme", json={"email": "sme@example.com", "role": "Engineer"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "All fields are required"

    resp = client.post("/api/sme", json={
        "email": "bad", "role": "Engineer", "background": "Bridges", "areas": ["Transport"],
    })
    assert resp.status_code == 400

    resp = client.post("/api/sme", json={
        "email": "SME@example.com", "role": "Engineer",
        "background": "Twenty years of bridges", "areas": ["Transport", "Urban"],
    })
    assert resp.status_code == 200
    with app.app_context():
        sub = SmeSubmission.query.one()
        assert sub.email == "sme@example.com"
        assert sub.user_id is None
        assert json.loads(sub.areas) == ["Transport", "Urban"]


def test_contact_goes_to_support(app, client):
    assert client.post("/api/contact", json={"email": "a@example.com"}).status_code == 400

    with mail.record_messages() as outbox:
        resp = client.post("/api/contact", json={"email": "a@example.com", "description": "Hello team"})
    assert resp.get_json() == {"success": True}
    assert len(outbox) == 1
    assert outbox[0].recipients == [app.config["SUPPORT_EMAIL"]]
    assert "Hello team" in outbox[0].body


def test_invite_sme(app, client, login, make_user, make_org, make_question):
    admin = make_user("boss@acme.io", role=ROLE_COMPANY_ADMIN)
    org = make_org(admin)
    qid = make_question(admin, organization_id=org)

    login(make_user("plain@example.com"))
    assert client.post("/api/invite-sme", json={"emails": ["x@example.com"], "questionId": qid}).status_code == 403

    login(admin)
    assert client.post("/api/invite-sme", json={"emails": [], "questionId": qid}).status_code == 400
    assert client.post("/api/invite-sme", json={"emails": ["x@example.com"]}).status_code == 400
    assert client.post("/api/invite-sme", json={"emails": ["x@example.com"], "questionId": 99999}).status_code == 404

    with mail.record_messages() as outbox:
        resp = client.post("/api/invite-sme", json={"emails": ["x@example.com", "y@example.com"], "questionId": qid})
    assert resp.status_code == 200
    assert resp.get_json()["success"] is True
    assert len(outbox) == 2

    resp = client.post("/api/invite-sme", json={"emails": ["z@example.com", "nope"], "questionId": qid})
    body = resp.get_json()
    assert body["success"] is False
    assert body["details"] == {"successful": 1, "failed": 1}
