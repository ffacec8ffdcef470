from vayam.extensions import db
from vayam.models import CompanyUser, EmailLog, Organization, QuestionAccess, User
from vayam.models.question_access import STATUS_ACCEPTED, STATUS_PENDING
from vayam.models.user import ROLE_COMPANY_ADMIN
from vayam.services import tokens

STRONG = "Str0ng!pass"


def _signup(client, email, password=STRONG, **extra):
    return client.post("/api/auth/signup", json={"email": email, "password": password, **extra})


def test_signup_creates_unverified_user_and_sends_verification(app, client):
    resp = _signup(client, "New.Person@Example.com")
    assert resp.status_code == 201
    assert resp.get_json()["email"] == "new.person@example.com"

    with app.app_context():
        user = User.query.filter_by(email="new.person@example.com").one()
        assert user.is_email_verified is False
        assert user.check_password(STRONG)
        log = EmailLog.query.filter_by(to_email="new.person@example.com", template="verify").one()
        assert log.status == "sent"


def test_signup_rejects_weak_password(client):
    resp = _signup(client, "weak@example.com", password="short")
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["error"] == "Password validation failed"
    assert any("uppercase" in d for d in body["details"])


def test_signup_rejects_bad_email_and_missing_fields(client):
    assert _signup(client, "not-an-email").status_code == 400
    assert client.post("/api/auth/signup", json={"email": "x@example.com"}).status_code == 400


def test_signup_duplicate_is_conflict(client, make_user):
    make_user("taken@example.com")
    resp = _signup(client, "TAKEN@example.com")
    assert resp.status_code == 409


def test_login_requires_verified_email(app, client):
    _signup(client, "verifyme@example.com")
    resp = client.post("/api/auth/login", json={"email": "verifyme@example.com", "password": STRONG})
    assert resp.status_code == 403

    with app.app_context():
        token = tokens.generate("verify", "verifyme@example.com")
    resp = client.get(f"/api/auth/verify?token={token}")
    assert resp.status_code == 200

    resp = client.post("/api/auth/login", json={"email": "verifyme@example.com", "password": STRONG})
    assert resp.status_code == 200
    assert resp.get_json()["user"]["email"] == "verifyme@example.com"

    resp = client.get("/api/auth/session")
    assert resp.status_code == 200

    with app.app_context():
        assert EmailLog.query.filter_by(to_email="verifyme@example.com", template="welcome").count() == 1


def test_login_bad_credentials(client, make_user):
    make_user("someone@example.com")
    resp = client.post("/api/auth/login", json={"email": "someone@example.com", "password": "Wrong1!pass"})
    assert resp.status_code == 401
    assert client.post("/api/auth/login", json={"email": "someone@example.com"}).status_code == 400


def test_verify_rejects_tampered_token(client):
    resp = client.get("/api/auth/verify?token=garbage")
    assert resp.status_code == 400


def test_session_and_logout(client, make_user, login):
    assert client.get("/api/auth/session").status_code == 401
    uid = make_user("sess@example.com")
    login(uid)
    assert client.get("/api/auth/session").get_json()["user"]["id"] == uid
    assert client.post("/api/auth/logout").status_code == 200
    assert client.get("/api/auth/session").status_code == 401


def test_resend_verification_always_same_reply(client):
    a = client.post("/api/auth/verify/resend", json={"email": "ghost@example.com"})
    assert a.status_code == 200
    assert a.get_json()["success"] is True


def test_admin_signup_creates_org_and_company_admin(app, client):
    resp = client.post("/api/auth/admin-signup", json={
        "email": "boss@acme.io",
        "password": STRONG,
        "companyName": "Acme",
        "companyDomain": "acme.io",
    })
    assert resp.status_code == 201
    org_id = resp.get_json()["organizationId"]

    with app.app_context():
        user = User.query.filter_by(email="boss@acme.io").one()
        org = db.session.get(Organization, org_id)
        assert user.role == ROLE_COMPANY_ADMIN
        assert user.organization_id == org.id
        assert org.admin_user_id == user.id
        assert org.access_link

    clash = client.post("/api/auth/admin-signup", json={
        "email": "other@acme.io",
        "password": STRONG,
        "companyName": "Acme Two",
        "companyDomain": "acme.io",
    })
    assert clash.status_code == 409


def test_admin_signup_requires_company_name(client):
    resp = client.post("/api/auth/admin-signup", json={"email": "a@b.io", "password": STRONG})
    assert resp.status_code == 400


def test_signup_links_roster_entry_and_accepts_grants(
    app, client, make_user, make_org, make_question, make_roster
):
    admin = make_user("admin@acme.io", role=ROLE_COMPANY_ADMIN)
    org = make_org(admin)
    qid = make_question(admin, organization_id=org)
    cu = make_roster(org, "joiner@acme.io")
    with app.app_context():
        db.session.add(QuestionAccess(question_id=qid, company_user_id=cu, invite_status=STATUS_PENDING))
        db.session.commit()

    assert _signup(client, "joiner@acme.io").status_code == 201

    with app.app_context():
        entry = db.session.get(CompanyUser, cu)
        assert entry.is_registered is True
        assert entry.user_id == User.query.filter_by(email="joiner@acme.io").one().id
        grant = QuestionAccess.query.filter_by(company_user_id=cu).one()
        assert grant.invite_status == STATUS_ACCEPTED


def test_signup_with_taken_username_is_conflict(app, client, make_user):
    make_user("alice@one.com")  # username "alice"
    resp = _signup(client, "bob@two.com", username="alice")
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "Username already taken"

    with app.app_context():
        assert User.query.filter_by(email="bob@two.com").first() is None


def test_admin_signup_with_taken_username_is_conflict(app, client, make_user):
    make_user("alice@one.com")
    resp = client.post("/api/auth/admin-signup", json={
        "email": "boss@acme.io",
        "password": STRONG,
        "companyName": "Acme",
        "username": "alice",
    })
    assert resp.status_code == 409
    with app.app_context():
        assert Organization.query.count() == 0


def test_signup_derives_unique_username(app, client, make_user):
    make_user("alice@one.com")
    assert _signup(client, "alice@two.com").status_code == 201
    with app.app_context():
        user = User.query.filter_by(email="alice@two.com").one()
        assert user.username.startswith("alice-")
