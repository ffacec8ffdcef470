import os
# Ensure the app factory picks the Testing config & SQLite memory DB
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///:memory:")
# Webhook tests read this at import time
os.environ.setdefault("EMAIL_WEBHOOK_SECRET", "testsecret")

import pytest
from vayam import create_app
from vayam.extensions import db
from vayam.models import CompanyUser, Organization, Question, User
from vayam.models.user import ROLE_USER, USER_TYPE_REGULAR

PASSWORD = "Passw0rd!"

@pytest.fixture(scope="session")
def app():
    app = create_app()
    app.config.update(
        TESTING=True,
        MAIL_SUPPRESS_SEND=True,
        APP_BASE_URL="http://example.test",
        WTF_CSRF_ENABLED=False,
        RATELIMIT_ENABLED=False,
        INVITE_DISPATCH_INLINE=True,
        EMAIL_WEBHOOK_SECRET=os.environ.get("EMAIL_WEBHOOK_SECRET", "testsecret"),
    )
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()

@pytest.fixture()
def client(app):
    return app.test_client()

@pytest.fixture(autouse=True)
def _db_clean(app):
    # Clean BEFORE each test
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()
    yield
    # And AFTER each test (keeps state hermetic even if a test fails mid-transaction)
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()

@pytest.fixture()
def login(client):
    """Authenticate the shared test client as `user_id` (Flask-Login session key)."""
    def _login(user_id):
        with client.session_transaction() as sess:
            sess["_user_id"] = str(user_id)
            sess["_fresh"] = True
    return _login

@pytest.fixture()
def make_user(app):
    def _make(email, role=ROLE_USER, verified=True, organization_id=None,
              user_type=USER_TYPE_REGULAR, password=PASSWORD):
        with app.app_context():
            u = User(
                email=email.lower(),
                username=email.split("@")[0],
                role=role,
                is_email_verified=verified,
                organization_id=organization_id,
                user_type=user_type,
            )
            u.set_password(password)
            db.session.add(u)
            db.session.commit()
            return u.id
    return _make

@pytest.fixture()
def make_org(app):
    def _make(admin_id, name="Acme", domain=None, whitelist=None, access_link=None):
        with app.app_context():
            org = Organization(
                name=name,
                domain=domain,
                whitelisted_emails=whitelist or [],
                access_link=access_link,
                admin_user_id=admin_id,
                is_active=True,
                is_link_access_enabled=True,
            )
            db.session.add(org)
            db.session.flush()
            admin = db.session.get(User, admin_id)
            if admin is not None and admin.organization_id is None:
                admin.organization_id = org.id
            db.session.commit()
            return org.id
    return _make

@pytest.fixture()
def make_question(app):
    def _make(owner_id, title="How should the city fix potholes?", allowed_emails=None,
              organization_id=None, is_active=True, is_public=False):
        with app.app_context():
            q = Question(
                title=title,
                description="A description that is comfortably long enough.",
                tags=["roads"],
                allowed_emails=[e.lower() for e in (allowed_emails or [])],
                owner_id=owner_id,
                organization_id=organization_id,
                is_active=is_active,
                is_public=is_public,
                participant_count=0,
            )
            db.session.add(q)
            db.session.commit()
            return q.id
    return _make

@pytest.fixture()
def make_roster(app):
    def _make(org_id, email, name=None, department=None, user_id=None):
        with app.app_context():
            cu = CompanyUser(
                organization_id=org_id,
                email=email.lower(),
                name=name or email.split("@")[0],
                department=department,
                is_registered=user_id is not None,
                user_id=user_id,
            )
            db.session.add(cu)
            db.session.commit()
            return cu.id
    return _make
