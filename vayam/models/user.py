import secrets
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from sqlalchemy import func, CheckConstraint
from vayam.extensions import db, login_manager

# Keep simple text+CHECK for evolvable roles (no DB enum migration pain)
ROLE_USER = "user"
ROLE_COMPANY_ADMIN = "company_admin"
ROLE_ADMIN = "admin"
ROLE_CHOICES = (ROLE_ADMIN, ROLE_COMPANY_ADMIN, ROLE_USER)
ADMIN_ROLES = (ROLE_ADMIN, ROLE_COMPANY_ADMIN)

USER_TYPE_REGULAR = "regular"
USER_TYPE_DOMAIN = "private_domain"
USER_TYPE_WHITELIST = "private_whitelist"
USER_TYPE_LINK = "link_qr"

PROVIDER_EMAIL = "email"
PROVIDER_GOOGLE = "google"

class User(db.Model, UserMixin):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(255), unique=True, nullable=True)
    email = db.Column(db.String(255), unique=True, nullable=False)  # stored lowercased
    personal_email = db.Column(db.String(255), nullable=True)
    mobile = db.Column(db.String(15), unique=True, nullable=True)  # +91XXXXXXXXXX
    password_hash = db.Column(db.String(255), nullable=True)  # null for OAuth-created accounts
    provider = db.Column(db.String(50), nullable=False, default=PROVIDER_EMAIL)

    is_email_verified = db.Column(db.Boolean, nullable=False, default=False)
    is_mobile_verified = db.Column(db.Boolean, nullable=False, default=False)

    user_type = db.Column(db.String(50), nullable=False, default=USER_TYPE_REGULAR)
    role = db.Column(db.String(30), nullable=False, default=ROLE_USER)
    access_link_used = db.Column(db.String(255), nullable=True)
    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "role IN ('admin','company_admin','user')",
            name="ck_users_role_valid",
        ),
    )

    # helpers
    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @classmethod
    def username_taken(cls, username: str) -> bool:
        return cls.query.filter_by(username=username).first() is not None

    @classmethod
    def unique_username(cls, email: str) -> str:
        """Local part of the email, suffixed until no other account holds it."""
        base = (email.split("@")[0] or "user")[:40]
        candidate = base
        while cls.username_taken(candidate):
            candidate = f"{base}-{secrets.token_hex(2)}"
        return candidate

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_platform_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def get_id(self) -> str:
        return str(self.id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "username": self.username,
            "role": self.role,
            "userType": self.user_type,
            "organizationId": self.organization_id,
            "isEmailVerified": bool(self.is_email_verified),
            "provider": self.provider,
        }

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"

@login_manager.user_loader
def load_user(user_id: str):
    try:
        return db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        return None
