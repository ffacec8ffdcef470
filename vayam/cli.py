import click
from flask.cli import with_appcontext
from sqlalchemy import func
from vayam.extensions import db
from vayam.models import User, Organization
from vayam.models.user import ROLE_ADMIN, ROLE_COMPANY_ADMIN, ROLE_USER
from vayam.services.roster import link_registered_user
from vayam.utils.validators import is_valid_email, normalize_email, password_errors


def _find_user(email: str):
    return db.session.query(User).filter(func.lower(User.email) == email.lower()).one_or_none()

def _new_user(email: str, password: str, role: str) -> User:
    email = normalize_email(email)
    if not email or not is_valid_email(email):
        raise click.ClickException("Invalid email")
    errors = password_errors(password)
    if errors:
        raise click.ClickException("; ".join(errors))
    # fail fast if user exists
    if _find_user(email) is not None:
        raise click.ClickException("User already exists")

    user = User(email=email, username=User.unique_username(email), role=role, is_email_verified=True)
    user.set_password(password)
    db.session.add(user)
    db.session.flush()
    return user

@click.group()
def bootstrap():
    """Bootstrap helpers."""

@bootstrap.command("admin")
@click.option("--email", required=True)
@click.option("--password", required=True)
@with_appcontext
def bootstrap_admin(email, password):
    """Create the platform admin account."""
    user = _new_user(email, password, ROLE_ADMIN)
    db.session.commit()
    click.echo(f"Bootstrap complete: admin_user_id={user.id} email={user.email}")

@click.group()
def users():
    """User management."""

@users.command("create")
@click.option("--email", required=True)
@click.option("--password", required=True)
@click.option("--org-id", type=int, default=None, help="Existing organization id")
@click.option("--role", type=click.Choice([ROLE_USER, ROLE_COMPANY_ADMIN]), default=ROLE_USER)
@with_appcontext
def users_create(email, password, org_id, role):
    org = None
    if org_id is not None:
        org = db.session.get(Organization, org_id)
        if not org:
            raise click.ClickException(f"Organization id {org_id} not found")

    user = _new_user(email, password, role)
    if org is not None:
        user.organization_id = org.id
        if role == ROLE_COMPANY_ADMIN and not org.admin_user_id:
            org.admin_user_id = user.id
    db.session.commit()
    link_registered_user(user)

    click.echo(f"User created id={user.id} email={user.email} org_id={user.organization_id} role={role}")

@click.group()
def members():
    """Role ops."""

@members.command("promote")
@click.option("--email", required=True)
@click.option("--role", type=click.Choice([ROLE_COMPANY_ADMIN, ROLE_ADMIN]), required=True)
@click.option("--org-id", type=int, default=None, help="Organization the admin will manage")
@with_appcontext
def members_promote(email, role, org_id):
    user = _find_user(email)
    if not user:
        raise click.ClickException("User not found")
    if org_id is not None:
        org = db.session.get(Organization, org_id)
        if not org:
            raise click.ClickException(f"Organization id {org_id} not found")
        user.organization_id = org.id
        if not org.admin_user_id:
            org.admin_user_id = user.id
    user.role = role
    db.session.commit()
    click.echo(f"Promoted {user.email} to {role}")

@members.command("demote")
@click.option("--email", required=True)
@with_appcontext
def members_demote(email):
    user = _find_user(email)
    if not user:
        raise click.ClickException("User not found")

    # Safety rail: cannot demote the last platform admin
    if user.role == ROLE_ADMIN:
        admins = db.session.query(User).filter_by(role=ROLE_ADMIN).count()
        if admins <= 1:
            raise click.ClickException("Refused: cannot demote the last platform admin")

    user.role = ROLE_USER
    db.session.commit()
    click.echo(f"Demoted {user.email} to {ROLE_USER}")

def register_cli(app):
    app.cli.add_command(bootstrap)
    app.cli.add_command(users)
    app.cli.add_command(members)
