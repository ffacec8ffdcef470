"""Company-user roster: bulk adds, Excel import, and linking accounts on signup."""
import json
import re
import zipfile
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

import pandas as pd
from flask import current_app
from sqlalchemy import func
from vayam.extensions import db
from vayam.models import CompanyUser, QuestionAccess, User
from vayam.models.question_access import STATUS_ACCEPTED
from vayam.utils.validators import clean_str, is_valid_email, normalize_email
from . import ServiceError


@dataclass
class ImportResult:
    inserted: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    total_parsed: int = 0

    def to_dict(self) -> dict:
        return {
            "success": True,
            "inserted": self.inserted,
            "skipped": self.skipped,
            "errors": self.errors,
            "totalParsed": self.total_parsed,
        }


def _existing_emails(org_id: int) -> set[str]:
    rows = db.session.query(func.lower(CompanyUser.email)).filter(CompanyUser.organization_id == org_id).all()
    return {r[0] for r in rows}

def _registered_users(emails: Iterable[str]) -> dict[str, int]:
    emails = list(emails)
    if not emails:
        return {}
    rows = db.session.query(User.id, User.email).filter(func.lower(User.email).in_(emails)).all()
    return {email.lower(): uid for uid, email in rows}

def _insert(org_id: int, entries: list[dict]) -> int:
    """Insert new roster rows, linking any that already have an account."""
    if not entries:
        return 0
    registered = _registered_users(e["email"] for e in entries)
    for e in entries:
        uid = registered.get(e["email"])
        db.session.add(CompanyUser(
            organization_id=org_id,
            department=e.get("department"),
            name=e["name"],
            email=e["email"],
            is_registered=uid is not None,
            user_id=uid,
        ))
    db.session.commit()
    return len(entries)


def add_company_users(org_id: int, incoming) -> tuple[int, int]:
    """
    Add `[{name, email, department?}]` to the org roster.
    Any invalid email rejects the whole payload. Returns (inserted, skipped).
    """
    if not isinstance(incoming, list) or not incoming:
        raise ServiceError("Provide an array of users")

    invalid = [
        (u.get("email") if isinstance(u, dict) else u)
        for u in incoming
        if not isinstance(u, dict) or not is_valid_email(normalize_email(u.get("email")))
    ]
    if invalid:
        raise ServiceError("Invalid emails", details=invalid)

    existing = _existing_emails(org_id)
    seen: set[str] = set()
    to_insert = []
    for u in incoming:
        email = normalize_email(u.get("email"))
        if email in existing or email in seen:
            continue
        seen.add(email)
        to_insert.append({
            "email": email,
            "name": clean_str(u.get("name")) or email.split("@")[0],
            "department": clean_str(u.get("department")),
        })

    inserted = _insert(org_id, to_insert)
    return inserted, len(incoming) - inserted


def _norm_header(h) -> str:
    return re.sub(r"[^a-z]", "", str(h).lower())

def _detect_columns(columns) -> dict:
    """Map 'department'/'name'/'email' onto the sheet's own header labels."""
    found = {}
    for col in columns:
        n = _norm_header(col)
        if "dept" in n or "department" in n:
            found.setdefault("department", col)
        elif "name" in n:
            found.setdefault("name", col)
        elif "email" in n or "mail" in n:
            found.setdefault("email", col)
    return found

def _cell(row, col) -> str:
    if col is None:
        return ""
    val = row.get(col)
    if val is None or (isinstance(val, float) and pd.isna(val)):
        return ""
    return str(val).strip()

def import_excel(org_id: int, stream) -> ImportResult:
    """Import roster rows from the first sheet of an .xlsx/.xls upload."""
    try:
        df = pd.read_excel(stream, sheet_name=0, dtype=str)
    except (ValueError, OSError, zipfile.BadZipFile) as e:
        raise ServiceError("Failed to read spreadsheet") from e

    if df.empty:
        raise ServiceError("No data rows found")

    cols = _detect_columns(df.columns)
    if "email" not in cols:
        raise ServiceError("Excel must have an 'email' column")

    result = ImportResult()
    parsed: list[dict] = []
    # Row numbers are 1-based with the header on row 1
    for i, row in enumerate(df.to_dict(orient="records")):
        email = _cell(row, cols["email"]).lower()
        if not is_valid_email(email):
            result.errors.append(f'Row {i + 2}: invalid email "{email}"')
            continue
        parsed.append({
            "email": email,
            "name": _cell(row, cols.get("name")) or email.split("@")[0],
            "department": _cell(row, cols.get("department")) or None,
        })

    unique: dict[str, dict] = {}
    for entry in parsed:
        unique.setdefault(entry["email"], entry)

    existing = _existing_emails(org_id)
    to_insert = [e for email, e in unique.items() if email not in existing]

    result.inserted = _insert(org_id, to_insert)
    result.skipped = len(unique) - result.inserted
    result.total_parsed = len(unique)

    current_app.logger.info(json.dumps({
        "event": "roster_import",
        "org_id": org_id,
        "rows": int(len(df.index)),
        "inserted": result.inserted,
        "skipped": result.skipped,
        "errors": len(result.errors),
    }))
    return result


def link_registered_user(user: User) -> int:
    """
    Attach a newly registered account to every roster entry with its email
    and accept the grants those entries hold. Returns roster rows linked.
    """
    email = (user.email or "").lower()
    rows = CompanyUser.query.filter(func.lower(CompanyUser.email) == email).all()
    for cu in rows:
        cu.is_registered = True
        cu.user_id = user.id
        for grant in QuestionAccess.query.filter_by(company_user_id=cu.id).all():
            grant.advance(STATUS_ACCEPTED)
    if rows:
        db.session.commit()
    return len(rows)


def get_company_user(org_id: int, company_user_id: int) -> Optional[CompanyUser]:
    return CompanyUser.query.filter_by(id=company_user_id, organization_id=org_id).first()
