from typing import Any, Dict, List
from vayam.utils.validators import is_valid_email

MAX_TAGS = 10
MAX_TAG_LEN = 50
MAX_ALLOWED_EMAILS = 50

def _text(errors: Dict[str, List[str]], field: str, val: Any, lo: int, hi: int, label: str) -> None:
    if not isinstance(val, str) or not val.strip():
        errors.setdefault(field, []).append(f"{label} is required")
        return
    n = len(val.strip())
    if n < lo:
        errors.setdefault(field, []).append(f"{label} must be at least {lo} characters")
    if n > hi:
        errors.setdefault(field, []).append(f"{label} must be at most {hi} characters")

def _tags(errors: Dict[str, List[str]], val: Any) -> None:
    if val is None:
        return
    if not isinstance(val, list) or not all(isinstance(t, str) for t in val):
        errors.setdefault("tags", []).append("Tags must be a list of strings")
        return
    if len(val) > MAX_TAGS:
        errors.setdefault("tags", []).append(f"At most {MAX_TAGS} tags allowed")
    if any(len(t) > MAX_TAG_LEN for t in val):
        errors.setdefault("tags", []).append(f"Tags must be at most {MAX_TAG_LEN} characters")

def _emails(errors: Dict[str, List[str]], val: Any, required: bool) -> None:
    if val is None:
        val = []
    if not isinstance(val, list):
        errors.setdefault("allowedEmails", []).append("allowedEmails must be a list")
        return
    if required and not val:
        errors.setdefault("allowedEmails", []).append("Questions require at least one allowed email")
    if len(val) > MAX_ALLOWED_EMAILS:
        errors.setdefault("allowedEmails", []).append(f"At most {MAX_ALLOWED_EMAILS} allowed emails")
    bad = [e for e in val if not isinstance(e, str) or not is_valid_email(e.strip().lower())]
    if bad:
        errors.setdefault("allowedEmails", []).append("Invalid email address")

def _flag(errors: Dict[str, List[str]], payload: dict, field: str) -> None:
    # An explicit null is rejected; the columns are NOT NULL
    if field in payload and not isinstance(payload[field], bool):
        errors.setdefault(field, []).append(f"{field} must be a boolean")


def validate_question_create(payload: Any) -> Dict[str, List[str]]:
    """title 10-200, description 20-1000, <=10 tags, 1-50 allowed emails."""
    if not isinstance(payload, dict):
        return {"_": ["payload: must be a JSON object"]}
    errors: Dict[str, List[str]] = {}
    _text(errors, "title", payload.get("title"), 10, 200, "Title")
    _text(errors, "description", payload.get("description"), 20, 1000, "Description")
    _tags(errors, payload.get("tags"))
    _emails(errors, payload.get("allowedEmails"), required=True)
    _flag(errors, payload, "isActive")
    _flag(errors, payload, "isPublic")
    return errors

def validate_question_update(payload: Any) -> Dict[str, List[str]]:
    """title 1-500, description 1-2000; other fields optional."""
    if not isinstance(payload, dict):
        return {"_": ["payload: must be a JSON object"]}
    errors: Dict[str, List[str]] = {}
    _text(errors, "title", payload.get("title"), 1, 500, "Title")
    _text(errors, "description", payload.get("description"), 1, 2000, "Description")
    _tags(errors, payload.get("tags"))
    _emails(errors, payload.get("allowedEmails"), required=False)
    _flag(errors, payload, "isActive")
    _flag(errors, payload, "isPublic")
    return errors

def validate_solution(payload: Any) -> Dict[str, List[str]]:
    if not isinstance(payload, dict):
        return {"_": ["payload: must be a JSON object"]}
    errors: Dict[str, List[str]] = {}
    _text(errors, "title", payload.get("title"), 1, 500, "Title")
    _text(errors, "content", payload.get("content"), 1, 5000, "Content")
    return errors
