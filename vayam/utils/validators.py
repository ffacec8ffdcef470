import re

# Simple, pragmatic patterns
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_MOBILE_RE = re.compile(r"^(\+91|91)?[6-9]\d{9}$")
_SPECIAL_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")

PASSWORD_MIN_LENGTH = 8

def clean_str(val: str | None, max_len: int = 255) -> str | None:
    """
    Collapse whitespace, trim, enforce max length. Returns None if empty after cleaning.
    """
    if val is None:
        return None
    if not isinstance(val, str):
        val = str(val)
    s = re.sub(r"\s+", " ", val).strip()
    if not s:
        return None
    return s[:max_len]

def normalize_email(val: str | None) -> str | None:
    if not val or not isinstance(val, str):
        return None
    s = val.strip().lower()
    return s or None

def is_valid_email(val: str | None) -> bool:
    if not val:
        return False
    return bool(_EMAIL_RE.match(val))

def email_domain(val: str | None) -> str | None:
    if not val or "@" not in val:
        return None
    return val.rsplit("@", 1)[1].lower()

def password_errors(password: str | None) -> list[str]:
    """Return a list of human-readable strength failures (empty when strong enough)."""
    pw = password or ""
    errors = []
    if len(pw) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    if not re.search(r"[A-Z]", pw):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", pw):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"\d", pw):
        errors.append("Password must contain at least one number")
    if not _SPECIAL_RE.search(pw):
        errors.append("Password must contain at least one special character")
    return errors

def normalize_mobile(val: str | None) -> str | None:
    """
    Normalize an Indian mobile number to +91XXXXXXXXXX.
    Accepts 10 digits, or prefixed with 91 / +91. Returns None if invalid.
    """
    if not val:
        return None
    s = re.sub(r"[\s\-()]", "", val)
    if not _MOBILE_RE.match(s):
        return None
    return "+91" + s[-10:]

def text_length_error(label: str, val, min_len: int, max_len: int) -> str | None:
    """Length check for required free-text fields; returns an error message or None."""
    if not isinstance(val, str) or len(val.strip()) < min_len:
        if min_len <= 1:
            return f"{label} is required"
        return f"{label} must be at least {min_len} characters"
    if len(val.strip()) > max_len:
        return f"{label} must be at most {max_len} characters"
    return None

def parse_id(raw) -> int | None:
    """Positive integer id from a path/body value, else None."""
    if isinstance(raw, bool):
        return None
    try:
        val = int(str(raw).strip())
    except (TypeError, ValueError):
        return None
    return val if val > 0 else None
