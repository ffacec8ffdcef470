import os
import json
import logging
from logging.config import dictConfig

import sentry_sdk
from flask import has_app_context, has_request_context
from flask_login import current_user
from sentry_sdk.integrations.flask import FlaskIntegration
from vayam.extensions import db
from vayam.models.audit_log import AuditLog

_EXC_FORMATTER = logging.Formatter()


def _split_payload(text: str):
    """Structured lines keep the event name as the message and the rest as extra data."""
    try:
        payload = json.loads(text)
    except ValueError:
        return text, {}
    if not isinstance(payload, dict) or "event" not in payload:
        return text, {}
    event = str(payload.pop("event"))
    return event, payload


class DatabaseLogHandler(logging.Handler):
    """
    Persists application log records to the `logs` table.

    Writes use their own engine connection, not the request session.
    Records emitted outside an application context are dropped.
    """

    def emit(self, record: logging.LogRecord) -> None:
        if not has_app_context():
            return
        try:
            message, extra = _split_payload(record.getMessage())
            extra["logger"] = record.name
            if record.exc_info:
                extra["exc"] = _EXC_FORMATTER.formatException(record.exc_info)

            user_id, authed = "anonymous", False
            if has_request_context() and current_user.is_authenticated:
                user_id, authed = str(current_user.id), True

            with db.engine.begin() as conn:
                conn.execute(AuditLog.__table__.insert().values(
                    level=record.levelname.lower(),
                    message=message,
                    user_id=user_id,
                    is_authenticated=authed,
                    extra_data=extra,
                ))
        except Exception:
            self.handleError(record)


def init_audit_log(app):
    """Attach the DB handler to app.logger (idempotent across app instances)."""
    for h in list(app.logger.handlers):
        if isinstance(h, DatabaseLogHandler):
            app.logger.removeHandler(h)
    if not app.config.get("AUDIT_LOG_ENABLED", True):
        return
    app.logger.addHandler(DatabaseLogHandler(level=app.config.get("AUDIT_LOG_LEVEL", "INFO")))

def init_logging(app):
    """Structured logs (JSON) in staging/prod; keep default console in dev/tests."""
    app_env = (os.getenv("APP_ENV", "development") or "development").lower()
    if app_env in ("staging", "production"):
        fmt = "%(asctime)s %(levelname)s %(name)s %(message)s"
        dictConfig({
            "version": 1,
            "formatters": {"json": {"()": "pythonjsonlogger.json.JsonFormatter", "fmt": fmt}},
            "handlers": {"wsgi": {"class": "logging.StreamHandler", "formatter": "json"}},
            "root": {"level": app.config.get("LOG_LEVEL", "INFO"), "handlers": ["wsgi"]},
        })
    else:
        app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

def init_sentry(app):
    """Wire Sentry if DSN present; no-op otherwise."""
    dsn = os.getenv("SENTRY_DSN")
    if not dsn:
        return
    try:
        sentry_sdk.init(
            dsn=dsn,
            integrations=[FlaskIntegration()],
            traces_sample_rate=float(os.getenv("SENTRY_TRACES", "0.0")),
            profiles_sample_rate=float(os.getenv("SENTRY_PROFILES", "0.0")),
            environment=os.getenv("APP_ENV", "development"),
        )
    except Exception as exc:
        app.logger.warning("Sentry init skipped: %s", exc)
