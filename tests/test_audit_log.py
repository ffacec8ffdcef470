import json

from vayam.models import AuditLog
from vayam.observability import DatabaseLogHandler


def _rows(app, message=None):
    with app.app_context():
        q = AuditLog.query.order_by(AuditLog.id.asc())
        if message is not None:
            q = q.filter_by(message=message)
        return [
            {"level": r.level, "message": r.message, "user_id": r.user_id,
             "is_authenticated": r.is_authenticated, "extra": r.extra_data}
            for r in q.all()
        ]


def test_handler_attached_once(app):
    handlers = [h for h in app.logger.handlers if isinstance(h, DatabaseLogHandler)]
    assert len(handlers) == 1


def test_authenticated_event_is_persisted(app, client, login, make_user):
    uid = make_user("ann@example.com")
    login(uid)
    resp = client.post("/api/feedback", json={"comment": "Nice"})
    assert resp.status_code == 201

    rows = _rows(app, "feedback_submitted")
    assert len(rows) == 1
    row = rows[0]
    assert row["level"] == "info"
    assert row["user_id"] == str(uid)
    assert row["is_authenticated"] is True
    assert row["extra"]["feedback_id"] == resp.get_json()["data"]["id"]
    assert row["extra"]["logger"] == app.logger.name
    assert "event" not in row["extra"]


def test_anonymous_event_is_persisted(app, client):
    resp = client.post("/api/sme", json={
        "email": "sme@example.com", "role": "Engineer", "background": "Bridges", "areas": ["Transport"],
    })
    assert resp.status_code == 200

    row = _rows(app, "sme_submission")[0]
    assert row["user_id"] == "anonymous"
    assert row["is_authenticated"] is False
    assert row["extra"]["areas"] == 1


def test_plain_and_exception_records(app):
    with app.app_context():
        app.logger.warning("rate_limited path=%s", "/api/x")
        try:
            raise ValueError("boom")
        except ValueError:
            app.logger.exception("job failed")
        app.logger.info(json.dumps(["not", "an", "event"]))

    rows = _rows(app)
    assert [r["message"] for r in rows] == ["rate_limited path=/api/x", "job failed", '["not", "an", "event"]']
    assert rows[0]["level"] == "warning"
    assert rows[1]["level"] == "error"
    assert "ValueError: boom" in rows[1]["extra"]["exc"]


def test_records_below_level_or_outside_app_context_are_dropped(app):
    app.logger.info(json.dumps({"event": "no_context"}))
    with app.app_context():
        app.logger.debug(json.dumps({"event": "too_chatty"}))
    assert _rows(app) == []
