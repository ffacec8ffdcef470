import hmac
import hashlib
import json
from datetime import datetime
from flask import request, jsonify, abort, current_app
from vayam.extensions import db, csrf
from vayam.models import EmailLog
from . import bp

STATUS_MAP = {
    "bounce": "bounced",
    "complaint": "complaint",
    "delivered": "delivered",
}


def _valid_signature(raw_body: bytes, timestamp: str, sig: str) -> bool:
    secret = current_app.config.get("EMAIL_WEBHOOK_SECRET")
    if not secret or not timestamp or not sig:
        return False
    mac = hmac.new(secret.encode("utf-8"), (timestamp + ".").encode("utf-8") + raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(mac, sig)


@csrf.exempt
@bp.post("/email")
def email_events():
    # Generic HMAC: X-Timestamp, X-Signature over "<timestamp>.<body>"
    timestamp = request.headers.get("X-Timestamp", "")
    signature = request.headers.get("X-Signature", "")
    raw = request.get_data() or b""

    if not _valid_signature(raw, timestamp, signature):
        abort(401)

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid payload"}), 400

    event = (payload.get("event") or "").lower()           # e.g., "bounce" | "complaint" | "delivered"
    to_email = (payload.get("email") or "").strip().lower()
    if not to_email:
        return jsonify({"error": "email required"}), 400
    provider_msg_id = payload.get("message_id")
    status = STATUS_MAP.get(event, "failed")

    log = EmailLog(
        user_id=None,
        to_email=to_email,
        template=(payload.get("template") or "unknown")[:64],
        subject=(payload.get("subject") or "")[:500],
        provider_msg_id=provider_msg_id,
        status=status,
        meta=payload,
        created_at=datetime.utcnow(),
    )
    db.session.add(log)
    db.session.commit()

    current_app.logger.info(json.dumps({
        "event": "mail_webhook",
        "to": to_email,
        "status": status,
        "provider_msg_id": provider_msg_id,
    }))

    return jsonify({"ok": True}), 200
