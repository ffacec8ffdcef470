import base64
import io
import json
from datetime import datetime, timezone

import qrcode
import qrcode.image.svg
from flask import request, jsonify, current_app, Response
from flask_login import current_user
from vayam.models import AccessLink
from vayam.models.organization import ACCESS_TYPE_LINK, ACCESS_TYPE_QR
from vayam.services import access
from vayam.services.policy import login_required_json
from . import bp
from .routes import _owned_org, join_url

QR_FORMATS = ("svg", "png", "url")


def _org_from_request(raw_id):
    if raw_id in (None, ""):
        return None, (jsonify({"error": "organizationId parameter is required"}), 400)
    org = _owned_org(raw_id)
    if org is None:
        return None, (jsonify({"error": "Forbidden"}), 403)
    return org, None


@bp.get("/access-links")
@login_required_json
def get_access_link():
    org, err = _org_from_request(request.args.get("organizationId"))
    if err:
        return err
    info = access.get_organization_access_link(org.id)
    if info.get("token"):
        info["joinUrl"] = join_url(info["token"])
    return jsonify({"success": True, **info}), 200


@bp.post("/access-links")
@login_required_json
def create_access_link():
    data = request.get_json(silent=True) or {}
    org, err = _org_from_request(data.get("organizationId"))
    if err:
        return err

    options = data.get("options") or {}
    max_usage = options.get("maxUsage")
    if max_usage is not None and (not isinstance(max_usage, int) or isinstance(max_usage, bool) or max_usage <= 0):
        return jsonify({"error": "maxUsage must be a positive integer"}), 400
    expires_at = None
    if options.get("expiresAt"):
        try:
            expires_at = datetime.fromisoformat(str(options["expiresAt"]).replace("Z", "+00:00"))
        except ValueError:
            return jsonify({"error": "expiresAt must be an ISO-8601 timestamp"}), 400
        # Stored as naive UTC
        if expires_at.tzinfo is not None:
            expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
    access_type = options.get("accessType") or ACCESS_TYPE_LINK
    if access_type not in (ACCESS_TYPE_LINK, ACCESS_TYPE_QR):
        return jsonify({"error": "accessType must be public_link or qr_code"}), 400

    link = access.create_access_link(
        org.id,
        current_user.id,
        max_usage=max_usage,
        expires_at=expires_at,
        access_type=access_type,
    )
    current_app.logger.info(json.dumps({"event": "access_link_created", "org_id": org.id, "link_id": link.id}))
    return jsonify({"success": True, "token": link.token, "joinUrl": join_url(link.token)}), 201


@bp.delete("/access-links")
@login_required_json
def revoke_access_link():
    org, err = _org_from_request(request.args.get("organizationId"))
    if err:
        return err
    revoked = access.revoke_access_link(org.id)
    current_app.logger.info(json.dumps({"event": "access_link_revoked", "org_id": org.id, "count": revoked}))
    return jsonify({"success": True, "message": "Access link revoked"}), 200


def _qr(data: str):
    qr = qrcode.QRCode(version=1, box_size=10, border=5)
    qr.add_data(data)
    qr.make(fit=True)
    return qr


@bp.get("/access-links/qr")
def access_link_qr():
    token = (request.args.get("token") or "").strip()
    fmt = (request.args.get("format") or "svg").lower()
    if not token:
        return jsonify({"error": "token parameter is required"}), 400
    if fmt not in QR_FORMATS:
        return jsonify({"error": "format must be one of svg, png, url"}), 400
    if AccessLink.query.filter_by(token=token).first() is None:
        return jsonify({"error": "Invalid access link"}), 404

    url = join_url(token)
    qr = _qr(url)
    headers = {"Cache-Control": "public, max-age=3600"}

    if fmt == "svg":
        img = qr.make_image(image_factory=qrcode.image.svg.SvgPathImage)
        buf = io.BytesIO()
        img.save(buf)
        return Response(buf.getvalue(), mimetype="image/svg+xml", headers=headers)

    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    png = buf.getvalue()
    if fmt == "png":
        return Response(png, mimetype="image/png", headers=headers)

    return jsonify({
        "joinUrl": url,
        "qrCodeUrl": "data:image/png;base64," + base64.b64encode(png).decode("ascii"),
    }), 200
