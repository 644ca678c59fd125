import os
import logging
from datetime import datetime, timezone

from flask import current_app, jsonify, request, send_from_directory
from werkzeug.utils import secure_filename

from errors import RateLimitError, ValidationError
from giveaway_email import send_giveaway_confirmation
from schemas import GiveawayRequest, GiveawayStatusRequest
from shop_context import client_ip, get_store, parse_body

logger = logging.getLogger("giveaway_api")

ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg"}
SCREENSHOT_PLACEHOLDER_ORDER = "Screenshot provided"


def allowed_file(filename: str) -> bool:
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


def upload_dir() -> str:
    return os.path.join(current_app.config["DATA_DIR"], "uploads")


def enter_giveaway():
    payload = parse_body(GiveawayRequest)
    store = get_store()
    ip = client_ip()
    window = current_app.config["GIVEAWAY_WINDOW_MINUTES"]
    limit = current_app.config["GIVEAWAY_MAX_ENTRIES"]
    recent = store.count_recent_giveaway_entries(ip, minutes=window)
    if recent >= limit:
        logger.warning("Giveaway rate limit hit for %s (%s entries in %s min)", ip, recent, window)
        raise RateLimitError("Too many entries. Please try again later.")

    entry = store.create_giveaway_entry({
        "email": str(payload.email),
        "ip_address": ip,
        "order_id": payload.order_id or SCREENSHOT_PLACEHOLDER_ORDER,
        "screenshot_url": payload.order_screenshot,
        "product_link": payload.product_link,
    })
    if send_giveaway_confirmation(entry.email, entry.order_id):
        entry = store.mark_giveaway_email_sent(entry.id)
    return jsonify({"message": "Giveaway entry submitted successfully", "entry": entry.to_dict()}), 201


def list_entries():
    entries = sorted(get_store().get_giveaway_entries(), key=lambda e: e.created_at, reverse=True)
    return jsonify([e.to_dict() for e in entries])


def update_entry_status(entry_id: int):
    payload = parse_body(GiveawayStatusRequest)
    entry = get_store().update_giveaway_entry_status(entry_id, payload.status)
    logger.info("Giveaway entry %s marked %s", entry.id, entry.status)
    return jsonify(entry.to_dict())


def upload_screenshot():
    image = request.files.get("file") or request.files.get("image")
    if image is None or not image.filename:
        raise ValidationError("No file uploaded")
    if not allowed_file(image.filename):
        raise ValidationError("Invalid image format. Allowed types: png, jpg, jpeg.")
    max_bytes = current_app.config["UPLOAD_MAX_BYTES"]
    data = image.read()
    if len(data) > max_bytes:
        raise ValidationError(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.")

    filename = secure_filename(image.filename)
    base, ext = os.path.splitext(filename)
    filename = f"{base}_{int(datetime.now(timezone.utc).timestamp() * 1000)}{ext}"
    folder = upload_dir()
    os.makedirs(folder, exist_ok=True)
    with open(os.path.join(folder, filename), "wb") as f:
        f.write(data)
    logger.info("Stored upload %s (%s bytes)", filename, len(data))
    return jsonify({"url": f"/uploads/{filename}"}), 201


def serve_upload(filename: str):
    return send_from_directory(upload_dir(), filename)
