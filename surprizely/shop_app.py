"""
Surprizely - gift storefront API.

Routes delegate to handler modules (auth_api, catalog_api, giveaway_api,
gift_chat); state lives in the JSON-backed EntityStore and the server-side
SessionStore registered on ``app.extensions``.
"""
import os
import time
import atexit
import logging
from datetime import timedelta

from flask import Flask, current_app, g, jsonify, request
from flask_cors import CORS
from flask_login import LoginManager
from pydantic import ValidationError as SchemaValidationError
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

import settings
import auth_api
import catalog_api
import gift_chat
import giveaway_api
from access_control import admin_required, login_required
from entity_store import EntityStore
from errors import ShopError
from giveaway_email import email_configured
from session_store import PeriodicFlusher, SessionStore, StoreSessionInterface
from shop_context import ENTITY_STORE_KEY, SESSION_STORE_KEY, get_session_store, get_store

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger("shop_app")

SESSIONS_FILE = "sessions.json"
FLUSHER_KEY = "surprizely.session_flusher"


def _default_config() -> dict:
    return {
        "SECRET_KEY": settings.SECRET_KEY,
        "DATA_DIR": settings.DATA_DIR,
        "ADMIN_USERNAME": settings.ADMIN_USERNAME,
        "ADMIN_PASSWORD": settings.ADMIN_PASSWORD,
        "SESSION_COOKIE_NAME": settings.SESSION_COOKIE_NAME,
        "SESSION_COOKIE_SECURE": settings.IS_PRODUCTION,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_MAX_AGE_HOURS": settings.SESSION_MAX_AGE_HOURS,
        "SESSION_FLUSH_SECONDS": settings.SESSION_FLUSH_SECONDS,
        "GIVEAWAY_MAX_ENTRIES": settings.GIVEAWAY_MAX_ENTRIES,
        "GIVEAWAY_WINDOW_MINUTES": settings.GIVEAWAY_WINDOW_MINUTES,
        "UPLOAD_MAX_BYTES": settings.UPLOAD_MAX_BYTES,
        "CORS_ORIGINS": settings.CORS_ORIGINS,
    }


def _init_state(app: Flask):
    data_dir = app.config["DATA_DIR"]
    os.makedirs(data_dir, exist_ok=True)

    store = EntityStore(data_dir)
    store.load()
    store.ensure_admin(app.config["ADMIN_USERNAME"], app.config["ADMIN_PASSWORD"])
    app.extensions[ENTITY_STORE_KEY] = store

    max_age = app.config["SESSION_MAX_AGE_HOURS"] * 3600
    sessions = SessionStore(os.path.join(data_dir, SESSIONS_FILE), max_age_seconds=max_age)
    sessions.load()
    app.extensions[SESSION_STORE_KEY] = sessions
    app.session_interface = StoreSessionInterface(sessions)

    flusher = PeriodicFlusher(sessions.flush, app.config["SESSION_FLUSH_SECONDS"])
    flusher.start()
    atexit.register(flusher.stop)
    app.extensions[FLUSHER_KEY] = flusher


def _init_login(app: Flask):
    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        try:
            return app.extensions[ENTITY_STORE_KEY].get_user(int(user_id))
        except (TypeError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"message": "Authentication required"}), 401


def _init_request_logging(app: Flask):
    @app.before_request
    def start_timer():
        g.request_started = time.perf_counter()

    @app.after_request
    def log_request(response):
        if request.path.startswith("/api"):
            started = g.get("request_started")
            elapsed_ms = int((time.perf_counter() - started) * 1000) if started else 0
            logger.info("%s %s %s in %sms", request.method, request.path, response.status_code, elapsed_ms)
        return response


def _init_error_handlers(app: Flask):
    @app.errorhandler(ShopError)
    def handle_shop_error(e: ShopError):
        return jsonify({"message": e.message}), e.status_code

    @app.errorhandler(SchemaValidationError)
    def handle_schema_error(e: SchemaValidationError):
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        message = "; ".join(str(err.get("msg", "")) for err in errors) or "Invalid request"
        return jsonify({"message": message, "errors": errors}), 400

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        if isinstance(e, HTTPException):
            return e
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500


def _register_routes(app: Flask):
    # -------------------------
    # Auth / account
    # -------------------------
    @app.route("/api/register", methods=["POST"])
    def register_route():
        return auth_api.register()

    @app.route("/api/login", methods=["POST"])
    def login_route():
        return auth_api.login()

    @app.route("/api/logout", methods=["POST"])
    def logout_route():
        return auth_api.logout()

    @app.route("/api/user", methods=["GET"])
    @login_required
    def user_route():
        return auth_api.me()

    @app.route("/api/account/password", methods=["POST"])
    @login_required
    def change_password_route():
        return auth_api.change_password()

    @app.route("/api/account/email", methods=["POST"])
    @login_required
    def change_email_route():
        return auth_api.change_email()

    # -------------------------
    # Products
    # -------------------------
    @app.route("/api/products", methods=["GET"])
    def products_route():
        return catalog_api.list_products()

    @app.route("/api/products/<int:product_id>", methods=["GET"])
    def product_route(product_id):
        return catalog_api.get_product(product_id)

    @app.route("/api/products", methods=["POST"])
    @admin_required
    def create_product_route():
        return catalog_api.create_product()

    @app.route("/api/products/<int:product_id>", methods=["PATCH"])
    @admin_required
    def update_product_route(product_id):
        return catalog_api.update_product(product_id)

    @app.route("/api/products/<int:product_id>", methods=["DELETE"])
    @admin_required
    def delete_product_route(product_id):
        return catalog_api.delete_product(product_id)

    # -------------------------
    # Wishlist
    # -------------------------
    @app.route("/api/wishlist", methods=["GET"])
    @login_required
    def wishlist_route():
        return catalog_api.get_wishlist()

    @app.route("/api/wishlist/<int:product_id>", methods=["POST"])
    @login_required
    def add_wishlist_route(product_id):
        return catalog_api.add_to_wishlist(product_id)

    @app.route("/api/wishlist/<int:product_id>", methods=["DELETE"])
    @login_required
    def remove_wishlist_route(product_id):
        return catalog_api.remove_from_wishlist(product_id)

    # -------------------------
    # Ratings
    # -------------------------
    @app.route("/api/ratings/<int:product_id>", methods=["POST"])
    @login_required
    def rate_route(product_id):
        return catalog_api.rate_product(product_id)

    @app.route("/api/ratings/<int:product_id>", methods=["GET"])
    def product_ratings_route(product_id):
        return catalog_api.get_product_ratings(product_id)

    @app.route("/api/ratings/user/<int:product_id>", methods=["GET"])
    @login_required
    def my_rating_route(product_id):
        return catalog_api.get_my_rating(product_id)

    @app.route("/api/admin/ratings", methods=["GET"])
    @admin_required
    def admin_ratings_route():
        return catalog_api.admin_list_ratings()

    @app.route("/api/admin/ratings/<int:rating_id>", methods=["PUT"])
    @admin_required
    def admin_update_rating_route(rating_id):
        return catalog_api.admin_update_rating(rating_id)

    @app.route("/api/admin/ratings/<int:rating_id>", methods=["DELETE"])
    @admin_required
    def admin_delete_rating_route(rating_id):
        return catalog_api.admin_delete_rating(rating_id)

    @app.route("/api/admin/users/<int:user_id>", methods=["GET"])
    @admin_required
    def admin_user_route(user_id):
        return catalog_api.admin_get_user(user_id)

    # -------------------------
    # Gift assistant
    # -------------------------
    @app.route("/api/chat", methods=["POST"])
    def chat_route():
        return gift_chat.chat()

    @app.route("/api/quiz", methods=["POST"])
    def quiz_route():
        return gift_chat.quiz()

    # -------------------------
    # Giveaway
    # -------------------------
    @app.route("/api/upload", methods=["POST"])
    def upload_route():
        return giveaway_api.upload_screenshot()

    @app.route("/uploads/<path:filename>", methods=["GET"])
    def uploaded_file_route(filename):
        return giveaway_api.serve_upload(filename)

    @app.route("/api/giveaway", methods=["POST"])
    def giveaway_route():
        return giveaway_api.enter_giveaway()

    @app.route("/api/admin/giveaway-entries", methods=["GET"])
    @admin_required
    def giveaway_entries_route():
        return giveaway_api.list_entries()

    @app.route("/api/admin/giveaway-entries/<int:entry_id>", methods=["PATCH"])
    @admin_required
    def giveaway_entry_status_route(entry_id):
        return giveaway_api.update_entry_status(entry_id)

    @app.route("/api/status", methods=["GET"])
    def status_route():
        return status()


def status():
    """Subsystem report: auth, data files, sessions and email."""
    store = get_store()
    sessions = get_session_store()
    flusher = current_app.extensions.get(FLUSHER_KEY)
    admin = store.get_user_by_username(current_app.config["ADMIN_USERNAME"])
    return jsonify({
        "auth": {
            "status": "ok" if admin is not None else "error",
            "adminConfigured": admin is not None,
        },
        "database": {
            "status": "error" if store.last_persistence_error else "ok",
            "loaded": store.loaded,
            "counts": store.counts(),
            "lastError": store.last_persistence_error,
        },
        "session": {
            "status": "ok",
            "activeSessions": sessions.length(),
            "flusherRunning": bool(flusher and flusher.running),
        },
        "email": {
            "status": "ok" if email_configured() else "disabled",
            "configured": email_configured(),
        },
    })


def create_app(overrides: dict = None) -> Flask:
    app = Flask(__name__)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1)
    app.config.update(_default_config())
    if overrides:
        app.config.update(overrides)
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=app.config["SESSION_MAX_AGE_HOURS"])
    app.config["MAX_CONTENT_LENGTH"] = app.config["UPLOAD_MAX_BYTES"] + 1024 * 1024

    CORS(app, supports_credentials=True, origins=app.config["CORS_ORIGINS"])

    _init_state(app)
    _init_login(app)
    _init_request_logging(app)
    _init_error_handlers(app)
    _register_routes(app)
    logger.info("Surprizely API ready (data dir %s)", app.config["DATA_DIR"])
    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=settings.PORT)
