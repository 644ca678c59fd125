import logging

from flask import jsonify
from flask_login import current_user, login_user, logout_user

from schemas import EmailChangeRequest, LoginRequest, PasswordChangeRequest, RegisterRequest
from shop_context import get_store, parse_body

logger = logging.getLogger("auth_api")


def register():
    payload = parse_body(RegisterRequest)
    store = get_store()
    if store.get_user_by_username(payload.username):
        return jsonify({"message": "Username already exists"}), 400
    user = store.create_user(
        username=payload.username,
        password=payload.password,
        email=payload.email or "",
        name=payload.name,
    )
    login_user(user)
    logger.info("Registered user %s (%r)", user.id, user.username)
    return jsonify(user.to_dict()), 201


def login():
    payload = parse_body(LoginRequest)
    user = get_store().authenticate(payload.username, payload.password)
    if user is None:
        return jsonify({"message": "Invalid username or password"}), 401
    login_user(user)
    return jsonify(user.to_dict())


def logout():
    logout_user()
    return ("", 200)


def me():
    return jsonify(current_user.to_dict())


def change_password():
    payload = parse_body(PasswordChangeRequest)
    store = get_store()
    if payload.current_password is not None and not store.verify_user_password(current_user.id, payload.current_password):
        return jsonify({"message": "Current password is incorrect"}), 400
    store.update_user_password(current_user.id, payload.password)
    return jsonify({"message": "Password updated successfully"})


def change_email():
    payload = parse_body(EmailChangeRequest)
    store = get_store()
    other = store.get_user_by_email(payload.email)
    if other is not None and other.id != current_user.id:
        return jsonify({"message": "Email already in use"}), 400
    user = store.update_user(current_user.id, email=payload.email)
    return jsonify(user.to_dict())
