from functools import wraps

from flask import jsonify
from flask_login import current_user


def is_authenticated() -> bool:
    return bool(current_user and current_user.is_authenticated)


def is_admin() -> bool:
    return is_authenticated() and bool(getattr(current_user, "is_admin", False))


def login_required(f):
    @wraps(f)
    def wrapped(*args, **kwargs):
        if not is_authenticated():
            return jsonify({"message": "Authentication required"}), 401
        return f(*args, **kwargs)
    return wrapped


def admin_required(f):
    @wraps(f)
    def wrapped(*args, **kwargs):
        if not is_authenticated():
            return jsonify({"message": "Authentication required"}), 401
        if not is_admin():
            return jsonify({"message": "Admin access required"}), 403
        return f(*args, **kwargs)
    return wrapped
