from functools import wraps

from flask import g, jsonify
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from scoreboard.extensions import db
from scoreboard.models.user import User


def _load_current_user():
    verify_jwt_in_request()
    user_id = get_jwt_identity()
    user = db.session.get(User, str(user_id)) if user_id else None
    g.current_user = user
    return user


def auth_required(fn):
    """Verify the bearer token and load the caller's profile into g.current_user."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user = _load_current_user()
        if user is None:
            return jsonify({
                'error': 'authorization_required',
                'message': 'Authentication required. Please provide a valid token.'
            }), 401
        return fn(*args, **kwargs)
    return wrapper


def admin_required(fn):
    """Like auth_required, and the profile role must be system_admin."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user = _load_current_user()
        if user is None:
            return jsonify({
                'error': 'authorization_required',
                'message': 'Authentication required. Please provide a valid token.'
            }), 401
        if not user.is_admin:
            return jsonify({
                'error': 'forbidden',
                'message': 'Admin access required.'
            }), 403
        return fn(*args, **kwargs)
    return wrapper


def current_user():
    return getattr(g, 'current_user', None)
