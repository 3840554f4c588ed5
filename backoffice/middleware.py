"""Middleware for bearer-token authentication."""
from functools import wraps
import jwt
from flask import g, request, jsonify, current_app


def load_actor():
    """
    Load the acting user into g from the Authorization header.

    Called before each request. Sets g.actor_id (JWT `sub`) and g.actor_role
    when a valid bearer token is present; both stay None otherwise.
    """
    g.actor_id = None
    g.actor_role = None

    header = request.headers.get('Authorization', '')
    if not header.startswith('Bearer '):
        return
    token = header[len('Bearer '):].strip()
    if not token:
        return

    try:
        payload = jwt.decode(
            token,
            current_app.config['SECRET_KEY'],
            algorithms=[current_app.config.get('JWT_ALGORITHM', 'HS256')]
        )
    except jwt.ExpiredSignatureError:
        current_app.logger.info("Rejected expired bearer token")
        return
    except jwt.InvalidTokenError as e:
        current_app.logger.warning(f"Rejected invalid bearer token: {e}")
        return

    subject = payload.get('sub')
    if subject:
        g.actor_id = str(subject)
        g.actor_role = payload.get('role')


def require_auth(f):
    """Decorator: require a valid bearer token (401 otherwise)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('actor_id') is None:
            return jsonify({'status': 'error', 'message': 'Authentication required'}), 401
        return f(*args, **kwargs)
    return decorated_function


def require_role(*roles):
    """
    Decorator: require one of the given roles.

    Must be used AFTER require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if g.get('actor_role') not in roles:
                return jsonify({'status': 'error', 'message': 'Insufficient permissions'}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator
