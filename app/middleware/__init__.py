"""Middleware for authentication context."""
from functools import wraps
from flask import session, g, current_app
from app.database import get_session
from app.models import AppUser
from app.exceptions import UnauthorizedError


def load_user():
    """
    Load current user into g (Flask's per-request global).

    Called before each request. Sets g.user and g.user_role if authenticated.
    """
    g.user = None
    g.user_role = None

    try:
        user_id = session.get('user_id')
        if user_id:
            db_session = get_session()
            if not db_session:
                return

            user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
            if user:
                g.user = user
                g.user_role = user.role
            else:
                # Deactivated or deleted user
                session.pop('user_id', None)
    except Exception as e:
        # Avoid crashing the whole app if context loading fails
        current_app.logger.error(f"Error in load_user: {e}")


def require_login(f):
    """Decorator: require an authenticated user (401 JSON otherwise)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            error = UnauthorizedError('Debes iniciar sesión para acceder a esta función.')
            error.status_code = 401
            raise error
        return f(*args, **kwargs)
    return decorated_function
