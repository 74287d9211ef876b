"""
Permission decorators for role-based access control.
Extends require_login with permission checks based on ROLE_PERMISSIONS.
"""

from functools import wraps
from flask import g

from app.exceptions import UnauthorizedError
from app.services.auth_service import ensure_permission


def require_permission(permission_name):
    """
    Decorator to check for specific permission.

    Permission mapping by role lives in app.models.app_user.ROLE_PERMISSIONS:
    - vendedor: create/edit quotes, send for approval
    - revisor: approve, reject, request revisions
    - comprador: set final purchase prices
    - admin: users, providers, settings

    Usage:
        @require_permission('approve_quotes')

    Args:
        permission_name: Name of the required permission

    Returns:
        Decorator function
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Must be logged in
            if not g.get('user'):
                error = UnauthorizedError('Debes iniciar sesión para acceder a esta función.')
                error.status_code = 401
                raise error

            # Raises PermissionDeniedError / InactiveUserError
            ensure_permission(g.user, permission_name)

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_any_permission(*permission_names):
    """Allow access when the user holds at least one of ``permission_names``."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not g.get('user'):
                error = UnauthorizedError('Debes iniciar sesión para acceder a esta función.')
                error.status_code = 401
                raise error

            if not any(g.user.has_permission(name) for name in permission_names):
                raise UnauthorizedError('No tienes permisos para acceder a esta función.')

            return f(*args, **kwargs)

        return decorated_function
    return decorator
