"""
Authentication blueprint.
Handles JSON login, logout and current user lookup.
"""

from flask import Blueprint, request, session, g, jsonify
import logging

from app.database import get_session
from app.middleware import require_login
from app.services.auth_service import authenticate
from app.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)


auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


@auth_bp.route('/login', methods=['POST'])
def login():
    """Start a session for valid credentials."""
    data = request.get_json(silent=True) or {}
    user = authenticate(get_session(), data.get('email', ''), data.get('password', ''))

    if user is None:
        error = UnauthorizedError('Email o contraseña incorrectos.')
        error.status_code = 401
        raise error

    session.clear()
    session['user_id'] = user.id
    logger.info(f"User logged in: {user.email}")
    return jsonify({'status': 'success', 'user': user.to_dict()})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({'status': 'success'})


@auth_bp.route('/me')
@require_login
def me():
    user = g.user
    return jsonify({
        'status': 'success',
        'user': user.to_dict(),
        'permissions': sorted(user.permissions),
    })
