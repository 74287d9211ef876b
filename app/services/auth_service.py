"""
Authentication and permission service.

Actors are AppUser instances or plain dicts following the identity provider
contract ({id, email, displayName, role, isActive}). Workflow guards check
permission membership, never role names.
"""
import re
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import AppUser, UserRole, permissions_for
from app.exceptions import (
    PermissionDeniedError, InactiveUserError, ValidationError, BusinessLogicError
)

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


def _get(actor, *names, default=None):
    """Read the first present attribute/key among ``names``."""
    if actor is None:
        return default
    for name in names:
        if isinstance(actor, dict):
            if name in actor and actor[name] is not None:
                return actor[name]
        elif getattr(actor, name, None) is not None:
            return getattr(actor, name)
    return default


def actor_role(actor):
    return _get(actor, 'role')


def actor_email(actor):
    return _get(actor, 'email', default='')


def actor_display_name(actor):
    return _get(actor, 'display_name', 'displayName', default='') or actor_email(actor)


def actor_is_active(actor):
    return bool(_get(actor, 'active', 'isActive', 'is_active', default=True))


def actor_permissions(actor):
    return permissions_for(actor_role(actor))


def ensure_permission(actor, permission):
    """
    Guard: the actor must exist, hold ``permission`` and be active.

    Raises:
        PermissionDeniedError: missing actor or permission not granted by the role
        InactiveUserError: the actor is deactivated
    """
    if actor is None:
        raise PermissionDeniedError(permission, 'Usuario no válido')

    if permission not in actor_permissions(actor):
        logger.warning(f"Permission '{permission}' denied to {actor_email(actor)} (role={actor_role(actor)})")
        raise PermissionDeniedError(permission)

    if not actor_is_active(actor):
        logger.warning(f"Inactive user {actor_email(actor)} attempted '{permission}'")
        raise InactiveUserError()

    return True


def create_user(session: Session, email: str, display_name: str, role: str, password: str = None, **kwargs) -> AppUser:
    """
    Create a new AppUser after validating the identity fields.

    Raises:
        ValidationError: invalid email, name or role
        BusinessLogicError: email already registered
    """
    errors = []
    email = (email or '').strip().lower()
    display_name = (display_name or '').strip()

    if not EMAIL_PATTERN.match(email):
        errors.append('Email válido es requerido')
    if len(display_name) < 2:
        errors.append('Nombre debe tener al menos 2 caracteres')
    if role not in [r.value for r in UserRole]:
        errors.append('Rol válido es requerido')

    if errors:
        raise ValidationError(f"Datos de usuario inválidos: {', '.join(errors)}")

    user = AppUser(
        email=email,
        display_name=display_name,
        role=role,
        active=kwargs.get('active', True),
        department=kwargs.get('department'),
        phone=kwargs.get('phone'),
    )
    if password:
        user.set_password(password)

    try:
        session.add(user)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f'Ya existe un usuario con el email: {email}')

    logger.info(f"User created: {email} ({role})")
    return user


def authenticate(session: Session, email: str, password: str):
    """Return the active user matching the credentials, or None."""
    user = session.query(AppUser).filter_by(email=(email or '').strip().lower()).first()
    if not user or not user.check_password(password):
        logger.warning(f"Failed login for {email}")
        return None
    if not user.active:
        raise InactiveUserError()
    return user
