"""Models package - exports all SQLAlchemy models."""
from app.models.app_user import AppUser, UserRole, ROLE_PERMISSIONS, has_permission, permissions_for
from app.models.quote import Quote, QuoteStatus, IDENTITY_FIELDS

__all__ = [
    'AppUser', 'UserRole', 'ROLE_PERMISSIONS', 'has_permission', 'permissions_for',
    'Quote', 'QuoteStatus', 'IDENTITY_FIELDS',
]
