"""AppUser model - platform users and their role permissions."""
import enum
from sqlalchemy import Column, BigInteger, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash
from app.database import Base


class UserRole(enum.Enum):
    """User roles within the company."""
    ADMIN = 'admin'
    VENDEDOR = 'vendedor'
    COMPRADOR = 'comprador'
    REVISOR = 'revisor'


ROLE_PERMISSIONS = {
    UserRole.ADMIN.value: {
        'name': 'Administrador',
        'permissions': frozenset([
            'manage_users', 'manage_providers', 'view_all_quotes',
            'manage_settings', 'view_reports', 'manage_roles',
        ]),
    },
    UserRole.VENDEDOR.value: {
        'name': 'Vendedor',
        'permissions': frozenset([
            'create_quotes', 'edit_own_quotes', 'view_own_quotes',
            'send_for_approval', 'duplicate_quotes', 'export_quotes',
            'manage_providers',
        ]),
    },
    UserRole.COMPRADOR.value: {
        'name': 'Comprador',
        'permissions': frozenset([
            'view_approved_quotes', 'set_final_purchase_price',
            'view_margin_differences', 'view_providers',
            'create_purchase_orders', 'view_purchase_reports',
            'export_purchase_data',
        ]),
    },
    UserRole.REVISOR.value: {
        'name': 'Revisor',
        'permissions': frozenset([
            'view_pending_quotes', 'approve_quotes', 'reject_quotes',
            'request_revisions', 'view_all_quotes', 'view_providers',
            'view_reports',
        ]),
    },
}


def normalize_role(role):
    """Return the role string for a UserRole, a role string or None."""
    if isinstance(role, UserRole):
        return role.value
    if role is None:
        return None
    return str(role).strip().lower()


def permissions_for(role):
    """Permission set granted to a role (empty for unknown roles)."""
    info = ROLE_PERMISSIONS.get(normalize_role(role))
    return info['permissions'] if info else frozenset()


def has_permission(role, permission):
    """Check whether a role grants a specific permission."""
    return permission in permissions_for(role)


class AppUser(Base):
    """AppUser model - an actor of the quoting workflow."""

    __tablename__ = 'app_user'

    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=True)
    display_name = Column(String(200), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.VENDEDOR.value)
    active = Column(Boolean, nullable=False, default=True)
    department = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def set_password(self, password):
        """Set password hash."""
        self.password_hash = generate_password_hash(password, method='scrypt')

    def check_password(self, password):
        """Check password against hash."""
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def permissions(self):
        return permissions_for(self.role)

    @property
    def is_active(self):
        return bool(self.active)

    def has_permission(self, permission):
        return permission in self.permissions

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'displayName': self.display_name,
            'role': self.role,
            'isActive': self.is_active,
        }

    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}', role='{self.role}')>"
