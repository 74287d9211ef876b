"""
Flask CLI commands for the quoting backend.

Commands:
- flask init-db: Create the database tables
- flask create-user: Create a user with one of the business roles
"""

import click
import re
from app.database import get_session, create_tables
from app.models import AppUser, UserRole
from app.services.auth_service import create_user
from app.exceptions import BusinessLogicError


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create every table that does not exist yet."""
        create_tables()
        click.echo(click.style('✅ Tablas creadas.', fg='green'))

    @app.cli.command('create-user')
    @click.option('--email', prompt=True, help='User email address')
    @click.option('--name', 'display_name', prompt=True, help='Display name')
    @click.option('--role', type=click.Choice([r.value for r in UserRole]), prompt=True, help='Business role')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='User password')
    def create_user_command(email, display_name, role, password):
        """Create a new user."""

        # Validate email format
        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, email):
            click.echo(click.style('❌ Email inválido. Use formato: user@example.com', fg='red'))
            return

        if len(password) < 6:
            click.echo(click.style('❌ La contraseña debe tener al menos 6 caracteres.', fg='red'))
            return

        db_session = get_session()
        existing = db_session.query(AppUser).filter_by(email=email.lower()).first()
        if existing:
            click.echo(click.style(f'❌ Ya existe un usuario con el email: {email}', fg='red'))
            return

        try:
            user = create_user(db_session, email, display_name, role, password=password)
        except BusinessLogicError as e:
            click.echo(click.style(f'❌ Error al crear usuario: {e.message}', fg='red'))
            return

        click.echo(click.style('\n✅ Usuario creado exitosamente!', fg='green', bold=True))
        click.echo(f'   Email: {user.email}')
        click.echo(f'   Rol: {user.role}')
        click.echo(f'   ID: {user.id}')
