"""
Flask CLI commands for operating the festival API.

Commands:
- flask init-db: Create database tables
- flask create-admin: Create an organiser account with the admin role
- flask send-test-email: Send a diagnostic email
- flask show-counter: Print today's (or a given day's) order counter
"""

import click
import re
from datetime import datetime


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables."""
        from onam_api.database import Base, get_engine
        import onam_api.models  # noqa: F401

        Base.metadata.create_all(get_engine())
        click.echo(click.style('✅ Tables created', fg='green'))

    @app.cli.command('create-admin')
    @click.option('--email', prompt=True, help='Admin email address')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Admin password')
    @click.option('--student-id', prompt=True, help='Staff or student id')
    @click.option('--name', prompt=True, help='Display name')
    def create_admin(email, password, student_id, name):
        """Create a new admin user for order management."""
        from onam_api.database import get_session
        from onam_api.models import AppUser, UserRole

        email = email.strip().lower()
        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, email):
            click.echo(click.style('❌ Invalid email. Use the form user@example.com', fg='red'))
            return

        if len(password) < 6:
            click.echo(click.style('❌ Password must be at least 6 characters.', fg='red'))
            return

        db_session = get_session()
        existing = db_session.query(AppUser).filter(
            (AppUser.email == email) | (AppUser.student_id == student_id)
        ).first()
        if existing:
            click.echo(click.style(f'❌ A user with email {email} or student id {student_id} already exists', fg='red'))
            return

        try:
            admin = AppUser(
                email=email,
                student_id=student_id.strip(),
                name=name.strip(),
                role=UserRole.ADMIN.value,
                is_active=True,
            )
            admin.set_password(password)

            db_session.add(admin)
            db_session.commit()

            click.echo(click.style('\n✅ Admin created', fg='green', bold=True))
            click.echo(f'   Email: {email}')
            click.echo(f'   ID: {admin.id}')

        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'❌ Error creating admin: {str(e)}', fg='red'))

    @app.cli.command('send-test-email')
    @click.argument('to_email')
    def send_test_email_command(to_email):
        """Send a diagnostic email to TO_EMAIL."""
        from onam_api.services.email_service import send_test_email

        result = send_test_email(to_email)
        if result.success:
            click.echo(click.style(f'✅ {result.message} (Message ID: {result.message_id})', fg='green'))
        else:
            click.echo(click.style(f'❌ {result.message}', fg='red'))

    @app.cli.command('show-counter')
    @click.option('--date', 'day', default=None, help='Day as YYYY-MM-DD (default: today)')
    def show_counter(day):
        """Print the order counter for a day."""
        from onam_api.database import get_engine
        from onam_api.services.order_number_service import allocator_for_engine, counter_id_for

        when = datetime.strptime(day, '%Y-%m-%d') if day else datetime.now()
        counter_id = counter_id_for(when)
        sequence = allocator_for_engine(get_engine()).current_sequence(counter_id)
        click.echo(f'{counter_id}: {sequence if sequence is not None else "not started"}')
