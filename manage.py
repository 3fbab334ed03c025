"""Management script for database setup, admin accounts and pricing sync"""

import click
from flask.cli import FlaskGroup
from flask_migrate import upgrade

from scoreboard import create_app
from scoreboard.billing.lemonsqueezy import get_billing_client
from scoreboard.extensions import db
from scoreboard.models.user import ROLE_SYSTEM_ADMIN, User
from scoreboard.services.pricing_service import PricingService

app = create_app()
cli = FlaskGroup(create_app=lambda: app)


@cli.command("init-db")
def init_db():
    """Initialize the database"""
    with app.app_context():
        db.create_all()
        print("✅ Database initialized successfully!")


@cli.command("drop-db")
def drop_db():
    """Drop all database tables"""
    confirmation = input("⚠️  Are you sure you want to drop all tables? (yes/no): ").lower()

    if confirmation == 'yes':
        with app.app_context():
            db.drop_all()
            print("✅ Database dropped successfully!")
    else:
        print("❌ Operation cancelled.")


@cli.command("create-admin")
@click.argument("email")
@click.option("--name", "full_name", default=None, help="Display name")
def create_admin(email, full_name):
    """Create a system admin profile, or promote an existing one"""
    with app.app_context():
        user = User.query.filter_by(email=email.strip().lower()).first()
        if user is None:
            user = User(email=email.strip().lower(), full_name=full_name)
            db.session.add(user)
        user.role = ROLE_SYSTEM_ADMIN
        db.session.commit()
        print(f"✅ Admin user ready: {user.email}")


@cli.command("sync-pricing")
@click.argument("admin_email")
def sync_pricing(admin_email):
    """Pull tier prices from LemonSqueezy, audited as the given admin"""
    with app.app_context():
        admin = User.query.filter_by(email=admin_email.strip().lower()).first()
        if admin is None or not admin.is_admin:
            print(f"❌ No admin with email '{admin_email}'")
            return
        summary = PricingService().sync_from_provider(get_billing_client(), admin.id)
        print(
            f"✅ Synced {summary['synced_count']} prices "
            f"({summary['changes_count']} changed, {len(summary['errors'])} errors)"
        )


@cli.command("migrate-db")
def migrate_db():
    """Apply any pending database migrations"""
    print("🔄 Applying database migrations...")
    with app.app_context():
        upgrade()
        print("✅ Database migrations applied successfully!")


if __name__ == "__main__":
    cli()
