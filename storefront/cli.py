import json
import os
from decimal import Decimal

import click
from flask import current_app
from flask.cli import with_appcontext
from flask_migrate import upgrade as alembic_upgrade, stamp as alembic_stamp, migrate as alembic_migrate
from werkzeug.security import generate_password_hash

from models import db
from models.product import Product
from models.user import User
from storefront.services.order_service import unreconciled_payments
from storefront.utils.db import transactional


def _assert_safe_for_upgrade():
    # Prevent accidental prod upgrades unless explicitly allowed
    env = (current_app.config.get("ENV") or "").lower()
    app_env = (os.getenv("APP_ENV") or "").lower()
    if app_env == "production" or env == "production":
        if (os.getenv("ALLOW_DB_MIGRATIONS") or "").lower() not in ("1", "true", "yes"):
            raise click.ClickException("Refusing to run DB migration in production without ALLOW_DB_MIGRATIONS=true")


@click.command("db-migrate-safe")
@click.option("-m", "--message", default="auto migration", help="Migration message")
@with_appcontext
def db_migrate_safe(message):
    """Generate a new migration script from current models."""
    alembic_migrate(message=message)
    click.echo("Migration script generated.")


@click.command("db-upgrade-safe")
@with_appcontext
def db_upgrade_safe():
    """Apply migrations to the configured database."""
    _assert_safe_for_upgrade()
    alembic_upgrade()
    click.echo("Database upgraded.")


@click.command("db-stamp-safe")
@click.option("--revision", default="head", help="Revision to stamp, default 'head'")
@with_appcontext
def db_stamp_safe(revision):
    """Mark the database at a given revision without running migrations."""
    _assert_safe_for_upgrade()
    alembic_stamp(revision)
    click.echo(f"Database stamped at {revision}.")


@click.command("create-user")
@click.option("--email", required=True)
@click.option("--password", required=True, prompt=True, hide_input=True)
@click.option("--name", default=None)
@click.option("--admin", is_flag=True, help="Grant the admin role")
@with_appcontext
def create_user(email, password, name, admin):
    """Create a storefront user."""
    if User.query.filter_by(email=email.lower()).first():
        raise click.ClickException(f"User {email} already exists")
    with transactional("Failed to create user"):
        user = User(
            email=email.lower(),
            name=name,
            password_hash=generate_password_hash(password),
            role="admin" if admin else "customer",
        )
        db.session.add(user)
    click.echo(f"Created user {user.id} ({user.role}).")


@click.command("seed-products")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def seed_products(path):
    """Load products from a JSON array of {name, price, sell_price, quantity, images}."""
    with open(path) as fh:
        rows = json.load(fh)
    with transactional("Failed to seed products"):
        for row in rows:
            db.session.add(
                Product(
                    name=row["name"],
                    description=row.get("description"),
                    price=Decimal(str(row["price"])),
                    sell_price=Decimal(str(row.get("sell_price", row["price"]))),
                    quantity=int(row.get("quantity", 0)),
                    images=row.get("images") or [],
                )
            )
    click.echo(f"Seeded {len(rows)} products.")


@click.command("unreconciled-payments")
@with_appcontext
def list_unreconciled_payments():
    """List confirmed payment intents that never produced an order."""
    rows = unreconciled_payments()
    if not rows:
        click.echo("No unreconciled payments.")
        return
    for row in rows:
        click.echo(f"{row['payment_intent_id']}\tuser={row['user_id']}\t{row['created_at']}")


def register_cli(app):
    app.cli.add_command(db_migrate_safe)
    app.cli.add_command(db_upgrade_safe)
    app.cli.add_command(db_stamp_safe)
    app.cli.add_command(create_user)
    app.cli.add_command(seed_products)
    app.cli.add_command(list_unreconciled_payments)
