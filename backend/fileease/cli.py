from __future__ import annotations

from datetime import timedelta

import click
from flask import Flask, current_app

from .extensions import db
from .models import User, utc_now
from .sharing.revocation import purge_expired


def register_cli(app: Flask) -> None:
    @app.cli.command("purge-expired")
    @click.option("--retention-days", type=int, default=None, help="Keep stale records this many days for auditing.")
    def purge_expired_command(retention_days: int | None) -> None:
        """Delete user grants and share links that stopped working long ago."""
        if retention_days is None:
            retention_days = current_app.config["PURGE_RETENTION_DAYS"]
        if retention_days < 0:
            raise click.BadParameter("must be >= 0", param_hint="--retention-days")

        count = purge_expired(utc_now() - timedelta(days=retention_days))
        db.session.commit()
        click.echo(f"Purged {count} expired or revoked share records.")

    @app.cli.command("create-user")
    @click.argument("username")
    @click.option("--email", default=None)
    @click.password_option()
    def create_user_command(username: str, email: str | None, password: str) -> None:
        """Create a user or reset an existing user's password."""
        user = User.query.filter_by(username=username).one_or_none()
        created = user is None
        if user is None:
            user = User(username=username, is_active=True)
        if email:
            user.email = email.strip().lower()
        user.set_password(password)

        db.session.add(user)
        db.session.commit()
        click.echo(f"{'Created' if created else 'Updated'} user: {username}")
