import os

import click
from flask import current_app
from flask.cli import with_appcontext
from flask_migrate import upgrade as alembic_upgrade

from module_anatomy.commands.seed_commands import run_seed
from module_anatomy.extensions import db


def _migrations_dir():
    # Flask-Migrate resolves its directory against the working directory
    return current_app.extensions["migrate"].directory or "migrations"


@click.command("install")
@click.option("--seed/--no-seed", default=True, help="Seed anatomy reference data after the schema is ready")
@click.option("--strict/--no-strict", default=False, help="Stop at the first failing seed branch")
@with_appcontext
def install_command(seed: bool, strict: bool):
    """One-shot install for fresh systems.

    - Upgrades DB schema to head (Alembic) when a migrations directory exists,
      otherwise creates the tables directly
    - Seeds head-to-toe and dental reference data

    Safe to run multiple times; all steps are idempotent.
    """
    engine_name = getattr(db.engine, 'name', '').lower()
    current_app.logger.info("install: starting (engine=%s)", engine_name)

    try:
        directory = _migrations_dir()
        if os.path.isdir(directory):
            alembic_upgrade(directory=directory)
            click.echo("✔ Database upgraded to head")
        else:
            db.create_all()
            click.echo("✔ Database tables created")
    except Exception as e:
        current_app.logger.exception('install: schema setup failed: %s', e)
        raise click.ClickException(f"Schema setup failed: {e}")

    if seed:
        report = run_seed(strict=strict)
        if not report.ok:
            raise click.ClickException(f"{len(report.failed)} seed branch(es) failed")

    click.echo("Install complete.")
