import click
from flask import current_app
from flask.cli import with_appcontext

from module_anatomy.exceptions import AnatomyError
from module_anatomy.seeds import AnatomySeeder


def run_seed(files=None, strict=False):
    """Run the anatomy seeder and echo a per-branch summary; returns the report."""
    try:
        report = AnatomySeeder(strict=strict).run(files or None)
    except AnatomyError as e:
        current_app.logger.exception("seed: aborted: %s", e)
        raise click.ClickException(f"Seeding aborted: {e}")

    for entry in report.seeded:
        click.echo(f"✔ Seeded {entry['flag']} '{entry['name']}' (id={entry['id']})")
    for entry in report.failed:
        click.echo(f"⚠ Failed {entry['flag']} '{entry['name']}': {entry['error']['message']}")
    return report


@click.command("seed")
@click.option("--file", "files", multiple=True, help="Seed file name (repeatable); defaults to ANATOMY_SEED_FILES")
@click.option("--strict/--no-strict", default=False, help="Stop at the first failing branch")
@with_appcontext
def seed_command(files, strict):
    """Seed the database with the anatomy reference data."""
    report = run_seed(files, strict)
    if not report.ok:
        raise click.ClickException(f"{len(report.failed)} seed branch(es) failed")
    click.echo("Seeded anatomy reference data.")
