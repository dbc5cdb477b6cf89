import os

import pytest

from module_anatomy import create_app
from module_anatomy.extensions import cache, db
from module_anatomy.services import get_registry


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    os.environ['FLASK_ENV'] = 'testing'

    app = create_app('testing')

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(autouse=True)
def clean_state(app):
    """Start every test from empty tables and an empty cache."""
    db.session.remove()
    db.drop_all()
    db.create_all()
    cache.clear()
    yield
    db.session.rollback()
    db.session.remove()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def runner(app):
    """Create test CLI runner."""
    return app.test_cli_runner()


@pytest.fixture(scope='function')
def registry(app):
    return get_registry()


@pytest.fixture(scope='function')
def anatomy_service(registry):
    binding, _ = registry.resolve('Anatomy')
    return binding.service()


@pytest.fixture(scope='function')
def dental_service(registry):
    binding, _ = registry.resolve('DentalAnatomy')
    return binding.service()
