from unittest.mock import Mock

import pytest

from celery_app import app as celery_app
from db import dispose_db, get_session
from import_engine.resolver import LookupOutcome, REASON_NOT_FOUND
from main import create_app
from tests import factories

# Imports run in-process during tests, broker or not
celery_app.conf.task_always_eager = True


@pytest.fixture(autouse=True)
def app():
    """Fresh app on a private in-memory database for every test."""
    app = create_app("sqlite://")
    app.config.update(TESTING=True)
    yield app
    dispose_db()


@pytest.fixture
def session(app):
    """Session shared with the factories."""
    s = get_session()
    factories.bind_session(s)
    yield s
    s.close()


@pytest.fixture
def client(app):
    """Return a Flask test client."""
    return app.test_client()


@pytest.fixture
def catalog():
    """Catalog double: every lookup misses, detail fetches succeed."""
    cat = Mock()
    cat.resolve_book_key_by_isbn.return_value = LookupOutcome(None, REASON_NOT_FOUND)
    cat.search_book_key_by_title_and_author.return_value = LookupOutcome(None, REASON_NOT_FOUND)
    cat.get_book_detail.return_value = {}
    return cat
