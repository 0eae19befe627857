"""Shared pytest fixtures for globallib tests."""

import pytest
from datasette.app import Datasette

from globallib.migrations import run_migrations
from globallib.models import BookSummary


@pytest.fixture
def db_path(tmp_path):
    """Create a temporary cache database via migrations.

    Uses the same migration system as production.
    """
    db_file = tmp_path / "test_globallib.db"
    run_migrations(db_file, verbose=False)
    return db_file


@pytest.fixture
def dune():
    return BookSummary(
        key="/works/OL893415W",
        title="Dune",
        author_name=("Frank Herbert",),
        cover_i=11481354,
        first_publish_year=1965,
    )


@pytest.fixture
def nineteen_eighty_four():
    return BookSummary(
        key="/works/OL1168083W",
        title="Nineteen Eighty-Four",
        author_name=("George Orwell",),
        cover_i=9267242,
        first_publish_year=1949,
    )


@pytest.fixture
def datasette(db_path):
    """Create a Datasette instance with the plugin configured."""
    return Datasette(
        [str(db_path)],
        config={
            "plugins": {
                "datasette-globallib": {
                    "cache_db_path": str(db_path),
                    "navigator": {
                        "default_location": "Test City",
                        "gemini": {"api_key": "test-key"},
                    },
                }
            },
        },
    )
