"""
Pytest configuration and shared fixtures for the source server tests

APPROACH: Use DatabaseConnection directly with an in-memory pool
- The fake pool speaks the small part of the asyncpg API the store uses
- Every statement and its bound values are recorded for assertions
- No PostgreSQL server is needed
"""

import pytest
from pathlib import Path
import sys

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config import DatabaseConfig
from database import DatabaseConnection
from query.features import FeatureSchema
from tests.fake_db import FakePool


TEST_DB_CONFIG = DatabaseConfig(
    host="localhost",
    port=5432,
    database="source_test",
    user="postgres",
    password="postgres",
    table="iris",
)


@pytest.fixture
def schema():
    """
    Five features, one per type:
    0 petal_length (numeric), 1 observed (date), 2 verified (logic),
    3 species (nominal), 4 notes (text)
    """
    return FeatureSchema.from_lists(
        ["petal_length", "observed", "verified", "species", "notes"],
        ["numeric", "date", "logic", "nominal", "text"],
    )


@pytest.fixture
def fake_pool():
    return FakePool()


@pytest.fixture
def db_connection(fake_pool):
    """DatabaseConnection wired to the fake pool (already 'connected')."""
    db = DatabaseConnection(TEST_DB_CONFIG)
    db.pool = fake_pool
    return db
