"""
Pytest configuration and fixtures for QSTUDY tests.
"""

import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add project root to path for imports
sys.path.append(str(Path(__file__).parent.parent))

from config.config import Config, FeatureFlags, GridDefaultsConfig, StudyParticipationConfig
from src.data.models import Base
from src.logic.grid_configuration import GridConfiguration, default_grid_configuration
from src.services.persistence_gateway import InMemoryPersistenceGateway
from src.services.sql_persistence_gateway import SQLPersistenceGateway


@pytest.fixture
def test_config():
    """Provide a test configuration instance."""
    config = Config()
    config.environment = "test"
    config.debug = True
    config.database.dsn = "sqlite:///:memory:"
    config.feature_flags = FeatureFlags()
    return config


@pytest.fixture
def grid_defaults():
    return GridDefaultsConfig()


@pytest.fixture
def participation():
    return StudyParticipationConfig()


@pytest.fixture
def default_grid(grid_defaults) -> GridConfiguration:
    """Default 7-column bell grid with 16 cells."""
    return default_grid_configuration(grid_defaults)


@pytest.fixture
def memory_gateway():
    return InMemoryPersistenceGateway()


@pytest.fixture
def test_db():
    """Create in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield SessionLocal
    engine.dispose()


@pytest.fixture
def db_session(test_db):
    """Create database session for testing."""
    session = test_db()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sql_gateway(db_session):
    return SQLPersistenceGateway(db_session)


@pytest.fixture(params=["memory", "sql"])
def gateway(request):
    """Run a test against both gateway implementations."""
    if request.param == "memory":
        return InMemoryPersistenceGateway()
    return request.getfixturevalue("sql_gateway")


def seed_text_stimuli(gateway, study_id: str, count: int) -> list[str]:
    """Create ``count`` complete text stimuli and return their ids."""
    return [gateway.create_stimulus(study_id, "TEXT", f"Statement {i + 1}").id for i in range(count)]


def placements_for(grid: GridConfiguration, stimulus_ids: list[str]) -> list[dict]:
    """Fill the grid column by column with the given stimuli."""
    placements = []
    remaining = iter(stimulus_ids)
    for column in grid.columns:
        for _ in range(column.cells):
            placements.append({"stimulusId": next(remaining), "columnValue": column.value})
    return placements
