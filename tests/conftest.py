"""Shared pytest fixtures for playersync tests."""
import sys
from pathlib import Path
from typing import Generator, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create fresh test database session with isolated in-memory database."""
    from playersync.models import Base

    # StaticPool keeps one connection so every session sees the same
    # in-memory database.
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestSessionLocal = sessionmaker(bind=engine)
    session = TestSessionLocal()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def store(db_session: Session):
    """SqlCandidateStore bound to the test session."""
    from playersync.services.sync.candidate_store import SqlCandidateStore

    return SqlCandidateStore(db_session)


def add_player(
    store,
    name: str,
    team: Optional[str] = None,
    position: Optional[str] = None,
    external_id: Optional[str] = None,
    active: bool = True,
):
    """Insert a catalog player and commit. Returns the stored CandidatePlayer."""
    from playersync.services.sync.types import CandidatePlayer

    player = store.upsert_player(CandidatePlayer(
        internal_id=None,
        name=name,
        team=team,
        position=position,
        external_id=external_id,
        active=active,
    ))
    store.commit()
    return player


@pytest.fixture
def sample_catalog(store) -> List:
    """A small catalog of unlinked players."""
    return [
        add_player(store, "Patrick Mahomes", "KC", "QB"),
        add_player(store, "Tom Brady", "TB", "QB"),
        add_player(store, "Travis Kelce", "KC", "TE"),
        add_player(store, "Josh Allen", "BUF", "QB"),
    ]
