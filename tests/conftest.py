import random
import pytest
from pathlib import Path
from typing import Generator

from fretcore.config import DEFAULT_CONFIG, AdaptiveConfig
from fretcore.db import LearnerDatabase
from fretcore.models import GroupDef
from fretcore.selector import AdaptiveSelector
from fretcore.storage import MemoryStorage

from helpers import FakeClock


# --- Engine Fixtures ---
@pytest.fixture
def config() -> AdaptiveConfig:
    """
    Provide the default adaptive configuration (1000 ms reference baseline).

    Returns:
        AdaptiveConfig: DEFAULT_CONFIG.
    """
    return DEFAULT_CONFIG


@pytest.fixture
def storage() -> MemoryStorage:
    """Provide an empty dictionary-backed storage adapter."""
    return MemoryStorage()


@pytest.fixture
def clock() -> FakeClock:
    """Provide a clock frozen at NOW_MS until explicitly advanced."""
    return FakeClock()


@pytest.fixture
def rng() -> random.Random:
    """
    Provide a seeded random generator.

    Returns:
        random.Random: Generator seeded with 1234 so weighted draws repeat run to run.
    """
    return random.Random(1234)


@pytest.fixture
def selector(
    storage: MemoryStorage, clock: FakeClock, rng: random.Random
) -> AdaptiveSelector:
    """
    Provide an AdaptiveSelector over in-memory storage with an injected clock and seeded randomness.
    """
    return AdaptiveSelector(storage, random_fn=rng.random, clock=clock)


@pytest.fixture
def five_groups() -> list:
    """
    Provide five groups of four items each, indices 0-4, ids "g<index>-<n>".
    """
    return [
        GroupDef(index=i, item_ids=[f"g{i}-{n}" for n in range(4)], label=f"Group {i}")
        for i in range(5)
    ]


# --- Database Fixtures ---
@pytest.fixture
def db_path_memory() -> str:
    """
    Provide the DuckDB in-memory database path identifier.

    Returns:
        db_path (str): The path string ":memory:" which opens a transient in-memory database.
    """
    return ":memory:"


@pytest.fixture
def db_path_file(tmp_path: Path) -> Path:
    """
    Provide the filesystem path for a temporary test database file.

    Returns:
        Path: Path to the file named "test_fret.db" inside `tmp_path`.
    """
    return tmp_path / "test_fret.db"


@pytest.fixture(params=["memory", "file"])
def db_manager(
    request, db_path_memory: str, db_path_file: Path
) -> Generator[LearnerDatabase, None, None]:
    """
    Provide a LearnerDatabase instance for tests, either in-memory or file-backed, and ensure proper teardown.

    Parameters:
        request: pytest `FixtureRequest` whose `param` is either `"memory"` or `"file"`.
        db_path_memory (str): Path identifier for an in-memory database.
        db_path_file (Path): Filesystem path for a temporary file-backed database.
    """
    if request.param == "memory":
        db_man = LearnerDatabase(db_path_memory)
    else:
        db_man = LearnerDatabase(db_path_file)
    try:
        yield db_man
    finally:
        db_man.close_connection()


@pytest.fixture
def initialized_db_manager(db_manager: LearnerDatabase) -> LearnerDatabase:
    """
    Ensure the provided LearnerDatabase has its schema created and return it.
    """
    db_manager.initialize_schema()
    return db_manager
