# slideai/conftest.py
import os
import sys
from pathlib import Path

import pytest

# Add repo root to PYTHONPATH
REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

os.environ.setdefault("ENV", "test")


@pytest.fixture
def sqlite_engine(tmp_path):
    """
    File-backed SQLite engine with the subscriptions table created.

    Each test gets its own database file under tmp_path.
    """
    from slideai.core.database import build_engine, create_all_tables

    engine = build_engine(f"sqlite:///{tmp_path / 'slideai.db'}")
    create_all_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def memory_store():
    from slideai.tests.fakes import InMemoryEntitlementStore

    return InMemoryEntitlementStore()


@pytest.fixture
def notifier():
    from slideai.features.entitlements.notifications import NotificationQueue

    return NotificationQueue()


@pytest.fixture
def alice():
    from slideai.models.identity import Identity

    return Identity(user_id="user_alice", email="alice@example.com", token="tok_alice")


@pytest.fixture
def bob():
    from slideai.models.identity import Identity

    return Identity(user_id="user_bob", email="bob@example.com", token="tok_bob")
