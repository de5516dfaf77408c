import os
import sys

import pytest

# Ensure project root is on sys.path for 'app' imports
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# File-based SQLite shared by the app engine, worker threads and the tests.
# Must be set before anything imports app.core.config.
TEST_DB_PATH = os.path.join(PROJECT_ROOT, "test_rankly.db")
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB_PATH}"
os.environ["ENABLE_BACKGROUND_TASKS"] = "false"
os.environ.pop("CRON_SECRET", None)


@pytest.fixture
def session_factory():
    """Fresh schema on the app engine; yields the app's session factory."""
    from app.db.base_class import Base
    from app.db import base as models_import  # noqa: F401 - ensure models are imported
    from app.db.session import SessionLocal, engine

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield SessionLocal
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
