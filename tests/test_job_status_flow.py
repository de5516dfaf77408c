import os
import sys
from types import SimpleNamespace

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Ensure project root is on sys.path for 'app' imports
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from app.db.base_class import Base
from app.db import base as models_import  # noqa: F401 - ensure models are imported
from app.db.models.user import User
from app.api.dependencies.database import get_db
from app.api.dependencies.auth import get_current_user
from app.core.security import create_access_token
from app.schemas.analysis_job import AnalysisJobCreate, JobStatus
from app.services.store_services import JobStore


def test_analysis_job_status_is_visible_to_owner_only():
    # Create isolated file-based SQLite DB so the app and test share state
    db_path = os.path.abspath("test_job.db")
    if os.path.exists(db_path):
        try:
            os.remove(db_path)
        except PermissionError:
            pass
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    from main import app

    def _override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    current = {"id": 1}

    def _override_get_current_user():
        return SimpleNamespace(id=current["id"])

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_current_user] = _override_get_current_user

    client = TestClient(app)

    # Seed users
    with TestingSessionLocal() as db:
        db.add(User(id=1, email="u@example.com", name="Owner"))
        db.add(User(id=2, email="other@example.com", name="Other"))
        db.commit()

    job_store = JobStore(TestingSessionLocal, max_retries=3)
    job = job_store.create_job(AnalysisJobCreate(website_url="https://acme.example.com", user_id=1))

    resp = client.get(f"/analysis-jobs/{job.id}")
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["status"] == "not-started"
    assert data["progress_percent"] == 0
    assert data["in_progress"] is False

    resp = client.get("/analysis-jobs", params={"status": "not-started"})
    assert resp.status_code == 200, resp.text
    assert [j["id"] for j in resp.json()] == [job.id]

    # Another user cannot see it
    current["id"] = 2
    resp = client.get(f"/analysis-jobs/{job.id}")
    assert resp.status_code == 404
    assert resp.json()["detail"]["error_code"] == "ANALYSISJOB_NOT_FOUND"
    assert client.get("/analysis-jobs").json() == []

    # Websocket streams the terminal state, then closes
    job_store.update_job(job.id, {"status": JobStatus.COMPLETED, "progress_percent": 100})
    token = create_access_token({"sub": "1"})
    with client.websocket_connect(f"/analysis-jobs/ws/{job.id}?token={token}") as ws:
        message = ws.receive_json()
        assert message["event"] == "update"
        assert message["data"]["status"] == "completed"
        assert message["data"]["progress_percent"] == 100

    with client.websocket_connect(f"/analysis-jobs/ws/{job.id}") as ws:
        assert ws.receive_json() == {"event": "unauthorized"}

    other_token = create_access_token({"sub": "2"})
    with client.websocket_connect(f"/analysis-jobs/ws/{job.id}?token={other_token}") as ws:
        assert ws.receive_json() == {"event": "not_found"}

    # Cleanup
    app.dependency_overrides.clear()
    try:
        client.close()
    except Exception:
        pass
    try:
        engine.dispose()
    except Exception:
        pass
    if os.path.exists(db_path):
        try:
            os.remove(db_path)
        except PermissionError:
            pass
