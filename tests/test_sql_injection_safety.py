from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies.auth import get_current_user


@pytest.fixture
def client():
    from main import app

    app.dependency_overrides[get_current_user] = lambda: SimpleNamespace(id=1, is_superuser=False)
    client = TestClient(app)
    yield client
    client.close()
    app.dependency_overrides.clear()


def test_business_id_path_injection_returns_422(client):
    # Path param expects int; injection-like string should fail validation
    resp = client.get("/recurring-scans/1 OR 1=1")
    assert resp.status_code == 422


def test_trigger_path_injection_returns_422(client):
    resp = client.post("/recurring-scans/1; DROP TABLE businesses;--/trigger")
    assert resp.status_code == 422


def test_analysis_jobs_query_params_injection_returns_422(client):
    # skip and business_id are ints; injection-like strings should fail
    resp = client.get("/analysis-jobs?skip=0; DROP TABLE analysis_jobs;--&limit=100")
    assert resp.status_code == 422

    resp = client.get("/analysis-jobs", params={"business_id": "1 OR 1=1"})
    assert resp.status_code == 422


def test_body_injection_on_recurring_scan_update_returns_422(client):
    # Body model expects a bool and a known frequency
    payload = {
        "enabled": "yes; DROP TABLE businesses;--",
        "frequency": "weekly' OR '1'='1",
    }
    resp = client.put("/recurring-scans/1", json=payload)
    assert resp.status_code == 422
