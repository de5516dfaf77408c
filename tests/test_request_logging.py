import os
import sys

import pytest
from fastapi.testclient import TestClient

# Ensure project root on sys.path
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


def test_correlation_id_header_present_on_404():
    from main import app

    client = TestClient(app)

    resp = client.get("/this-path-does-not-exist")
    assert resp.status_code == 404
    assert "X-Correlation-ID" in resp.headers

    try:
        client.close()
    except Exception:
        pass


def test_inbound_request_is_persisted_with_supplied_correlation_id(session_factory):
    from main import app
    from app.repositories.request_log import RequestLogRepository

    client = TestClient(app)

    resp = client.get("/cron/recurring-scans", headers={"X-Correlation-ID": "cid-123"})
    # No lifespan ran, so the scheduler is unavailable; the request is still logged
    assert resp.status_code == 503
    assert resp.headers["X-Correlation-ID"] == "cid-123"

    with session_factory() as db:
        logs = RequestLogRepository(db).list_for_correlation("cid-123")
        assert len(logs) == 1
        assert logs[0].direction == "inbound"
        assert logs[0].raw_path == "/cron/recurring-scans"
        assert logs[0].status_code == 503
        assert logs[0].auth_type == "none"

    try:
        client.close()
    except Exception:
        pass


def test_outbound_call_is_recorded_with_error_code(session_factory):
    from app.core.observability import log_outbound_call
    from app.repositories.request_log import RequestLogRepository

    def failing_call():
        raise TimeoutError("model timed out")

    with pytest.raises(TimeoutError):
        log_outbound_call("gemini", "gemini-2.5-flash", "generate_content", "cid-out", failing_call, job_id="job-9")

    assert log_outbound_call("gemini", "gemini-2.5-flash", "generate_content", "cid-out", lambda: "ok") == "ok"

    with session_factory() as db:
        logs = RequestLogRepository(db).list_for_correlation("cid-out")
        assert [log.error_code for log in logs] == ["TimeoutError", None]
        assert logs[0].job_id == "job-9"
        assert logs[0].route_name == "generate_content"
