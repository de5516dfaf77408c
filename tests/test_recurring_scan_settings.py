from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies.auth import get_current_user
from app.db.models.business import Business
from app.db.models.organization import Organization, OrganizationBusiness
from app.db.models.user import User


def _parse(value):
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


@pytest.fixture
def seeded(session_factory):
    with session_factory() as db:
        db.add(Organization(id=5, name="Acme Org"))
        db.add(User(id=1, email="indie@example.com", name="Indie", plan="indie", organization_id=5))
        db.add(User(id=2, email="free@example.com", name="Free", plan="free"))
        db.add(User(id=3, email="pro@example.com", name="Pro", plan="professional"))
        db.add(Business(id=10, user_id=1, website_name="Acme", website_url="https://acme.example.com"))
        db.add(Business(id=11, user_id=2, website_name="Freebie", website_url="https://free.example.com"))
        db.add(Business(id=12, user_id=3, website_name="Globex", website_url="https://globex.example.com"))
        # Owned by someone else but shared with user 1's organization
        db.add(Business(id=13, user_id=3, website_name="Shared", website_url="https://shared.example.com", recurring_scans=True, scan_frequency="monthly"))
        db.add(OrganizationBusiness(organization_id=5, business_id=13))
        db.commit()
    return session_factory


def _client_as(user_id):
    from main import app

    app.dependency_overrides[get_current_user] = lambda: SimpleNamespace(id=user_id, is_superuser=False)
    return app, TestClient(app)


@pytest.fixture
def as_user():
    opened = []

    def _open(user_id):
        app, client = _client_as(user_id)
        opened.append((app, client))
        return client

    yield _open
    for app, client in opened:
        client.close()
        app.dependency_overrides.clear()


def test_get_settings_reports_plan_access(seeded, as_user):
    resp = as_user(1).get("/recurring-scans/10")
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["enabled"] is False
    assert data["has_access"] is True
    assert data["plan"] == "indie"

    resp = as_user(2).get("/recurring-scans/11")
    assert resp.json()["has_access"] is False


def test_enable_weekly_sets_next_scan(seeded, as_user):
    before = datetime.now(timezone.utc)
    resp = as_user(1).put("/recurring-scans/10", json={"enabled": True, "frequency": "weekly"})
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["enabled"] is True
    assert data["frequency"] == "weekly"
    next_scan = _parse(data["next_scan_date"])
    assert before + timedelta(days=7) - timedelta(seconds=5) <= next_scan <= datetime.now(timezone.utc) + timedelta(days=7)


def test_enable_defaults_to_weekly(seeded, as_user):
    resp = as_user(1).put("/recurring-scans/10", json={"enabled": True})
    assert resp.status_code == 200, resp.text
    assert resp.json()["frequency"] == "weekly"


def test_free_plan_cannot_enable(seeded, as_user, session_factory):
    resp = as_user(2).put("/recurring-scans/11", json={"enabled": True, "frequency": "weekly"})
    assert resp.status_code == 403
    assert resp.json()["detail"]["error_code"] == "RECURRING_SCANS_NOT_AVAILABLE"
    with session_factory() as db:
        assert db.get(Business, 11).recurring_scans is False


def test_daily_needs_higher_plan(seeded, as_user):
    assert as_user(1).put("/recurring-scans/10", json={"enabled": True, "frequency": "daily"}).status_code == 403

    resp = as_user(3).put("/recurring-scans/12", json={"enabled": True, "frequency": "daily"})
    assert resp.status_code == 200, resp.text
    assert resp.json()["frequency"] == "daily"


def test_disable_clears_schedule(seeded, as_user):
    client = as_user(1)
    client.put("/recurring-scans/10", json={"enabled": True, "frequency": "weekly"})

    resp = client.put("/recurring-scans/10", json={"enabled": False})
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["enabled"] is False
    assert data["frequency"] is None
    assert data["next_scan_date"] is None


def test_unknown_frequency_is_rejected(seeded, as_user):
    resp = as_user(1).put("/recurring-scans/10", json={"enabled": True, "frequency": "hourly"})
    assert resp.status_code == 422


def test_other_users_business_is_not_found(seeded, as_user):
    resp = as_user(1).get("/recurring-scans/12")
    assert resp.status_code == 404
    assert resp.json()["detail"]["error_code"] == "BUSINESS_NOT_FOUND"

    assert as_user(1).put("/recurring-scans/11", json={"enabled": False}).status_code == 404


def test_list_includes_organization_businesses(seeded, as_user):
    client = as_user(1)
    client.put("/recurring-scans/10", json={"enabled": True, "frequency": "weekly"})

    resp = client.get("/recurring-scans")
    assert resp.status_code == 200, resp.text
    items = {item["business_id"]: item for item in resp.json()}
    assert set(items) == {10, 13}
    assert items[13]["organization_name"] == "Acme Org"
    assert items[13]["frequency"] == "monthly"


def test_trigger_makes_business_due_now(seeded, as_user, session_factory):
    client = as_user(1)
    client.put("/recurring-scans/10", json={"enabled": True, "frequency": "weekly"})

    resp = client.post("/recurring-scans/10/trigger")
    assert resp.status_code == 200, resp.text
    triggered = _parse(resp.json()["next_scan_date"])
    assert abs((datetime.now(timezone.utc) - triggered).total_seconds()) < 60

    with session_factory() as db:
        business = db.get(Business, 10)
        assert business.next_scan_date.replace(tzinfo=timezone.utc) <= datetime.now(timezone.utc)
