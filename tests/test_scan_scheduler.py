from datetime import datetime, timedelta, timezone

import pytest

from app.db.models.analysis_job import AnalysisJob
from app.db.models.business import Business
from app.db.models.input_history import InputHistory
from app.db.models.organization import Organization, OrganizationBusiness
from app.db.models.user import User
from app.schemas.recurring_scan import ScanFrequency
from app.services.exceptions import SchedulerError
from app.services.scan_scheduler_services import ScanSchedulerService, compute_next_scan_date
from app.services.store_services import BusinessStore, JobStore

NOW = datetime(2025, 1, 1, 0, 0, 1, tzinfo=timezone.utc)


def _naive(value):
    # SQLite hands back naive datetimes; everything is stored in UTC
    return value.replace(tzinfo=None) if value is not None else None


def _seed_user(db, user_id=1, plan="indie", organization_id=None):
    user = User(id=user_id, email=f"user{user_id}@example.com", name=f"User {user_id}", plan=plan, organization_id=organization_id)
    db.add(user)
    db.commit()
    return user


def _seed_business(db, business_id=10, user_id=1, recurring=True, frequency="weekly", next_scan=None, **fields):
    business = Business(
        id=business_id,
        user_id=user_id,
        website_name=fields.pop("website_name", "Acme Analytics"),
        website_url=fields.pop("website_url", f"https://acme{business_id}.example.com"),
        industry=fields.pop("industry", "Analytics"),
        recurring_scans=recurring,
        scan_frequency=frequency,
        next_scan_date=next_scan,
        **fields,
    )
    db.add(business)
    db.commit()
    return business


def _scheduler(session_factory, job_store=None):
    return ScanSchedulerService(
        business_store=BusinessStore(session_factory),
        job_store=job_store or JobStore(session_factory, max_retries=3),
    )


def test_compute_next_scan_date_cadences():
    assert compute_next_scan_date(NOW, ScanFrequency.DAILY) == NOW + timedelta(days=1)
    assert compute_next_scan_date(NOW, "weekly") == NOW + timedelta(days=7)
    assert compute_next_scan_date(NOW, "MONTHLY") == datetime(2025, 2, 1, 0, 0, 1, tzinfo=timezone.utc)
    # Unknown and missing cadences fall back to weekly
    assert compute_next_scan_date(NOW, "hourly") == NOW + timedelta(days=7)
    assert compute_next_scan_date(NOW, None) == NOW + timedelta(days=7)


def test_monthly_cadence_clamps_to_month_end():
    assert compute_next_scan_date(datetime(2025, 1, 31, 9, 30), "monthly") == datetime(2025, 2, 28, 9, 30)
    assert compute_next_scan_date(datetime(2024, 1, 31, 9, 30), "monthly") == datetime(2024, 2, 29, 9, 30)
    assert compute_next_scan_date(datetime(2025, 12, 15), "monthly") == datetime(2026, 1, 15)


def test_due_business_is_queued_and_rescheduled(session_factory):
    with session_factory() as db:
        _seed_user(db, plan="indie")
        _seed_business(db, frequency="weekly", next_scan=None)

    batch = _scheduler(session_factory).run_due_scans(NOW)

    assert batch.total_businesses == 1
    assert batch.queued == 1
    result = batch.results[0]
    assert result.status == "queued"
    assert result.job_id

    with session_factory() as db:
        business = db.get(Business, 10)
        assert _naive(business.next_scan_date) == datetime(2025, 1, 8, 0, 0, 1)
        assert _naive(business.last_scan_date) == datetime(2025, 1, 1, 0, 0, 1)

        job = db.get(AnalysisJob, result.job_id)
        assert job.status == "not-started"
        assert job.in_progress is False
        assert job.retry_count == 0
        assert job.business_id == 10
        assert job.user_id == 1
        assert job.extracted_info["is_manual_analysis"] is True
        assert job.extracted_info["is_recurring_scan"] is True
        assert job.extracted_info["keywords"] == ["Acme Analytics", "business", "services"]
        assert job.prompts is None


def test_past_and_exactly_due_businesses_are_queued(session_factory):
    with session_factory() as db:
        _seed_user(db)
        _seed_business(db, business_id=10, next_scan=datetime(2025, 1, 1, tzinfo=timezone.utc))
        _seed_business(db, business_id=11, next_scan=NOW)
        _seed_business(db, business_id=12, next_scan=NOW + timedelta(seconds=1))

    batch = _scheduler(session_factory).run_due_scans(NOW)

    assert batch.queued == 2
    assert sorted(r.business_id for r in batch.results) == [10, 11]
    with session_factory() as db:
        # Next date counts from the run, not from the stale due date
        assert _naive(db.get(Business, 10).next_scan_date) == datetime(2025, 1, 8, 0, 0, 1)
        assert _naive(db.get(Business, 11).next_scan_date) == datetime(2025, 1, 8, 0, 0, 1)
        assert _naive(db.get(Business, 12).next_scan_date) == datetime(2025, 1, 1, 0, 0, 2)


def test_second_pass_at_same_instant_queues_nothing(session_factory):
    with session_factory() as db:
        _seed_user(db)
        _seed_business(db)

    scheduler = _scheduler(session_factory)
    first = scheduler.run_due_scans(NOW)
    second = scheduler.run_due_scans(NOW)

    assert first.queued == 1
    assert second.total_businesses == 0
    with session_factory() as db:
        assert db.query(AnalysisJob).count() == 1


def test_latest_input_history_is_reused(session_factory):
    with session_factory() as db:
        _seed_user(db)
        _seed_business(db, use_location_in_analysis=True, location="Berlin")
        db.add(InputHistory(business_id=10, user_id=1, keywords=["old"], prompts=["old prompt"], created_at=NOW - timedelta(days=3)))
        db.add(InputHistory(business_id=10, user_id=1, keywords=["crm", "sales"], prompts=["best crm for startups?"], created_at=NOW - timedelta(days=1)))
        db.commit()

    batch = _scheduler(session_factory).run_due_scans(NOW)

    with session_factory() as db:
        job = db.get(AnalysisJob, batch.results[0].job_id)
        assert job.extracted_info["keywords"] == ["crm", "sales"]
        assert job.extracted_info["location"] == "Berlin"
        assert job.prompts == {"queries": ["best crm for startups?"]}


def test_free_plan_disables_recurring_scans(session_factory):
    with session_factory() as db:
        _seed_user(db, plan="free")
        _seed_business(db, next_scan=NOW - timedelta(hours=1))

    batch = _scheduler(session_factory).run_due_scans(NOW)

    assert batch.disabled == 1
    assert batch.queued == 0
    assert batch.results[0].status == "disabled"
    with session_factory() as db:
        business = db.get(Business, 10)
        assert business.recurring_scans is False
        assert business.next_scan_date is None
        assert db.query(AnalysisJob).count() == 0


def test_business_without_owner_is_skipped(session_factory):
    with session_factory() as db:
        _seed_business(db, user_id=None)

    batch = _scheduler(session_factory).run_due_scans(NOW)

    assert batch.skipped == 1
    assert batch.results[0].status == "skipped"
    with session_factory() as db:
        assert db.query(AnalysisJob).count() == 0
        assert db.get(Business, 10).recurring_scans is True


def test_organization_member_is_used_when_business_has_no_owner(session_factory):
    with session_factory() as db:
        db.add(Organization(id=5, name="Acme Org"))
        db.commit()
        _seed_user(db, user_id=2, plan="professional", organization_id=5)
        _seed_business(db, user_id=None)
        db.add(OrganizationBusiness(organization_id=5, business_id=10))
        db.commit()

    batch = _scheduler(session_factory).run_due_scans(NOW)

    assert batch.queued == 1
    with session_factory() as db:
        job = db.get(AnalysisJob, batch.results[0].job_id)
        assert job.user_id == 2
        assert job.organization_id == 5


def test_disabled_and_future_businesses_are_never_queued(session_factory):
    with session_factory() as db:
        _seed_user(db)
        _seed_business(db, business_id=10, recurring=False)
        _seed_business(db, business_id=11, next_scan=NOW + timedelta(minutes=5))

    batch = _scheduler(session_factory).run_due_scans(NOW)

    assert batch.total_businesses == 0
    with session_factory() as db:
        assert db.query(AnalysisJob).count() == 0


class _FailingJobStore:
    def create_job(self, job_in):
        raise RuntimeError("job table unavailable")


def test_queue_failure_still_advances_schedule(session_factory):
    with session_factory() as db:
        _seed_user(db)
        _seed_business(db, frequency="daily")

    batch = _scheduler(session_factory, job_store=_FailingJobStore()).run_due_scans(NOW)

    assert batch.errors == 1
    result = batch.results[0]
    assert result.status == "error"
    assert "job table unavailable" in result.error
    with session_factory() as db:
        business = db.get(Business, 10)
        assert _naive(business.next_scan_date) == datetime(2025, 1, 2, 0, 0, 1)
        assert _naive(business.last_scan_date) == datetime(2025, 1, 1, 0, 0, 1)


class _BrokenBusinessStore:
    def find_due_for_scan(self, now):
        raise RuntimeError("database is down")


def test_loading_failure_raises_scheduler_error():
    scheduler = ScanSchedulerService(business_store=_BrokenBusinessStore(), job_store=None)

    with pytest.raises(SchedulerError) as exc_info:
        scheduler.run_due_scans(NOW)

    assert exc_info.value.error_code == "SCHEDULER_FAILED"
    assert exc_info.value.http_status.value == 500
