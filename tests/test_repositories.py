from app.db.models.analysis_job import AnalysisJob
from app.db.models.business import Business
from app.db.models.user import User
from app.repositories.analysis_job import AnalysisJobRepository
from app.repositories.business import BusinessRepository
from app.repositories.user import UserRepository
from app.schemas.analysis_job import AnalysisJobCreate


def test_create_and_update_flush_without_committing(session_factory):
    with session_factory() as db:
        db.add(User(id=1, email="owner@example.com", name="Owner"))
        db.commit()

        repo = BusinessRepository(db)
        business = repo.create({"user_id": 1, "website_name": "Acme", "website_url": "https://acme.example.com"})
        assert business.id is not None

        # Unknown fields are ignored
        updated = repo.update(business.id, {"industry": "Analytics", "not_a_column": "x"})
        assert updated.industry == "Analytics"
        db.rollback()

    with session_factory() as db:
        assert db.query(Business).count() == 0


def test_soft_deleted_rows_are_hidden(session_factory):
    with session_factory() as db:
        db.add(User(id=1, email="gone@example.com", name="Gone", is_deleted=True))
        db.commit()

        repo = UserRepository(db)
        assert repo.get_by_id(1) is None
        assert repo.get_by_id(1, include_deleted=True).email == "gone@example.com"
        assert repo.update(1, {"name": "Back"}) is None


def test_update_where_only_matches_expected_state(session_factory):
    with session_factory() as db:
        db.add(User(id=1, email="owner@example.com", name="Owner"))
        db.commit()

        repo = AnalysisJobRepository(db)
        job = repo.create(AnalysisJobCreate(website_url="https://acme.example.com", user_id=1), id="job-1", status="not-started")
        db.commit()

        assert repo.update_where(job.id, {"status": ["not-started", "failed-retryable"]}, {"status": "prompt-forming"}) is True
        # A second claimer sees the new status and loses
        assert repo.update_where(job.id, {"status": ["not-started", "failed-retryable"]}, {"status": "prompt-forming"}) is False
        db.commit()

    with session_factory() as db:
        assert db.get(AnalysisJob, "job-1").status == "prompt-forming"
