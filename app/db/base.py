# Import all models here so Base.metadata sees every table (Alembic, create_all)
from app.db.base_class import Base  # noqa: F401
from app.db.models.organization import Organization, OrganizationBusiness  # noqa: F401
from app.db.models.user import User  # noqa: F401
from app.db.models.business import Business  # noqa: F401
from app.db.models.analysis_job import AnalysisJob  # noqa: F401
from app.db.models.input_history import InputHistory  # noqa: F401
from app.db.models.ranking_history import RankingHistory  # noqa: F401
from app.db.models.request_log import RequestLog  # noqa: F401
