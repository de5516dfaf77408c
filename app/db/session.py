from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import settings


def _engine_kwargs(url: str) -> dict:
	# Worker threads open their own sessions; SQLite must allow cross-thread connections
	if url.startswith("sqlite"):
		return {"connect_args": {"check_same_thread": False}}
	return {"pool_pre_ping": True}


engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
