import os
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
	# Accept a direct URL (supports either DATABASE_URL or database_url env vars)
	database_url: str | None = None

	# Individual parts with sensible local defaults so dev can boot without .env
	DB_DRIVER: str = "postgresql+psycopg2"
	DB_HOST: str = "localhost"
	DB_USER: str = "rankly"
	DB_PASSWORD: str = "rankly"
	DB_NAME: str = "rankly"
	DB_PORT: int = 5432
	# DATABASE_URL is computed via property below to avoid referencing annotated fields in class body

	SECRET_KEY: str = "secret"
	ALGORITHM: str = "HS256"
	ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
	GOOGLE_GEMINI_API_KEY: str | None = None
	GEMINI_MODEL: str = "gemini-2.5-flash"
	# Models queried during the model-analysis stage, one provider per entry
	AEO_MODELS: List[str] = ["gemini-2.5-flash"]
	MAX_AEO_QUERIES: int = 7
	WEBSITE_FETCH_TIMEOUT_SECONDS: float = 15.0

	# Observability / Telemetry flags
	ENABLE_REQUEST_LOGGING: bool = True
	ENABLE_OUTBOUND_LOGGING: bool = True
	LOG_SAMPLE_RATE: float = 1.0
	LOG_LEVEL: str = "INFO"

	# Background processing
	ENABLE_BACKGROUND_TASKS: bool = True
	POOL_MAX_CONCURRENCY: int = 10
	POLL_INTERVAL_SECONDS: float = 5.0
	CLEANUP_INTERVAL_SECONDS: float = 300.0
	MAX_JOB_RETRIES: int = 3
	STUCK_JOB_TIMEOUT_SECONDS: float = 300.0
	MAX_PENDING_QUEUE_SIZE: int = 1000

	# Shared secret for the scheduled cron trigger; unset disables the check
	CRON_SECRET: str | None = None

	# Prefer explicit database_url if provided; otherwise assemble from parts
	@property
	def DATABASE_URL(self) -> str:
		# 1) Value from settings (supports .env and OS env via BaseSettings)
		if self.database_url and self.database_url.strip() and self.database_url.strip() != "://:@:/":
			return self.database_url.strip()
		# 2) Raw OS env (e.g., uppercase on Windows), as a fallback
		explicit_url = os.getenv("DATABASE_URL")
		if explicit_url and explicit_url.strip() and explicit_url.strip() != "://:@:/":
			return explicit_url.strip()
		# 3) Assemble from parts
		return f"{self.DB_DRIVER}://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

	# Pydantic v2 settings config
	model_config = SettingsConfigDict(
		env_file=".env",
		extra="ignore",  # tolerate unrelated env vars like database_url
		case_sensitive=False,  # accept lowercase keys on Windows and in .env
	)

settings = Settings()
