from __future__ import annotations

import logging
import sys
import time
import uuid
from random import random
from typing import Callable, Optional, Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.background import BackgroundTask
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.db.session import SessionLocal
from app.repositories.request_log import RequestLogRepository

logger = logging.getLogger("observability")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
	"""Configure the root logger once at process startup."""
	resolved = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
	root = logging.getLogger()
	if not any(getattr(h, "_rankly_handler", False) for h in root.handlers):
		handler = logging.StreamHandler(sys.stdout)
		handler.setFormatter(logging.Formatter(LOG_FORMAT))
		handler._rankly_handler = True
		root.addHandler(handler)
	root.setLevel(resolved)
	# Third-party chatter
	logging.getLogger("apscheduler").setLevel(logging.WARNING)
	logging.getLogger("httpx").setLevel(logging.WARNING)


def generate_correlation_id(existing: Optional[str]) -> str:
	if existing and existing.strip():
		return existing.strip()
	return str(uuid.uuid4())


class RequestLoggingMiddleware(BaseHTTPMiddleware):
	"""Middleware to log inbound HTTP requests with correlation IDs."""

	async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
		if not settings.ENABLE_REQUEST_LOGGING:
			return await call_next(request)

		sampled_out = settings.LOG_SAMPLE_RATE < 1.0 and random() > float(settings.LOG_SAMPLE_RATE)

		correlation_id = generate_correlation_id(request.headers.get("X-Correlation-ID"))
		request.state.correlation_id = correlation_id

		start_ns = time.monotonic_ns()
		response = await call_next(request)
		duration_ms = int((time.monotonic_ns() - start_ns) / 1_000_000)

		response.headers["X-Correlation-ID"] = correlation_id
		if not sampled_out:
			payload = _build_inbound_payload(request, correlation_id, response.status_code, duration_ms)
			response.background = _chain_background(response.background, BackgroundTask(_insert_inbound, payload))
		return response


def _chain_background(existing: Optional[BackgroundTask], task: BackgroundTask) -> BackgroundTask:
	if existing is None:
		return task

	async def _run_both() -> None:
		await existing()
		await task()

	return BackgroundTask(_run_both)


def _build_inbound_payload(request: Request, correlation_id: str, status_code: int, duration_ms: int) -> dict:
	# Route template and name are unavailable for 404s
	route = request.scope.get("route")
	path_template = getattr(route, "path", None) if route is not None else None
	endpoint = request.scope.get("endpoint")
	route_name = getattr(endpoint, "__name__", None) if endpoint is not None else None

	xff = request.headers.get("x-forwarded-for")
	client_ip = (xff.split(",")[0].strip() if xff else (request.client.host if request.client else None))

	auth_header = (request.headers.get("authorization") or "").lower()
	if auth_header.startswith("bearer "):
		auth_type = "bearer"
	elif auth_header.startswith("basic "):
		auth_type = "basic"
	else:
		auth_type = "none"

	return {
		"correlation_id": correlation_id,
		"connection_type": "http",
		"method": request.method,
		"raw_path": request.url.path,
		"path_template": path_template or request.url.path,
		"route_name": route_name,
		"status_code": status_code,
		"duration_ms": duration_ms,
		"client_ip": client_ip,
		"user_agent": (request.headers.get("user-agent") or "")[:256],
		"auth_type": auth_type,
		"user_id": getattr(request.state, "user_id", None),
	}


def _insert_inbound(payload: dict) -> None:
	db = SessionLocal()
	try:
		RequestLogRepository(db).insert_inbound(payload)
	except SQLAlchemyError as e:
		# Telemetry must not affect the request path
		db.rollback()
		logger.warning("Failed to persist inbound request log", extra={"correlation_id": payload.get("correlation_id"), "error": str(e)})
	finally:
		db.close()


def log_outbound_call(
	provider: str,
	target: str,
	operation: str,
	correlation_id: Optional[str],
	call: Callable[[], Any],
	job_id: Optional[str] = None,
) -> Any:
	"""Execute an outbound call and record its duration and outcome.

	Args:
		provider: External provider name (e.g., gemini, website)
		target: Target entity (e.g., model name, URL)
		operation: Operation name
		correlation_id: Correlation ID for linkage
		call: Callable that performs the operation
		job_id: Analysis job the call was made for, when any

	Returns:
		Result of `call()`
	"""
	if not settings.ENABLE_OUTBOUND_LOGGING:
		return call()

	start_ns = time.monotonic_ns()
	error_code: Optional[str] = None
	try:
		return call()
	except Exception as e:
		error_code = type(e).__name__
		raise
	finally:
		duration_ms = int((time.monotonic_ns() - start_ns) / 1_000_000)
		payload = {
			"correlation_id": correlation_id or str(uuid.uuid4()),
			"connection_type": "sdk" if provider != "website" else "http",
			"provider": provider,
			"target": target,
			"operation": operation,
			"duration_ms": duration_ms,
			"error_code": error_code,
			"job_id": job_id,
		}
		_insert_outbound(payload)


def _insert_outbound(payload: dict) -> None:
	db = SessionLocal()
	try:
		RequestLogRepository(db).insert_outbound(payload)
	except SQLAlchemyError as e:
		db.rollback()
		logger.warning(
			"Failed to persist outbound call log",
			extra={"correlation_id": payload.get("correlation_id"), "provider": payload.get("provider"), "error": str(e)},
		)
	finally:
		db.close()
