from typing import Optional

from fastapi import Depends, Query, WebSocket, WebSocketDisconnect
import asyncio
from sqlalchemy.orm import Session

from app.api.router import create_router, http_error
from app.api.dependencies.auth import get_current_user
from app.api.dependencies.database import get_db
from app.api.dependencies.services import get_analysis_job_service
from app.core.security import decode_access_token
from app.services.exceptions import ResourceNotFoundError
from app.services.job_services import AnalysisJobService
from app.schemas.analysis_job import AnalysisJobRead, AnalysisJobSummary, JobStatus, TERMINAL_STATUSES
from app.repositories.analysis_job import AnalysisJobRepository

WS_POLL_INTERVAL_SECONDS = 1.0

router = create_router(name="analysis_jobs")


@router.get("", response_model=list[AnalysisJobSummary])
def list_analysis_jobs(
	business_id: Optional[int] = None,
	status: Optional[JobStatus] = None,
	skip: int = Query(0, ge=0),
	limit: int = Query(50, ge=1, le=200),
	current_user=Depends(get_current_user),
	job_service: AnalysisJobService = Depends(get_analysis_job_service),
):
	return job_service.list_owned(current_user.id, business_id=business_id, status=status, skip=skip, limit=limit)


@router.get("/{job_id}", response_model=AnalysisJobRead)
def get_analysis_job(
	job_id: str,
	current_user=Depends(get_current_user),
	job_service: AnalysisJobService = Depends(get_analysis_job_service),
):
	try:
		return job_service.get_owned(job_id, current_user.id)
	except ResourceNotFoundError as e:
		raise http_error(e)


def _user_id_from_token(raw: Optional[str]) -> Optional[int]:
	if not raw:
		return None
	token = raw.split(" ", 1)[1] if raw.lower().startswith("bearer ") else raw
	claims = decode_access_token(token.strip())
	try:
		return int(claims["sub"]) if claims and claims.get("sub") else None
	except (TypeError, ValueError):
		return None


@router.websocket("/ws/{job_id}")
async def analysis_job_ws(
	websocket: WebSocket,
	job_id: str,
	db: Session = Depends(get_db)
):
	try:
		await websocket.accept()
		# Token auth: query param ?token=<jwt> or Authorization header
		user_id = _user_id_from_token(websocket.query_params.get("token") or websocket.headers.get("authorization"))
		if user_id is None:
			await websocket.send_json({"event": "unauthorized"})
			await websocket.close(code=4401)
			return
		job_service = AnalysisJobService(job_repo=AnalysisJobRepository(db=db), correlation_id=None)
		# Lightweight poll loop over the job row
		last_payload = None
		while True:
			# Ensure session doesn't serve stale cached objects
			db.expire_all()
			job = job_service.job_repo.get_by_id_and_user(job_id, user_id)
			if not job:
				await websocket.send_json({"event": "not_found"})
				await websocket.close()
				return
			payload = AnalysisJobSummary.model_validate(job).model_dump(mode="json")
			if payload != last_payload:
				await websocket.send_json({"event": "update", "data": payload})
				last_payload = payload
			if job.status in {s.value for s in TERMINAL_STATUSES}:
				await websocket.close()
				return
			await asyncio.sleep(WS_POLL_INTERVAL_SECONDS)
	except WebSocketDisconnect:
		return
