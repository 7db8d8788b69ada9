"""
FastAPI application for field dispatch.
Provides REST API endpoints for snapshot import, slot search, suggestions and assignment.
"""

import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware

from .errors import (
    AssignmentConflictError, DispatchError, InvalidTransitionError,
    JobNotFoundError, TechnicianNotFoundError
)
from .schemas import (
    AssignmentSuggestRequest, AssignRequest, AutoAssignRequest, BulkAssignRequest,
    ConfigOverrides, ConflictCheckRequest, HealthResponse, SlotsRequest,
    SnapshotRequest, SnapshotStatsResponse, SuggestionRequest
)
from .service import DispatchService


logger = logging.getLogger(__name__)

# Global service instance
service: Optional[DispatchService] = None


def get_service() -> DispatchService:
    """Dependency to get service instance."""
    global service
    if service is None:
        service = DispatchService()
    return service


def _http_error(e: DispatchError) -> HTTPException:
    if isinstance(e, (JobNotFoundError, TechnicianNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, AssignmentConflictError):
        return HTTPException(
            status_code=409,
            detail={
                "type": "assignment_conflict",
                "message": str(e),
                "conflicts": jsonable_encoder(e.conflicts)
            }
        )
    if isinstance(e, InvalidTransitionError):
        return HTTPException(status_code=422, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


def create_app(dispatch_service: Optional[DispatchService] = None) -> FastAPI:
    """Create and configure FastAPI application."""
    global service
    if dispatch_service is not None:
        service = dispatch_service

    app = FastAPI(
        title="Field Dispatch",
        description="Appointment suggestions, conflict checks and technician assignment for field service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
            "http://127.0.0.1:3000"
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthResponse)
    def health_check(svc: DispatchService = Depends(get_service)):
        """Health check endpoint."""
        return HealthResponse(**svc.health_check())

    @app.post("/snapshot", response_model=SnapshotStatsResponse)
    def import_snapshot(request: SnapshotRequest, svc: DispatchService = Depends(get_service)):
        """
        Load jobs and technicians from the booking system.
        Invalid rows are skipped and reported in ``errors``.
        """
        return svc.import_snapshot(request.jobs, request.technicians, clear_existing=request.clear_existing)

    @app.post("/slots")
    def find_slots(request: SlotsRequest, svc: DispatchService = Depends(get_service)):
        """Open windows on a day, for the business or one technician."""
        try:
            slots = svc.find_slots(request.day, tech_id=request.tech_id, duration_minutes=request.duration_minutes)
        except DispatchError as e:
            raise _http_error(e)
        return {"day": request.day, "slots": jsonable_encoder(slots)}

    @app.post("/suggestions")
    def suggest_times(request: SuggestionRequest, svc: DispatchService = Depends(get_service)):
        """Ranked appointment times for a job."""
        try:
            result = svc.suggest_times(
                request.job_id,
                customer_preference=request.customer_preference,
                days_to_analyze=request.days_to_analyze
            )
        except DispatchError as e:
            raise _http_error(e)
        return jsonable_encoder(result)

    @app.post("/conflicts")
    def check_conflicts(request: ConflictCheckRequest, svc: DispatchService = Depends(get_service)):
        """Overlap warnings and crew capacity errors for a proposed window."""
        conflicts = svc.check_conflicts(
            request.proposed_start, request.proposed_end, exclude_job_id=request.exclude_job_id
        )
        return {
            "has_conflicts": bool(conflicts),
            "has_hard_conflicts": any(c.is_hard for c in conflicts),
            "conflicts": jsonable_encoder(conflicts)
        }

    @app.post("/assignments/suggest")
    def suggest_assignments(request: AssignmentSuggestRequest, svc: DispatchService = Depends(get_service)):
        """Technicians ranked for a job."""
        try:
            suggestion = svc.suggest_assignments(request.job_id, day=request.day)
        except DispatchError as e:
            raise _http_error(e)
        top = suggestion.top_pick
        return {
            "job_id": suggestion.job.id,
            "has_good_match": suggestion.has_good_match,
            "top_pick": top.tech.id if top else None,
            "suggestions": [
                {
                    "tech_id": s.tech.id,
                    "tech_name": s.tech.display_name,
                    "score": s.score,
                    "reasons": s.reasons,
                    "warnings": s.warnings,
                    "is_recommended": s.is_recommended,
                    "is_blocked": s.is_blocked
                }
                for s in suggestion.suggestions
            ]
        }

    @app.post("/assignments/auto")
    def auto_assign(request: AutoAssignRequest, svc: DispatchService = Depends(get_service)):
        """Bulk-assign a day's jobs; saved only when ``commit`` is set."""
        try:
            result = svc.auto_assign(request.day, job_ids=request.job_ids, commit=request.commit)
        except DispatchError as e:
            raise _http_error(e)
        return {
            "committed": request.commit,
            "summary": result.summary,
            "successful": [
                {"job_id": a.job.id, "tech_id": a.tech.id, "score": a.score, "reasons": a.reasons}
                for a in result.successful
            ],
            "failed": [{"job_id": f.job.id, "reason": f.reason} for f in result.failed]
        }

    @app.post("/assignments/bulk")
    def bulk_assign(request: BulkAssignRequest, svc: DispatchService = Depends(get_service)):
        results = svc.bulk_assign_jobs(
            [(item.job_id, item.tech_id) for item in request.assignments], override=request.override
        )
        return {"results": jsonable_encoder(results)}

    @app.post("/jobs/{job_id}/assign")
    def assign_job(job_id: str, request: AssignRequest, svc: DispatchService = Depends(get_service)):
        """Commit a job to a technician; 409 on hard conflicts unless overridden."""
        try:
            job = svc.assign_job_to_tech(
                job_id, request.tech_id, scheduled_start=request.scheduled_start, override=request.override
            )
        except DispatchError as e:
            raise _http_error(e)
        return jsonable_encoder(job)

    @app.post("/jobs/{job_id}/unassign")
    def unassign_job(job_id: str, svc: DispatchService = Depends(get_service)):
        try:
            job = svc.unassign_job(job_id)
        except DispatchError as e:
            raise _http_error(e)
        return jsonable_encoder(job)

    @app.get("/routes/{tech_id}/{day}")
    def get_route(tech_id: str, day: date, svc: DispatchService = Depends(get_service)):
        """Suggested stop order for a technician's day."""
        try:
            comparison = svc.route_for_technician(tech_id, day)
        except DispatchError as e:
            raise _http_error(e)
        return {
            "tech_id": tech_id,
            "day": day,
            "stops": [job.id for job in comparison.optimized.ordered_jobs],
            "total_miles": comparison.optimized.total_miles,
            "total_travel_minutes": comparison.optimized.total_travel_minutes,
            "miles_saved": comparison.miles_saved,
            "minutes_saved": comparison.minutes_saved,
            "improved": comparison.improved
        }

    @app.get("/config")
    def get_config(svc: DispatchService = Depends(get_service)):
        """Get current configuration."""
        config = svc.get_config()
        config.pop("database", None)
        return config

    @app.put("/config")
    def update_config(request: ConfigOverrides, svc: DispatchService = Depends(get_service)):
        """Apply dot-path overrides to the running configuration."""
        try:
            svc.apply_overrides(request.overrides)
        except DispatchError as e:
            raise _http_error(e)
        logger.info(f"Configuration updated: {list(request.overrides)}")
        return {"message": "Configuration updated", "overrides": request.overrides}

    return app


# Create app instance
app = create_app()
