"""FastAPI web application for calavail."""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from calavail.api.schedule_models import ScheduleListResponse, ScheduleResponse
from calavail.auth.dependencies import get_current_user
from calavail.availability import errors
from calavail.availability.manager import ScheduleManager
from calavail.availability.weekly import weekly_from_availability
from calavail.database.database import get_db, init_db
from calavail.models.schedule import Schedule, ScheduleCreate, ScheduleUpdate
from calavail.models.user import User

logger = logging.getLogger(__name__)

_ERROR_STATUS = {
    errors.ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    errors.NotFound: status.HTTP_404_NOT_FOUND,
    errors.Conflict: status.HTTP_409_CONFLICT,
    errors.DependencyInUse: status.HTTP_409_CONFLICT,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    if os.getenv("INIT_DB_ON_STARTUP", "true").lower() == "true":
        init_db()
    yield


app = FastAPI(
    title="calavail API",
    description="Weekly availability schedules: which hours each user can be booked",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies in the same shape as schedule validation errors."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    logger.warning(f"Validation error for {request.url.path}: {problems}")
    detail = errors.ValidationError("Invalid request", problems).to_dict()
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": detail})


def _http_error(e: errors.ScheduleError) -> HTTPException:
    return HTTPException(status_code=_ERROR_STATUS.get(type(e), status.HTTP_400_BAD_REQUEST), detail=e.to_dict())


def _schedule_response(schedule: Schedule) -> ScheduleResponse:
    return ScheduleResponse(
        schedule=schedule,
        availability=weekly_from_availability(schedule.availability),
        time_zone=schedule.time_zone,
        is_default=schedule.is_default,
    )


def get_schedule_manager(db: Session = Depends(get_db)) -> ScheduleManager:
    return ScheduleManager(db)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}


@app.get("/availability/schedules", response_model=ScheduleListResponse)
def list_schedules(
    current_user: User = Depends(get_current_user),
    manager: ScheduleManager = Depends(get_schedule_manager),
):
    """List the current user's schedules (default first)."""
    schedules = manager.list_schedules(current_user.id)
    return ScheduleListResponse(schedules=schedules, count=len(schedules))


@app.post("/availability/schedules", response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
def create_schedule(
    body: ScheduleCreate,
    current_user: User = Depends(get_current_user),
    manager: ScheduleManager = Depends(get_schedule_manager),
):
    """Create a schedule (Monday-Friday 9-5 unless availability is given)."""
    try:
        return _schedule_response(manager.create_schedule(current_user.id, body))
    except errors.ScheduleError as e:
        raise _http_error(e)


@app.get("/availability/schedules/default", response_model=ScheduleResponse)
def get_default_schedule(
    current_user: User = Depends(get_current_user),
    manager: ScheduleManager = Depends(get_schedule_manager),
):
    """The current user's default schedule, or the unsaved fallback template."""
    try:
        return _schedule_response(manager.default_schedule_for(current_user.id))
    except errors.ScheduleError as e:
        raise _http_error(e)


@app.get("/availability/schedules/{schedule_id}", response_model=ScheduleResponse)
def get_schedule(
    schedule_id: str,
    current_user: User = Depends(get_current_user),
    manager: ScheduleManager = Depends(get_schedule_manager),
):
    try:
        return _schedule_response(manager.get_schedule(current_user.id, schedule_id))
    except errors.ScheduleError as e:
        raise _http_error(e)


@app.put("/availability/schedules/{schedule_id}", response_model=ScheduleResponse)
def update_schedule(
    schedule_id: str,
    body: ScheduleUpdate,
    current_user: User = Depends(get_current_user),
    manager: ScheduleManager = Depends(get_schedule_manager),
):
    """Replace a schedule's availability; name/timeZone/isDefault are optional."""
    try:
        return _schedule_response(manager.update_schedule(current_user.id, schedule_id, body))
    except errors.ScheduleError as e:
        raise _http_error(e)


@app.delete("/availability/schedules/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_schedule(
    schedule_id: str,
    current_user: User = Depends(get_current_user),
    manager: ScheduleManager = Depends(get_schedule_manager),
):
    try:
        manager.delete_schedule(current_user.id, schedule_id)
    except errors.ScheduleError as e:
        raise _http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
