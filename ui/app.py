from __future__ import annotations

import logging
import os
import secrets
from datetime import date
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from daybook import (
    CalendarService,
    ConfigurationError,
    DaybookError,
    NotFoundError,
    YamlStore,
    format_time_range,
    total_hours,
)

logging.basicConfig(
    level=os.environ.get("DAYBOOK_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


# ── Auth ──────────────────────────────────────────────────────

app = FastAPI(title="Daybook API", version="0.1.0")

security = HTTPBasic(auto_error=False)


def get_current_user(credentials: HTTPBasicCredentials | None = Depends(security)) -> str:
    expected_username = os.environ.get("DAYBOOK_USERNAME", "")
    expected_password = os.environ.get("DAYBOOK_PASSWORD", "")

    if not expected_username or not expected_password:
        return "guest"

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Basic"},
        )

    correct_username = secrets.compare_digest(credentials.username.encode("utf-8"), expected_username.encode("utf-8"))
    correct_password = secrets.compare_digest(credentials.password.encode("utf-8"), expected_password.encode("utf-8"))

    if not (correct_username and correct_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username


def get_service(username: str = Depends(get_current_user)) -> CalendarService:
    # Fresh store per request so every pass reads the workspace as it is now.
    return CalendarService(YamlStore(), username)


# ── Error mapping ─────────────────────────────────────────────

def _http_error(e: Exception) -> HTTPException:
    """ConfigurationError -> 422, NotFoundError -> 404, other bad input -> 400."""
    if isinstance(e, ConfigurationError):
        logger.warning("Configuration error: %s", e.message)
        return HTTPException(status_code=422, detail=e.message)
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=e.message)
    return HTTPException(status_code=400, detail=getattr(e, "message", str(e)))


def _parse_day(value: Any) -> date:
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {value}")


# ── Endpoints ─────────────────────────────────────────────────

@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"ok": "true"}


@app.get("/api/settings")
def api_settings(service: CalendarService = Depends(get_service)) -> dict[str, Any]:
    return service.settings().to_dict()


@app.get("/api/day/{day}")
def api_day(day: str, service: CalendarService = Depends(get_service)) -> dict[str, Any]:
    """Slot grid, occupancy and auto-schedule for one date."""
    target = _parse_day(day)
    try:
        return service.day_plan(target).to_dict()
    except DaybookError as e:
        raise _http_error(e)


@app.get("/api/buffers")
def api_buffers(period: str = "thisWeek", service: CalendarService = Depends(get_service)) -> dict[str, Any]:
    try:
        report = service.buffers_for_period(period)
    except (DaybookError, ValueError) as e:
        raise _http_error(e)
    data = report.to_dict()
    data["label"] = format_time_range(report.week)
    return data


@app.get("/api/categories/hours")
def api_category_hours(period: str = "thisWeek", service: CalendarService = Depends(get_service)) -> dict[str, Any]:
    """Meeting hours per category over a named period."""
    try:
        time_range = service.period_range(period)
        categories = service.meeting_hours_by_category(time_range)
    except (DaybookError, ValueError) as e:
        raise _http_error(e)
    return {
        "range": time_range.to_dict(),
        "label": format_time_range(time_range),
        "categories": [c.to_dict() for c in categories],
        "totalHours": round(total_hours(m for c in categories for m in c.meetings), 3),
    }


@app.put("/api/habits/{habit_id}/override")
def api_habit_override(
    habit_id: str,
    payload: dict[str, Any] = Body(...),
    service: CalendarService = Depends(get_service),
) -> dict[str, Any]:
    """Move a habit's occurrence on one date."""
    if not payload.get("date") or not payload.get("time"):
        raise HTTPException(status_code=400, detail="Missing date or time")
    day = _parse_day(payload["date"])
    try:
        result = service.change_habit_time(habit_id, day, str(payload["time"]))
    except (DaybookError, ValueError) as e:
        raise _http_error(e)
    return {"ok": True, **result.to_dict()}


@app.put("/api/tasks/{task_id}")
def api_update_task(
    task_id: str,
    payload: dict[str, Any] = Body(...),
    service: CalendarService = Depends(get_service),
) -> dict[str, Any]:
    if not payload:
        raise HTTPException(status_code=400, detail="Missing updates")
    try:
        result = service.update_task(task_id, payload)
    except (DaybookError, ValueError) as e:
        raise _http_error(e)
    return {"ok": True, **result.to_dict()}
