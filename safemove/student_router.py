from dataclasses import asdict

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from safemove import lifecycle
from safemove.config import Settings
from safemove.dependencies import get_app_settings, get_clock, get_db, get_dispatcher
from safemove.schemas.emergency_schemas import EmergencyOut, EmergencyRequest
from safemove.schemas.extension_schemas import ExtensionCreateRequest

router = APIRouter(prefix="/api/students/{student_id}", tags=["student"])


# ==========================================
# COUNTDOWN POLL
# ==========================================
@router.get("/trip")
async def current_trip(
    student_id: int,
    db: Session = Depends(get_db),
    dispatcher=Depends(get_dispatcher),
    settings: Settings = Depends(get_app_settings),
    clock=Depends(get_clock)
):
    trip_status = lifecycle.poll_trip(
        db, student_id,
        dispatcher=dispatcher,
        alert_recipients=settings.admin_alert_contacts,
        now=clock()
    )
    trip = trip_status.trip
    return {
        "trip_id": trip.id,
        "student_id": trip.student_id,
        "status": trip.status,
        "started_at": trip.started_at,
        "duration_seconds": trip.duration_seconds,
        "remaining_seconds": trip_status.remaining_seconds,
        "ending_soon": trip_status.ending_soon,
    }


# ==========================================
# EXTENSION REQUEST
# ==========================================
@router.post("/extension-requests", status_code=status.HTTP_201_CREATED)
async def request_extension(
    student_id: int,
    payload: ExtensionCreateRequest,
    db: Session = Depends(get_db),
    clock=Depends(get_clock)
):
    request = lifecycle.request_extension(
        db, student_id, payload.extend_minutes, payload.personal_message, now=clock()
    )
    return {
        "id": request.id,
        "student_id": request.student_id,
        "extend_minutes": request.extend_minutes,
        "personal_message": request.personal_message,
        "status": request.status,
        "created_at": request.created_at,
    }


# ==========================================
# EMERGENCY ACTIONS
# ==========================================
@router.post("/emergencies", status_code=status.HTTP_201_CREATED)
async def record_emergency(
    student_id: int,
    payload: EmergencyRequest,
    db: Session = Depends(get_db),
    dispatcher=Depends(get_dispatcher),
    settings: Settings = Depends(get_app_settings),
    clock=Depends(get_clock)
):
    # "Call Hostel"/"Call Police" are placed by the phone itself; only alerts fan out
    recipients = settings.emergency_contacts if payload.notify else []
    record = lifecycle.record_emergency(
        db, student_id, payload.cause,
        dispatcher=dispatcher,
        recipients=recipients,
        body=payload.message,
        now=clock()
    )
    return {
        "event": EmergencyOut.model_validate(record.event),
        "delivery": asdict(record.delivery),
    }
