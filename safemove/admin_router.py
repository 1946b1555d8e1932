from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from safemove import lifecycle, student_directory
from safemove.config import Settings
from safemove.dependencies import get_app_settings, get_clock, get_db, get_dispatcher
from safemove.errors import ValidationError
from safemove.schemas.emergency_schemas import EmergencyOut
from safemove.schemas.extension_schemas import ExtensionOut, ExtensionReviewRequest
from safemove.schemas.student_schemas import CreateStudentRequest, StudentOut
from safemove.schemas.trip_schemas import StartTripRequest, TripOut, TripTimeOut

router = APIRouter(prefix="/api/admin", tags=["admin"])


def extension_out(request):
    return ExtensionOut(
        id=request.id,
        student_id=request.student_id,
        student_name=request.student.name,
        extend_minutes=request.extend_minutes,
        personal_message=request.personal_message,
        status=request.status,
        created_at=request.created_at,
        resolved_at=request.resolved_at,
    )


def trip_time_out(trip_status):
    trip = trip_status.trip
    return TripTimeOut(
        trip_id=trip.id,
        student_id=trip.student_id,
        student_name=trip.student.name,
        status=trip.status,
        duration_seconds=trip.duration_seconds,
        remaining_seconds=trip_status.remaining_seconds,
        elapsed_seconds=trip_status.elapsed_seconds,
        ending_soon=trip_status.ending_soon,
    )


# --- 1. Student directory ---
@router.get("/students")
async def list_students(
    name: str = "",
    status_not: Optional[str] = Query(None, alias="statusNot"),
    db: Session = Depends(get_db)
):
    students = student_directory.find(db, name=name, status_not=status_not)
    return {"students": [StudentOut.model_validate(s) for s in students]}


@router.post("/students", status_code=status.HTTP_201_CREATED)
async def add_student(payload: CreateStudentRequest, db: Session = Depends(get_db)):
    student = student_directory.add(db, payload.name, payload.phone, payload.image, payload.status)
    return {"message": "Student added successfully", "id": student.id}


@router.get("/students/{student_id}")
async def get_student(student_id: int, db: Session = Depends(get_db)):
    return StudentOut.model_validate(student_directory.get(db, student_id))


# --- 2. Trips ---
@router.post("/trips", status_code=status.HTTP_201_CREATED)
async def start_trip(
    payload: StartTripRequest,
    db: Session = Depends(get_db),
    dispatcher=Depends(get_dispatcher),
    clock=Depends(get_clock)
):
    duration = payload.total_seconds()
    if duration is None:
        raise ValidationError("Either duration_minutes or duration_seconds is required")

    started = lifecycle.start_trip(
        db, payload.student_ids, duration,
        dispatcher=dispatcher if payload.notify else None,
        now=clock()
    )
    return {
        "trips": [TripOut.model_validate(t) for t in started.trips],
        "delivery": asdict(started.delivery),
    }


@router.post("/trips/{student_id}/close")
async def close_trip(student_id: int, db: Session = Depends(get_db), clock=Depends(get_clock)):
    trip = lifecycle.end_trip(db, student_id, now=clock())
    return TripOut.model_validate(trip)


@router.get("/trip-times")
async def trip_times(
    db: Session = Depends(get_db),
    dispatcher=Depends(get_dispatcher),
    settings: Settings = Depends(get_app_settings),
    clock=Depends(get_clock)
):
    statuses = lifecycle.trip_times(
        db, dispatcher=dispatcher, alert_recipients=settings.admin_alert_contacts, now=clock()
    )
    return {"tripTimes": [trip_time_out(s) for s in statuses]}


# --- 3. Extension review ---
@router.get("/extension-requests")
async def pending_extension_requests(db: Session = Depends(get_db)):
    requests = lifecycle.pending_extensions(db)
    return {"requests": [extension_out(r) for r in requests]}


@router.patch("/extension-requests/{request_id}")
async def review_extension_request(
    request_id: int,
    payload: ExtensionReviewRequest,
    db: Session = Depends(get_db),
    dispatcher=Depends(get_dispatcher),
    clock=Depends(get_clock)
):
    review = lifecycle.review_extension(db, request_id, payload.action, dispatcher=dispatcher, now=clock())
    return {
        "request": extension_out(review.request),
        "trip": TripOut.model_validate(review.trip) if review.trip else None,
        "warning": str(review.warning) if review.warning else None,
        "delivery": asdict(review.delivery),
    }


# --- 4. Dashboard & audit ---
@router.get("/dashboard")
async def dashboard(db: Session = Depends(get_db)):
    return lifecycle.dashboard_stats(db)


@router.get("/emergencies")
async def emergencies(limit: int = 100, db: Session = Depends(get_db)):
    return {"emergencies": [EmergencyOut.model_validate(e) for e in lifecycle.list_emergencies(db, limit)]}
