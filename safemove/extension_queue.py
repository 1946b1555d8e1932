import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from safemove.errors import ConflictError, NotFoundError, StaleApprovalWarning, ValidationError
from safemove.models import (
    ExtensionRequest, Student, Trip,
    REQUEST_PENDING, REQUEST_APPROVED, REQUEST_REJECTED,
    STATUS_ON_TRIP, STATUS_OVERDUE,
)
from safemove.timer import utcnow
from safemove.trip_store import get_active_trip

logger = logging.getLogger(__name__)

ACTIONS = {"approve": REQUEST_APPROVED, "reject": REQUEST_REJECTED}


@dataclass
class Resolution:
    request: ExtensionRequest
    trip: Optional[Trip] = None
    warning: Optional[StaleApprovalWarning] = None


def submit(db: Session, student_id: int, extend_minutes: int, message=None, now=None):
    if extend_minutes is None or extend_minutes <= 0:
        raise ValidationError("Extension must be a positive number of minutes")
    if not get_active_trip(db, student_id):
        db.rollback()
        raise ValidationError(f"Student {student_id} has no active trip to extend")

    request = ExtensionRequest(
        student_id=student_id,
        extend_minutes=extend_minutes,
        personal_message=(message or None),
        status=REQUEST_PENDING,
        created_at=now or utcnow(),
    )
    db.add(request)
    db.commit()
    db.refresh(request)

    logger.info("Student %s asked for %d more minutes (request %s)", student_id, extend_minutes, request.id)
    return request


def list_pending(db: Session):
    """Pending requests, oldest first, in the order admins should review them."""
    return db.query(ExtensionRequest).filter(
        ExtensionRequest.status == REQUEST_PENDING
    ).order_by(ExtensionRequest.created_at.asc(), ExtensionRequest.id.asc()).all()


def resolve(db: Session, request_id: int, action: str, now=None):
    """Move a pending request to approved or rejected, exactly once.

    Approval grants the time before it marks the request, inside one
    transaction: if the conditional status flip loses a race the whole thing
    rolls back and the caller gets a ConflictError.
    """
    new_status = ACTIONS.get(action)
    if new_status is None:
        raise ValidationError(f"Unknown action '{action}', expected 'approve' or 'reject'")

    request = db.query(ExtensionRequest).filter(ExtensionRequest.id == request_id).first()
    if not request:
        db.rollback()
        raise NotFoundError(f"Extension request {request_id} not found")
    if request.status != REQUEST_PENDING:
        db.rollback()
        raise ConflictError(f"Extension request {request_id} is already {request.status}")

    now = now or utcnow()
    trip = None
    warning = None

    if new_status == REQUEST_APPROVED:
        trip = get_active_trip(db, request.student_id)
        extended = 0
        if trip:
            extended = db.query(Trip).filter(
                Trip.id == trip.id,
                Trip.ended_at.is_(None)
            ).update(
                {Trip.duration_seconds: Trip.duration_seconds + request.extend_minutes * 60},
                synchronize_session=False
            )
        if extended:
            # More time on the clock brings an overdue student back on-trip
            db.query(Trip).filter(Trip.id == trip.id, Trip.status == STATUS_OVERDUE).update(
                {Trip.status: STATUS_ON_TRIP}, synchronize_session=False
            )
            db.query(Student).filter(
                Student.id == request.student_id,
                Student.status == STATUS_OVERDUE
            ).update({Student.status: STATUS_ON_TRIP}, synchronize_session=False)
        else:
            trip = None
            warning = StaleApprovalWarning(request.id, request.student_id)

    flipped = db.query(ExtensionRequest).filter(
        ExtensionRequest.id == request.id,
        ExtensionRequest.status == REQUEST_PENDING
    ).update({ExtensionRequest.status: new_status, ExtensionRequest.resolved_at: now}, synchronize_session=False)
    if flipped != 1:
        db.rollback()
        raise ConflictError(f"Extension request {request_id} was resolved concurrently")

    db.commit()

    if warning:
        logger.warning(str(warning))
    logger.info("Extension request %s %s", request_id, new_status)
    return Resolution(request=request, trip=trip, warning=warning)
