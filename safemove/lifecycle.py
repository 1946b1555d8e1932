"""Trip lifecycle operations called by the HTTP routers.

These tie the trip store, the extension queue and the timer together and
own every cross-entity rule. Outbound messages are sent only after the
database work has committed and never undo it: a failed delivery comes back
as a ``DeliveryReport`` next to the committed result.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.orm import Session

from safemove import extension_queue, student_directory, trip_store
from safemove.errors import NotFoundError, StaleApprovalWarning, ValidationError
from safemove.models import (
    EmergencyEvent, ExtensionRequest, Student, Trip,
    REQUEST_APPROVED, REQUEST_PENDING, STATUS_INSIDE,
)
from safemove.notifications import ANY_ADDRESS, PHONE_ADDRESS, PartialDeliveryError
from safemove.timer import elapsed_seconds, is_ending_soon, remaining_seconds, utcnow

logger = logging.getLogger(__name__)


@dataclass
class DeliveryReport:
    attempted: bool = False
    delivered: bool = False
    recipients: List[str] = field(default_factory=list)
    delivered_to: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class TripStart:
    trips: List[Trip]
    delivery: DeliveryReport


@dataclass
class TripStatus:
    trip: Trip
    remaining_seconds: int
    elapsed_seconds: int
    ending_soon: bool
    became_overdue: bool = False
    delivery: DeliveryReport = field(default_factory=DeliveryReport)


@dataclass
class Review:
    request: ExtensionRequest
    trip: Optional[Trip]
    warning: Optional[StaleApprovalWarning]
    delivery: DeliveryReport


@dataclass
class EmergencyRecord:
    event: EmergencyEvent
    delivery: DeliveryReport


def deliver(dispatcher, recipients, body):
    """Best-effort send; any dispatcher failure is logged and reported, never raised."""
    recipients = [r for r in (recipients or []) if r]
    if dispatcher is None or not recipients:
        return DeliveryReport()

    try:
        ok = dispatcher.send(recipients, body)
    except PartialDeliveryError as exc:
        logger.exception("Message delivery to %s failed", exc.failed)
        return DeliveryReport(attempted=True, delivered=False, recipients=recipients,
                              delivered_to=list(exc.delivered_to), error=str(exc))
    except Exception as exc:
        logger.exception("Message delivery to %s failed", recipients)
        return DeliveryReport(attempted=True, delivered=False, recipients=recipients, error=str(exc))

    if not ok:
        logger.error("Dispatcher refused message to %s", recipients)
        return DeliveryReport(attempted=True, delivered=False, recipients=recipients,
                              error="Dispatcher reported failure")
    return DeliveryReport(attempted=True, delivered=True, recipients=recipients, delivered_to=recipients)


def _release(db: Session):
    # Never hold the store's write lock across a network send
    if db.in_transaction():
        db.commit()


def _reaches_phones(dispatcher):
    return getattr(dispatcher, "address_kind", ANY_ADDRESS) in (PHONE_ADDRESS, ANY_ADDRESS)


def notify_students(dispatcher, phones, body):
    """Student notices go to phone numbers; an e-mail-only dispatcher cannot carry them."""
    if dispatcher is None:
        return DeliveryReport()
    if not _reaches_phones(dispatcher):
        logger.info("Skipping student notice, %s cannot reach phone numbers", type(dispatcher).__name__)
        return DeliveryReport(recipients=list(phones), error="Dispatcher cannot reach phone numbers")
    return deliver(dispatcher, phones, body)


# --- Trips ---

def start_trip(db: Session, student_ids, duration_seconds: int, dispatcher=None, now=None):
    trips = trip_store.start_trip(db, student_ids, duration_seconds, now=now)

    delivery = DeliveryReport()
    if dispatcher is not None:
        minutes = duration_seconds // 60
        phones = [trip.student.phone for trip in trips]
        _release(db)
        delivery = notify_students(
            dispatcher, phones,
            f"Your trip has started. You have {minutes} minutes to return to the hostel."
        )
    return TripStart(trips=trips, delivery=delivery)


def end_trip(db: Session, student_id: int, now=None):
    return trip_store.close_trip(db, student_id, now=now)


def _status_of(trip, now, became_overdue=False, delivery=None):
    return TripStatus(
        trip=trip,
        remaining_seconds=remaining_seconds(trip, now),
        elapsed_seconds=elapsed_seconds(trip, now),
        ending_soon=is_ending_soon(trip, now),
        became_overdue=became_overdue,
        delivery=delivery or DeliveryReport(),
    )


def _overdue_message(trip):
    return f"Student {trip.student.name} ({trip.student.phone}) has not returned and is now overdue."


def poll_trip(db: Session, student_id: int, dispatcher=None, alert_recipients=(), now=None):
    """Remaining time for one student's active trip, moving it to overdue once
    the clock hits zero."""
    now = now or utcnow()
    trip = trip_store.get_active_trip(db, student_id)
    if not trip:
        db.rollback()
        raise NotFoundError(f"Student {student_id} has no active trip")

    became_overdue = trip_store.mark_overdue(db, trip, now)
    message = _overdue_message(trip) if became_overdue else None
    db.commit()

    delivery = None
    if became_overdue:
        delivery = deliver(dispatcher, alert_recipients, message)
    return _status_of(trip, now, became_overdue, delivery)


def trip_times(db: Session, dispatcher=None, alert_recipients=(), now=None):
    """Every active trip with its countdown, for the admin "students out" view."""
    now = now or utcnow()
    trips = trip_store.list_active_trips(db)
    messages = {trip.id: _overdue_message(trip) for trip in trips if trip_store.mark_overdue(db, trip, now)}
    db.commit()

    deliveries = {trip_id: deliver(dispatcher, alert_recipients, message) for trip_id, message in messages.items()}
    return [_status_of(trip, now, trip.id in messages, deliveries.get(trip.id)) for trip in trips]


# --- Extensions ---

def request_extension(db: Session, student_id: int, extend_minutes: int, message=None, now=None):
    return extension_queue.submit(db, student_id, extend_minutes, message, now=now)


def pending_extensions(db: Session):
    return extension_queue.list_pending(db)


def review_extension(db: Session, request_id: int, action: str, dispatcher=None, now=None):
    resolution = extension_queue.resolve(db, request_id, action, now=now)
    request = resolution.request

    delivery = DeliveryReport()
    if dispatcher is not None:
        verdict = "approved" if request.status == REQUEST_APPROVED else "rejected"
        phone = request.student.phone
        body = f"Your request for {request.extend_minutes} more minutes was {verdict}."
        _release(db)
        delivery = notify_students(dispatcher, [phone], body)
    return Review(request=request, trip=resolution.trip, warning=resolution.warning, delivery=delivery)


# --- Emergencies ---

def record_emergency(db: Session, student_id, cause: str, dispatcher=None, recipients=(), body=None, now=None):
    """Append an emergency event, then alert ``recipients``. The event is
    committed before anything goes out, so a failed alert still leaves the record."""
    if not cause or not cause.strip():
        raise ValidationError("Emergency cause is required")

    student = None
    if student_id is not None:
        student = student_directory.get(db, student_id)

    cause = cause.strip()
    if body is None:
        who = f"{student.name} ({student.phone})" if student else "a SafeMove user"
        body = f"{cause}: emergency alert from {who}. Please help immediately."

    event = EmergencyEvent(
        student_id=student_id,
        cause=cause,
        created_at=now or utcnow(),
    )
    db.add(event)
    db.commit()
    logger.warning("Emergency '%s' raised by student %s", cause, student_id or "anonymous")

    delivery = deliver(dispatcher, recipients, body)
    return EmergencyRecord(event=event, delivery=delivery)


def list_emergencies(db: Session, limit: int = 100):
    return db.query(EmergencyEvent).order_by(
        EmergencyEvent.created_at.desc(), EmergencyEvent.id.desc()
    ).limit(limit).all()


def send_alert(dispatcher, recipients, body):
    if not body or not body.strip():
        raise ValidationError("Invalid request data: message is required")
    if not recipients:
        raise ValidationError("Invalid request data: phoneNumbers array is required")
    return deliver(dispatcher, recipients, body)


# --- Dashboard ---

def dashboard_stats(db: Session):
    students_in = db.query(Student).filter(Student.status == STATUS_INSIDE).count()
    students_out = db.query(Student).filter(Student.status != STATUS_INSIDE).count()
    total_trips = db.query(Trip).filter(Trip.ended_at.isnot(None)).count()
    active_trips = db.query(Trip).filter(Trip.ended_at.is_(None)).count()
    pending = db.query(ExtensionRequest).filter(ExtensionRequest.status == REQUEST_PENDING).count()
    emergencies = db.query(EmergencyEvent).count()

    return {
        "studentsIn": students_in,
        "studentsOut": students_out,
        "totalTrips": total_trips,
        "activeTrips": active_trips,
        "pendingExtensions": pending,
        "emergencyNumber": emergencies,
    }
