import logging

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from safemove import student_directory
from safemove.errors import ConflictError, LifecycleError, NotFoundError, ValidationError
from safemove.models import Student, Trip, STATUS_INSIDE, STATUS_ON_TRIP, STATUS_OVERDUE
from safemove.timer import remaining_seconds, utcnow

logger = logging.getLogger(__name__)


def _is_lock_contention(exc):
    return "locked" in str(exc.orig).lower() or "busy" in str(exc.orig).lower()


def start_trip(db: Session, student_ids, duration_seconds: int, now=None):
    """Open one trip per student, all or nothing.

    Raises ValidationError for an empty id set or a non-positive duration,
    NotFoundError for an unknown student and ConflictError when any of them
    is already out (including when a concurrent call got there first).
    """
    ids = sorted(set(student_ids or ()))
    if not ids:
        raise ValidationError("At least one student is required to start a trip")
    if duration_seconds is None or duration_seconds <= 0:
        raise ValidationError("Trip duration must be a positive number of seconds")
    now = now or utcnow()

    try:
        students = db.query(Student).filter(Student.id.in_(ids)).order_by(Student.id).all()
        missing = set(ids) - {student.id for student in students}
        if missing:
            raise NotFoundError(f"Unknown student id(s): {sorted(missing)}")

        busy = db.query(Trip.student_id).filter(
            Trip.student_id.in_(ids),
            Trip.ended_at.is_(None)
        ).all()
        if busy:
            raise ConflictError(
                f"Student(s) {sorted(row.student_id for row in busy)} already have an active trip"
            )

        trips = []
        for student in students:
            trip = Trip(
                student_id=student.id,
                duration_seconds=duration_seconds,
                started_at=now,
                ended_at=None,
                status=STATUS_ON_TRIP,
            )
            db.add(trip)
            student_directory.set_status(db, student.id, STATUS_ON_TRIP)
            trips.append(trip)

        db.commit()
    except LifecycleError:
        db.rollback()
        raise
    except IntegrityError:
        # The partial unique index caught a concurrent start for the same student
        db.rollback()
        raise ConflictError("A trip for one of these students was started concurrently")
    except OperationalError as exc:
        db.rollback()
        if _is_lock_contention(exc):
            raise ConflictError("Trip store is busy with a concurrent start, try again")
        raise

    logger.info("Started %d trip(s) of %ds for students %s", len(trips), duration_seconds, ids)
    return trips


def get_active_trip(db: Session, student_id: int):
    return db.query(Trip).filter(
        Trip.student_id == student_id,
        Trip.ended_at.is_(None)
    ).first()


def list_active_trips(db: Session):
    return db.query(Trip).filter(Trip.ended_at.is_(None)).order_by(Trip.started_at.asc(), Trip.id.asc()).all()


def close_trip(db: Session, student_id: int, now=None):
    """Student is back: stamp the end time and mark both trip and student inside."""
    trip = get_active_trip(db, student_id)
    if not trip:
        db.rollback()
        raise NotFoundError(f"Student {student_id} has no active trip")

    now = now or utcnow()
    closed = db.query(Trip).filter(
        Trip.id == trip.id,
        Trip.ended_at.is_(None)
    ).update({Trip.ended_at: now, Trip.status: STATUS_INSIDE}, synchronize_session=False)
    if closed != 1:
        db.rollback()
        raise ConflictError(f"Trip {trip.id} was closed concurrently")

    db.query(Student).filter(Student.id == student_id).update(
        {Student.status: STATUS_INSIDE}, synchronize_session=False
    )
    db.commit()
    db.refresh(trip)

    logger.info("Closed trip %s for student %s", trip.id, student_id)
    return trip


def mark_overdue(db: Session, trip: Trip, now):
    """Flip an expired on-trip trip to overdue. Returns True only for the caller
    that performed the transition; the caller commits."""
    if not trip.is_active or trip.status != STATUS_ON_TRIP:
        return False
    if remaining_seconds(trip, now) > 0:
        return False

    changed = db.query(Trip).filter(
        Trip.id == trip.id,
        Trip.ended_at.is_(None),
        Trip.status == STATUS_ON_TRIP
    ).update({Trip.status: STATUS_OVERDUE}, synchronize_session=False)
    if changed != 1:
        return False

    db.query(Student).filter(Student.id == trip.student_id).update(
        {Student.status: STATUS_OVERDUE}, synchronize_session=False
    )
    logger.warning("Trip %s for student %s is overdue", trip.id, trip.student_id)
    return True
