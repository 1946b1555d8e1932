import pytest
from sqlalchemy.orm import sessionmaker

from safemove import lifecycle, student_directory
from safemove.config import Settings
from safemove.db import make_engine
from safemove.errors import NotFoundError, ValidationError
from safemove.models import EmergencyEvent, Student, Trip
from safemove.notifications import EmailDispatcher, build_dispatcher


class WritingDispatcher:
    """Writes through its own connection while it sends, with a short busy
    timeout, and notes whether the caller's session still held a transaction."""

    def __init__(self, engine, caller):
        self.engine = make_engine(engine.url.render_as_string(hide_password=False), connect_args={"timeout": 0.5})
        self.factory = sessionmaker(bind=self.engine)
        self.caller = caller
        self.caller_in_transaction = []

    def send(self, recipients, body):
        self.caller_in_transaction.append(self.caller.in_transaction())
        with self.factory() as session:
            student_directory.add(session, "Night Warden", "+919999999999")
        return True


@pytest.fixture
def writing_dispatcher(engine, db):
    dispatcher = WritingDispatcher(engine, db)
    yield dispatcher
    dispatcher.engine.dispose()


@pytest.fixture
def students(db):
    return [
        student_directory.add(db, "Aarav Sharma", "+918077868866").id,
        student_directory.add(db, "Diya Patel", "+917505405151").id,
    ]


def test_start_trip_notifies_students(db, clock, students, dispatcher):
    started = lifecycle.start_trip(db, students, 40 * 60, dispatcher=dispatcher, now=clock())

    assert len(started.trips) == 2
    assert started.delivery.delivered
    recipients, body = dispatcher.sent[0]
    assert sorted(recipients) == ["+917505405151", "+918077868866"]
    assert "40 minutes" in body


def test_start_trip_survives_dispatcher_failure(db, clock, students, failing_dispatcher):
    started = lifecycle.start_trip(db, students, 600, dispatcher=failing_dispatcher, now=clock())

    assert started.delivery.attempted and not started.delivery.delivered
    assert "provider unavailable" in started.delivery.error
    assert db.query(Trip).filter(Trip.ended_at.is_(None)).count() == 2


def test_poll_moves_expired_trip_to_overdue_and_alerts(db, clock, students, dispatcher):
    lifecycle.start_trip(db, students[:1], 120, now=clock())

    status = lifecycle.poll_trip(db, students[0], dispatcher, ["+911000000009"], now=clock())
    assert status.remaining_seconds == 120 and not status.became_overdue

    clock.advance(121)
    status = lifecycle.poll_trip(db, students[0], dispatcher, ["+911000000009"], now=clock())
    assert status.remaining_seconds == 0
    assert status.became_overdue
    assert status.trip.status == "overdue"
    assert len(dispatcher.sent) == 1
    assert dispatcher.sent[0][0] == ["+911000000009"]
    assert "Aarav Sharma" in dispatcher.sent[0][1]

    # later polls do not alert again
    lifecycle.poll_trip(db, students[0], dispatcher, ["+911000000009"], now=clock())
    assert len(dispatcher.sent) == 1


def test_poll_without_trip(db, clock, students):
    with pytest.raises(NotFoundError):
        lifecycle.poll_trip(db, students[0], now=clock())


def test_review_keeps_state_when_notification_fails(db, clock, students, failing_dispatcher):
    lifecycle.start_trip(db, students[:1], 600, now=clock())
    request = lifecycle.request_extension(db, students[0], 10, "Traffic", now=clock())

    review = lifecycle.review_extension(db, request.id, "approve", dispatcher=failing_dispatcher, now=clock())

    assert review.request.status == "approved"
    assert review.trip.duration_seconds == 1200
    assert not review.delivery.delivered


def test_record_emergency_succeeds_when_delivery_fails(db, clock, students, failing_dispatcher):
    record = lifecycle.record_emergency(
        db, students[0], "Call Police",
        dispatcher=failing_dispatcher,
        recipients=["+911000000001"],
        now=clock()
    )

    assert record.event.id is not None
    assert record.event.cause == "Call Police"
    assert record.delivery.attempted and not record.delivery.delivered
    assert db.query(EmergencyEvent).count() == 1


def test_record_emergency_anonymous(db, clock, dispatcher):
    record = lifecycle.record_emergency(db, None, "Emergency", dispatcher, ["help@example.com"], now=clock())

    assert record.event.student_id is None
    assert dispatcher.sent[0][0] == ["help@example.com"]


def test_record_emergency_validation(db, clock, students):
    with pytest.raises(ValidationError):
        lifecycle.record_emergency(db, students[0], "   ", now=clock())
    with pytest.raises(NotFoundError):
        lifecycle.record_emergency(db, 999, "Emergency", now=clock())


def test_send_alert_validation(dispatcher):
    with pytest.raises(ValidationError):
        lifecycle.send_alert(dispatcher, ["+911"], "")
    with pytest.raises(ValidationError):
        lifecycle.send_alert(dispatcher, [], "help")
    assert lifecycle.send_alert(dispatcher, ["+911"], "help").delivered


def test_dashboard_counts_live_state(db, clock, students):
    lifecycle.start_trip(db, students, 600, now=clock())
    lifecycle.end_trip(db, students[1], now=clock())
    lifecycle.request_extension(db, students[0], 5, now=clock())
    lifecycle.record_emergency(db, students[0], "Call Hostel", now=clock())

    assert lifecycle.dashboard_stats(db) == {
        "studentsIn": 1,
        "studentsOut": 1,
        "totalTrips": 1,
        "activeTrips": 1,
        "pendingExtensions": 1,
        "emergencyNumber": 1,
    }


def test_sends_happen_outside_any_transaction(db, clock, students, writing_dispatcher):
    started = lifecycle.start_trip(db, students[:1], 60, dispatcher=writing_dispatcher, now=clock())
    request = lifecycle.request_extension(db, students[0], 5, now=clock())
    review = lifecycle.review_extension(db, request.id, "reject", dispatcher=writing_dispatcher, now=clock())
    record = lifecycle.record_emergency(
        db, students[0], "Call Police", writing_dispatcher, ["+911000000001"], now=clock()
    )
    clock.advance(61)
    polled = lifecycle.poll_trip(db, students[0], writing_dispatcher, ["+911000000009"], now=clock())

    lifecycle.end_trip(db, students[0], now=clock())
    lifecycle.start_trip(db, students[1:], 60, now=clock())
    clock.advance(61)
    (swept,) = lifecycle.trip_times(db, writing_dispatcher, ["+911000000009"], now=clock())

    reports = [started.delivery, review.delivery, record.delivery, polled.delivery, swept.delivery]
    assert [r.delivered for r in reports] == [True] * 5
    assert writing_dispatcher.caller_in_transaction == [False] * 5
    assert db.query(Student).filter(Student.name == "Night Warden").count() == 5


def test_student_notices_skip_email_only_dispatcher(db, clock, students, monkeypatch):
    sent = []
    monkeypatch.setattr(EmailDispatcher, "send", lambda self, recipients, body: sent.append(recipients) or True)
    dispatcher = build_dispatcher(Settings(mail_username="warden@example.com", mail_password="secret"))

    started = lifecycle.start_trip(db, students, 600, dispatcher=dispatcher, now=clock())
    request = lifecycle.request_extension(db, students[0], 5, now=clock())
    review = lifecycle.review_extension(db, request.id, "approve", dispatcher=dispatcher, now=clock())

    for report in (started.delivery, review.delivery):
        assert not report.attempted
        assert "phone" in report.error
    assert sent == []

    # e-mail contacts for emergencies are still reached
    record = lifecycle.record_emergency(db, students[0], "Emergency", dispatcher, ["warden@example.com"], now=clock())
    assert record.delivery.delivered
    assert sent == [["warden@example.com"]]
