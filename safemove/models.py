from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Index, text
from sqlalchemy.orm import relationship
from safemove.db import Base

# Statuses shared by students and trips
STATUS_INSIDE = "inside"
STATUS_ON_TRIP = "on-trip"
STATUS_OVERDUE = "overdue"
STUDENT_STATUSES = (STATUS_INSIDE, STATUS_ON_TRIP, STATUS_OVERDUE)

REQUEST_PENDING = "pending"
REQUEST_APPROVED = "approved"
REQUEST_REJECTED = "rejected"


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    image = Column(String, nullable=True)
    status = Column(String, nullable=False, default=STATUS_INSIDE)
    created_at = Column(DateTime)

    trips = relationship("Trip", back_populates="student")
    extension_requests = relationship("ExtensionRequest", back_populates="student")


class Trip(Base):
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)

    duration_seconds = Column(Integer, nullable=False)
    started_at = Column(DateTime, nullable=False)
    ended_at = Column(DateTime, nullable=True)     # NULL while the student is out
    status = Column(String, nullable=False, default=STATUS_ON_TRIP)

    # Only one open trip per student
    __table_args__ = (
        Index(
            "ix_trips_one_active_per_student",
            "student_id",
            unique=True,
            sqlite_where=text("ended_at IS NULL"),
            postgresql_where=text("ended_at IS NULL"),
        ),
    )

    student = relationship("Student", back_populates="trips")

    @property
    def is_active(self):
        return self.ended_at is None


class ExtensionRequest(Base):
    __tablename__ = "extension_requests"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)

    extend_minutes = Column(Integer, nullable=False)
    personal_message = Column(String, nullable=True)
    status = Column(String, nullable=False, default=REQUEST_PENDING, index=True)
    created_at = Column(DateTime, nullable=False)
    resolved_at = Column(DateTime, nullable=True)

    student = relationship("Student", back_populates="extension_requests")


class EmergencyEvent(Base):
    __tablename__ = "emergencies"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=True)  # anonymous alerts allowed
    cause = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False)

    student = relationship("Student")
